from __future__ import annotations

# Applied in order. &amp; stays last so "&amp;quot;" decodes one level only.
REPLACEMENTS: tuple[tuple[str, str], ...] = (
    ("<p>", "\n\n"),
    ("</p>", ""),
    ("<br>", "\n"),
    ("<br/>", "\n"),
    ("<br />", "\n"),
    ("<pre>", "\n"),
    ("</pre>", "\n"),
    ("<code>", ""),
    ("</code>", ""),
    ("<i>", ""),
    ("</i>", ""),
    ("<em>", ""),
    ("</em>", ""),
    ("<b>", ""),
    ("</b>", ""),
    ("<strong>", ""),
    ("</strong>", ""),
    ("&quot;", '"'),
    ("&#x27;", "'"),
    ("&#39;", "'"),
    ("&#x2F;", "/"),
    ("&#47;", "/"),
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)


def strip_tags(text: str) -> str:
    out: list[str] = []
    inside = False
    for char in text:
        if inside:
            if char == ">":
                inside = False
            continue
        if char == "<":
            inside = True
            continue
        out.append(char)
    return "".join(out)


def sanitize(markup: str | None) -> str:
    if not markup:
        return ""
    text = markup
    for needle, replacement in REPLACEMENTS:
        text = text.replace(needle, replacement)
    return strip_tags(text).strip()
