from __future__ import annotations

import argparse
import logging
import os
import queue
import select
import sys
import threading
import termios
import tty
import webbrowser
from dataclasses import dataclass
from datetime import datetime, timezone

from dotenv import load_dotenv
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .client import DEFAULT_BASE_URL, HackerNewsClient, HnError, Item
from .logging_utils import configure_logging
from .sanitize import sanitize
from .session import (
    DEFAULT_COMMENT_LIMIT,
    EVENT_OPEN,
    SessionController,
    resolve_key,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_LIMIT = 20
INPUT_POLL_SECONDS = 0.25
ITEM_PAGE_URL = "https://news.ycombinator.com/item?id={id}"
HOTKEYS = "j/k or arrows: move | o/Enter: open | q/Esc: quit"


@dataclass
class AppConfig:
    base_url: str
    top_limit: int
    comment_limit: int
    log_level: str
    log_file: str | None
    once: bool


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def truncate(value: str, width: int) -> str:
    if len(value) <= width:
        return value
    if width <= 1:
        return value[:width]
    return f"{value[: width - 1]}…"


def human_age(timestamp: int | None) -> str:
    if timestamp is None:
        return "-"
    published_at = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    seconds = max(int((now_utc() - published_at).total_seconds()), 0)
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 48:
        return f"{hours}h"
    return f"{hours // 24}d"


def story_url(item: Item) -> str:
    return item.url or ITEM_PAGE_URL.format(id=item.id)


def open_story(item: Item) -> str:
    url = story_url(item)
    try:
        opened = webbrowser.open(url, new=2)
    except webbrowser.Error as exc:
        LOGGER.warning("could not open %s: %s", url, exc)
        return f"Browser error: {exc}"
    if not opened:
        return f"No browser available for {url}"
    return f"Opened story {item.id} in browser"


def render_story_table(items: tuple[Item, ...], selected_index: int | None) -> Table:
    table = Table(title="Top Stories", expand=True)
    table.add_column("Sel", width=3)
    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Score", justify="right", width=6)
    table.add_column("Age", justify="right", width=5)
    table.add_column("Title")
    table.add_column("By", width=16, no_wrap=True, overflow="ellipsis")

    for idx, item in enumerate(items):
        is_selected = idx == selected_index
        table.add_row(
            ">" if is_selected else "",
            str(idx + 1),
            str(item.score),
            human_age(item.timestamp),
            truncate(item.title or "(untitled)", 92),
            item.author or "-",
            style="bold bright_white on rgb(28,28,28)" if is_selected else "",
        )

    if not items:
        table.add_row("", "-", "-", "-", "No stories available", "-")
    return table


def render_comments_panel(controller: SessionController) -> Panel:
    item = controller.selected_item
    status = controller.status
    if item is None:
        return Panel("No story selected.", title="Comments", border_style="cyan")

    title = f"Comments: {truncate(item.title, 60)}"
    if status.state == "loading":
        return Panel(Text("Loading comments…", style="dim"), title=title, border_style="cyan")
    if status.state == "error":
        body = Text(f"Could not load comments: {status.message}", style="red")
        return Panel(body, title=title, border_style="red")

    comments = controller.selected_comments()
    if not comments:
        return Panel("No comments yet.", title=title, border_style="cyan")

    blocks: list[Text] = []
    for comment in comments:
        header = Text(f"{comment.author or '[deleted]'} · {human_age(comment.timestamp)}", style="bold cyan")
        blocks.append(header)
        blocks.append(Text(sanitize(comment.raw_text) or "(no text)"))
        blocks.append(Text(""))
    return Panel(Group(*blocks), title=f"{title} ({len(comments)})", border_style="cyan")


def render_status_text(controller: SessionController, message: str, terminal_width: int) -> Text:
    status = controller.status
    label = status.state if not status.message else f"{status.state}: {status.message}"
    count = len(controller.items)
    position = "-" if controller.selected_index is None else str(controller.selected_index + 1)
    line = f"Story {position}/{count} | Comments: {label} | Cached: {controller.cache_size}"
    if message:
        line = f"{line} | {message}"
    line = f"{line} | {HOTKEYS}"
    return Text(truncate(line, max(40, terminal_width - 4)), style="cyan")


def build_screen(
    controller: SessionController,
    message: str,
    terminal_width: int,
    terminal_height: int,
) -> Panel:
    stories_panel = Panel(
        render_story_table(controller.items, controller.selected_index),
        title="Stories",
        border_style="bright_cyan",
        padding=(0, 0),
    )
    body_layout = Layout(name="body")
    body_layout.split_row(
        Layout(stories_panel, name="stories", ratio=3),
        Layout(render_comments_panel(controller), name="comments", ratio=2),
    )
    root_layout = Layout(name="root")
    root_layout.split_column(
        Layout(body_layout, name="body"),
        Layout(render_status_text(controller, message, terminal_width), name="status", size=1),
    )
    return Panel(
        root_layout,
        title="Hacker News Terminal",
        border_style="bright_blue",
        height=max(10, terminal_height - 2),
    )


def parse_args(argv: list[str]) -> AppConfig:
    parser = argparse.ArgumentParser(
        description="Browse Hacker News top stories and their comments in the terminal."
    )
    parser.add_argument("--base-url", default=os.getenv("HN_BASE_URL", DEFAULT_BASE_URL))
    parser.add_argument("--top-limit", type=int, default=DEFAULT_TOP_LIMIT)
    parser.add_argument("--comment-limit", type=int, default=DEFAULT_COMMENT_LIMIT)
    parser.add_argument("--log-level", default=os.getenv("HN_LOG_LEVEL", "WARNING"))
    parser.add_argument(
        "--log-file",
        default=os.getenv("HN_LOG_FILE") or None,
        help="Append log records to this file instead of stderr.",
    )
    parser.add_argument("--once", action="store_true", help="Print the story list once and exit.")

    args = parser.parse_args(argv)

    if args.top_limit < 1:
        raise ValueError("--top-limit must be >= 1")
    if args.comment_limit < 0:
        raise ValueError("--comment-limit must be >= 0")
    if not args.base_url.strip():
        raise ValueError("--base-url must not be empty")

    return AppConfig(
        base_url=args.base_url,
        top_limit=args.top_limit,
        comment_limit=args.comment_limit,
        log_level=args.log_level,
        log_file=args.log_file,
        once=args.once,
    )


def _line_input_worker(
    key_queue: queue.Queue[str],
    stop_event: threading.Event,
) -> None:
    while not stop_event.is_set():
        try:
            line = sys.stdin.readline()
        except Exception:
            if stop_event.wait(0.2):
                break
            continue
        if line == "":
            if stop_event.wait(0.2):
                break
            continue
        key_queue.put(line.strip() or "ENTER")


def key_input_worker(
    key_queue: queue.Queue[str],
    stop_event: threading.Event,
) -> None:
    if not sys.stdin.isatty():
        _line_input_worker(key_queue, stop_event)
        return

    try:
        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
    except Exception:
        _line_input_worker(key_queue, stop_event)
        return

    try:
        tty.setcbreak(fd)
        while not stop_event.is_set():
            ready, _, _ = select.select([fd], [], [], 0.2)
            if not ready:
                continue
            data = os.read(fd, 1)
            if not data:
                continue
            key = data.decode("utf-8", errors="ignore")
            if not key:
                continue
            if key in {"\r", "\n"}:
                key_queue.put("ENTER")
                continue
            if key == "\x1b":
                sequence = ""
                while select.select([fd], [], [], 0.001)[0]:
                    sequence += os.read(fd, 1).decode("utf-8", errors="ignore")
                    if not sequence:
                        continue
                    if sequence[-1].isalpha() or sequence.endswith("~") or len(sequence) >= 6:
                        break
                if sequence in {"[A", "OA"}:
                    key_queue.put("UP")
                elif sequence in {"[B", "OB"}:
                    key_queue.put("DOWN")
                elif not sequence:
                    key_queue.put("ESC")
                continue
            if key == "\x03":
                key_queue.put("QUIT")
                continue
            key_queue.put(key)
    finally:
        try:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
        except Exception:
            pass


def process_key(controller: SessionController, key: str) -> tuple[bool, str]:
    event = resolve_key(key)
    if event == EVENT_OPEN:
        item = controller.selected_item
        if item is None:
            return False, "No story selected."
        return False, open_story(item)

    quit_requested, selection_changed = controller.handle_input(event)
    if quit_requested:
        return True, ""
    if selection_changed:
        controller.ensure_comments_for_selection()
    return False, ""


def poll_key(key_queue: queue.Queue[str], timeout: float = INPUT_POLL_SECONDS) -> str | None:
    try:
        return key_queue.get(timeout=timeout)
    except queue.Empty:
        return None


def run(config: AppConfig, console: Console) -> int:
    client = HackerNewsClient(config.base_url)
    try:
        with console.status("Fetching top stories..."):
            items = client.fetch_top_items(config.top_limit)
    except HnError as exc:
        LOGGER.error("top stories unavailable: %s", exc)
        console.print(f"[red]Could not fetch top stories:[/red] {exc}")
        return 1

    controller = SessionController(items, client, comment_limit=config.comment_limit)
    if config.once:
        console.print(render_story_table(controller.items, controller.selected_index))
        return 0

    controller.ensure_comments_for_selection()
    stop_event = threading.Event()
    key_queue: queue.Queue[str] = queue.Queue()
    key_thread = threading.Thread(
        target=key_input_worker,
        args=(key_queue, stop_event),
        daemon=True,
    )
    key_thread.start()

    message = ""
    with Live(
        build_screen(controller, message, console.size.width, console.size.height),
        console=console,
        auto_refresh=False,
        screen=True,
        vertical_overflow="crop",
    ) as live:
        try:
            while True:
                controller.drain()
                live.update(
                    build_screen(controller, message, console.size.width, console.size.height),
                    refresh=True,
                )
                key = poll_key(key_queue)
                if key is None:
                    continue
                quit_requested, message = process_key(controller, key)
                if quit_requested:
                    return 0
        finally:
            stop_event.set()
            key_thread.join(timeout=2)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    console = Console()
    try:
        config = parse_args(argv if argv is not None else sys.argv[1:])
    except Exception as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        return 2

    configure_logging(config.log_level, config.log_file)
    try:
        return run(config, console)
    except KeyboardInterrupt:
        console.print("\n[bold]Stopped.[/bold]")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
