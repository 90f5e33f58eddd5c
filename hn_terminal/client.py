from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import requests

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://hacker-news.firebaseio.com/v0"
TOP_STORIES_PATH = "/topstories.json"
ITEM_PATH = "/item/"
DEFAULT_MAX_WORKERS = 8

T = TypeVar("T")


class HnError(Exception):
    pass


class TransportError(HnError):
    pass


class DecodeError(HnError):
    pass


@dataclass(frozen=True)
class Item:
    id: int
    title: str
    author: str
    score: int
    url: str | None
    timestamp: int | None
    child_ids: tuple[int, ...]
    text: str | None = None
    descendants: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> Item:
        record = _require_record(payload)
        return cls(
            id=record["id"],
            title=_text_field(record, "title"),
            author=_text_field(record, "by"),
            score=_int_field(record, "score") or 0,
            url=_optional_text_field(record, "url"),
            timestamp=_int_field(record, "time"),
            child_ids=_ids_field(record, "kids"),
            text=_optional_text_field(record, "text"),
            descendants=_int_field(record, "descendants"),
        )


@dataclass(frozen=True)
class Comment:
    id: int
    author: str
    raw_text: str
    child_ids: tuple[int, ...]
    timestamp: int | None

    @classmethod
    def from_payload(cls, payload: Any) -> Comment:
        record = _require_record(payload)
        return cls(
            id=record["id"],
            author=_text_field(record, "by"),
            raw_text=_text_field(record, "text"),
            child_ids=_ids_field(record, "kids"),
            timestamp=_int_field(record, "time"),
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_record(payload: Any) -> dict[str, Any]:
    # Unknown ids come back as a literal `null`.
    if not isinstance(payload, dict):
        raise DecodeError(f"deserialisation failed: expected object, got {type(payload).__name__}")
    if not _is_int(payload.get("id")):
        raise DecodeError("deserialisation failed: record has no integer id")
    return payload


def _text_field(record: dict[str, Any], key: str) -> str:
    value = record.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"deserialisation failed: field '{key}' is not text")
    return value


def _optional_text_field(record: dict[str, Any], key: str) -> str | None:
    if record.get(key) is None:
        return None
    return _text_field(record, key)


def _int_field(record: dict[str, Any], key: str) -> int | None:
    value = record.get(key)
    if value is None:
        return None
    if not _is_int(value):
        raise DecodeError(f"deserialisation failed: field '{key}' is not an integer")
    return value


def _ids_field(record: dict[str, Any], key: str) -> tuple[int, ...]:
    value = record.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(_is_int(entry) for entry in value):
        raise DecodeError(f"deserialisation failed: field '{key}' is not a list of ids")
    return tuple(value)


class HackerNewsClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout: float | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_workers = max(1, max_workers)

    def _get_json(self, url: str) -> Any:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(f"http request failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"deserialisation failed: {exc}") from exc

    def _item_url(self, item_id: int) -> str:
        return f"{self.base_url}{ITEM_PATH}{item_id}.json"

    def fetch_top_item_ids(self) -> list[int]:
        payload = self._get_json(f"{self.base_url}{TOP_STORIES_PATH}")
        if not isinstance(payload, list) or not all(_is_int(entry) for entry in payload):
            raise DecodeError("deserialisation failed: top stories is not a list of ids")
        return payload

    def fetch_item(self, item_id: int) -> Item:
        return Item.from_payload(self._get_json(self._item_url(item_id)))

    def fetch_comment(self, comment_id: int) -> Comment:
        return Comment.from_payload(self._get_json(self._item_url(comment_id)))

    def _fetch_all(self, ids: list[int], fetch: Callable[[int], T], kind: str) -> list[T]:
        if not ids:
            return []

        def attempt(record_id: int) -> T | None:
            try:
                return fetch(record_id)
            except HnError as exc:
                LOGGER.warning("skipping %s %s fetch failure: %s", kind, record_id, exc)
                return None

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as pool:
            results = list(pool.map(attempt, ids))
        return [result for result in results if result is not None]

    def fetch_top_items(self, limit: int) -> list[Item]:
        ids = self.fetch_top_item_ids()
        requested = ids[: max(limit, 1)]
        items = self._fetch_all(requested, self.fetch_item, "item")
        LOGGER.debug("fetched %d of %d top items", len(items), len(requested))
        return items

    def fetch_comments(self, item: Item, limit: int) -> list[Comment]:
        if limit < 0:
            raise ValueError(f"comment limit must be >= 0, got {limit}")
        if not item.child_ids:
            return []
        requested = list(item.child_ids[:limit])
        return self._fetch_all(requested, self.fetch_comment, "comment")
