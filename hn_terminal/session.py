"""Interactive session state for the story browser.

The controller is owned by the render loop and is its only mutator.
Background comment fetches never touch it directly; each one sends exactly
one FetchResult on the channel and the loop applies it during drain().
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Protocol

from .client import Comment, Item

LOGGER = logging.getLogger(__name__)

DEFAULT_COMMENT_LIMIT = 10

EVENT_QUIT = "quit"
EVENT_DOWN = "down"
EVENT_UP = "up"
EVENT_OPEN = "open"
EVENT_IGNORED = "ignored"

KEY_BINDINGS: dict[str, str] = {
    "q": EVENT_QUIT,
    "ESC": EVENT_QUIT,
    "QUIT": EVENT_QUIT,
    "DOWN": EVENT_DOWN,
    "j": EVENT_DOWN,
    "UP": EVENT_UP,
    "k": EVENT_UP,
    "ENTER": EVENT_OPEN,
    "o": EVENT_OPEN,
}


def resolve_key(key: str) -> str:
    return KEY_BINDINGS.get(key, EVENT_IGNORED)


@dataclass(frozen=True)
class Status:
    state: str
    message: str = ""

    @property
    def is_ready(self) -> bool:
        return self.state == "ready"


IDLE = Status("idle")
LOADING = Status("loading")
READY = Status("ready")


def error_status(message: str) -> Status:
    return Status("error", message)


@dataclass(frozen=True)
class FetchResult:
    item_id: int
    comments: tuple[Comment, ...] | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.comments is not None


class FetchResultChannel:
    def __init__(self) -> None:
        self._queue: queue.Queue[FetchResult] = queue.Queue()

    def send(self, message: FetchResult) -> None:
        self._queue.put(message)

    def receive_nowait(self) -> FetchResult | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None


class CommentSource(Protocol):
    def fetch_comments(self, item: Item, limit: int) -> list[Comment]: ...


def spawn_daemon(work: Callable[[], None]) -> None:
    threading.Thread(target=work, daemon=True).start()


class SessionController:
    def __init__(
        self,
        items: list[Item],
        client: CommentSource,
        comment_limit: int = DEFAULT_COMMENT_LIMIT,
        channel: FetchResultChannel | None = None,
        spawn: Callable[[Callable[[], None]], None] | None = None,
    ) -> None:
        self._items: tuple[Item, ...] = tuple(items)
        self._client = client
        self._comment_limit = comment_limit
        self._channel = channel or FetchResultChannel()
        self._spawn = spawn or spawn_daemon
        self._cache: dict[int, tuple[Comment, ...]] = {}
        self._in_flight: int | None = None
        self._selected: int | None = 0 if self._items else None
        self._status = IDLE

    @property
    def items(self) -> tuple[Item, ...]:
        return self._items

    @property
    def selected_index(self) -> int | None:
        return self._selected

    @property
    def selected_item(self) -> Item | None:
        if self._selected is None:
            return None
        return self._items[self._selected]

    @property
    def status(self) -> Status:
        return self._status

    @property
    def in_flight(self) -> int | None:
        return self._in_flight

    @property
    def cache(self) -> Mapping[int, tuple[Comment, ...]]:
        return MappingProxyType(self._cache)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cached_comments(self, item_id: int) -> tuple[Comment, ...] | None:
        return self._cache.get(item_id)

    def selected_comments(self) -> tuple[Comment, ...] | None:
        item = self.selected_item
        if item is None or not self._status.is_ready:
            return None
        return self._cache.get(item.id)

    def handle_input(self, event: str) -> tuple[bool, bool]:
        if event == EVENT_QUIT:
            return True, False
        if event not in (EVENT_DOWN, EVENT_UP) or self._selected is None:
            return False, False
        delta = 1 if event == EVENT_DOWN else -1
        previous = self._selected
        self._selected = (previous + delta) % len(self._items)
        return False, self._selected != previous

    def ensure_comments_for_selection(self) -> None:
        item = self.selected_item
        if item is None:
            self._in_flight = None
            self._status = IDLE
            return
        if item.id in self._cache:
            self._in_flight = None
            self._status = READY
            return
        self._status = LOADING
        if self._in_flight == item.id:
            return
        self._in_flight = item.id
        self._start_fetch(item)

    def _start_fetch(self, item: Item) -> None:
        client = self._client
        channel = self._channel
        limit = self._comment_limit

        def work() -> None:
            try:
                comments = client.fetch_comments(item, limit)
            except Exception as exc:
                LOGGER.warning("comment fetch for item %s failed: %s", item.id, exc)
                channel.send(FetchResult(item.id, error=str(exc) or type(exc).__name__))
                return
            LOGGER.debug("comment fetch for item %s returned %d comments", item.id, len(comments))
            channel.send(FetchResult(item.id, comments=tuple(comments)))

        LOGGER.debug("starting comment fetch for item %s", item.id)
        self._spawn(work)

    def process_fetch_message(self, message: FetchResult) -> None:
        if self._in_flight == message.item_id:
            self._in_flight = None

        selected = self.selected_item
        is_selected = selected is not None and selected.id == message.item_id

        if message.ok:
            self._cache.setdefault(message.item_id, message.comments or ())
            if is_selected:
                self._status = READY
            return

        # A late failure from a duplicate fetch never hides cached comments.
        if is_selected and message.item_id not in self._cache:
            self._status = error_status(message.error)

    def drain(self) -> int:
        processed = 0
        while True:
            message = self._channel.receive_nowait()
            if message is None:
                return processed
            self.process_fetch_message(message)
            processed += 1
