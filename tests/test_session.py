from __future__ import annotations

import threading
import time
from typing import Callable

import pytest

from hn_terminal.client import Comment, Item, TransportError
from hn_terminal.session import (
    EVENT_DOWN,
    EVENT_IGNORED,
    EVENT_QUIT,
    EVENT_UP,
    IDLE,
    LOADING,
    READY,
    FetchResult,
    FetchResultChannel,
    SessionController,
    error_status,
    resolve_key,
)


def make_item(item_id: int, kids: tuple[int, ...] = (1, 2)) -> Item:
    return Item(
        id=item_id,
        title=f"Story {item_id}",
        author="pg",
        score=1,
        url=None,
        timestamp=None,
        child_ids=kids,
    )


def make_comment(comment_id: int) -> Comment:
    return Comment(id=comment_id, author="a", raw_text="<p>hi</p>", child_ids=(), timestamp=None)


class RecordingClient:
    def __init__(self, fail_for: set[int] | None = None) -> None:
        self.calls: list[tuple[int, int]] = []
        self.fail_for = fail_for or set()

    def fetch_comments(self, item: Item, limit: int) -> list[Comment]:
        self.calls.append((item.id, limit))
        if item.id in self.fail_for:
            raise TransportError("http request failed: connection reset")
        return [make_comment(item.id * 100 + n) for n in range(2)]


class DeferredSpawner:
    def __init__(self) -> None:
        self.pending: list[Callable[[], None]] = []

    def __call__(self, work: Callable[[], None]) -> None:
        self.pending.append(work)

    def run(self, index: int = 0) -> None:
        self.pending.pop(index)()

    def run_all(self) -> None:
        while self.pending:
            self.run()


def make_controller(
    count: int = 3, client: RecordingClient | None = None
) -> tuple[SessionController, RecordingClient, DeferredSpawner]:
    client = client or RecordingClient()
    spawner = DeferredSpawner()
    items = [make_item(n) for n in range(1, count + 1)]
    return SessionController(items, client, spawn=spawner), client, spawner


def test_new_controller_selects_first_item_and_is_idle() -> None:
    controller, _, _ = make_controller()

    assert controller.selected_index == 0
    assert controller.status == IDLE
    assert controller.cache_size == 0


def test_empty_list_has_no_selection_and_ignores_navigation() -> None:
    controller, client, _ = make_controller(count=0)

    assert controller.selected_index is None
    assert controller.handle_input(EVENT_DOWN) == (False, False)
    assert controller.handle_input(EVENT_UP) == (False, False)
    controller.ensure_comments_for_selection()
    assert controller.status == IDLE
    assert client.calls == []


def test_navigation_wraps_in_both_directions() -> None:
    controller, _, _ = make_controller(count=3)

    assert controller.handle_input(EVENT_UP) == (False, True)
    assert controller.selected_index == 2
    assert controller.handle_input(EVENT_DOWN) == (False, True)
    assert controller.selected_index == 0


def test_single_item_navigation_reports_no_change() -> None:
    controller, _, _ = make_controller(count=1)

    assert controller.handle_input(EVENT_DOWN) == (False, False)
    assert controller.selected_index == 0


def test_quit_and_other_events() -> None:
    controller, _, _ = make_controller()

    assert controller.handle_input(EVENT_QUIT) == (True, False)
    assert controller.handle_input(EVENT_IGNORED) == (False, False)
    assert controller.selected_index == 0


def test_key_bindings_map_two_keys_per_action() -> None:
    assert resolve_key("q") == resolve_key("ESC") == EVENT_QUIT
    assert resolve_key("QUIT") == EVENT_QUIT
    assert resolve_key("j") == resolve_key("DOWN") == EVENT_DOWN
    assert resolve_key("k") == resolve_key("UP") == EVENT_UP
    assert resolve_key("x") == EVENT_IGNORED


def test_selection_starts_one_fetch_and_becomes_ready() -> None:
    controller, client, spawner = make_controller()

    controller.ensure_comments_for_selection()

    assert controller.status == LOADING
    assert controller.in_flight == 1
    assert controller.drain() == 0

    spawner.run_all()
    assert controller.drain() == 1
    assert controller.status == READY
    assert controller.in_flight is None
    assert client.calls == [(1, 10)]
    assert [c.id for c in controller.selected_comments() or ()] == [100, 101]


def test_repeated_ensure_while_in_flight_does_not_refetch() -> None:
    controller, client, spawner = make_controller()

    controller.ensure_comments_for_selection()
    controller.ensure_comments_for_selection()

    assert controller.status == LOADING
    assert len(spawner.pending) == 1
    spawner.run_all()
    assert client.calls == [(1, 10)]


def test_cached_selection_never_refetches() -> None:
    controller, client, spawner = make_controller()
    controller.ensure_comments_for_selection()
    spawner.run_all()
    controller.drain()

    controller.handle_input(EVENT_DOWN)
    controller.ensure_comments_for_selection()
    spawner.run_all()
    controller.drain()
    controller.handle_input(EVENT_UP)
    controller.ensure_comments_for_selection()

    assert controller.status == READY
    assert spawner.pending == []
    assert client.calls == [(1, 10), (2, 10)]


def test_failure_sets_error_and_reselection_retries() -> None:
    client = RecordingClient(fail_for={1})
    controller, _, spawner = make_controller(client=client)

    controller.ensure_comments_for_selection()
    spawner.run_all()
    controller.drain()

    assert controller.status == error_status("http request failed: connection reset")
    assert controller.cached_comments(1) is None
    assert controller.selected_comments() is None

    client.fail_for.clear()
    controller.handle_input(EVENT_DOWN)
    controller.ensure_comments_for_selection()
    controller.handle_input(EVENT_UP)
    controller.ensure_comments_for_selection()
    assert controller.status == LOADING
    spawner.run_all()
    controller.drain()

    assert controller.status == READY
    assert [item_id for item_id, _ in client.calls].count(1) == 2


def test_stale_completion_does_not_touch_visible_status() -> None:
    controller, _, spawner = make_controller()
    controller.ensure_comments_for_selection()
    controller.handle_input(EVENT_DOWN)
    controller.ensure_comments_for_selection()

    # Item 1 finishes while item 2 is selected and still loading.
    spawner.run(0)
    controller.drain()

    assert controller.status == LOADING
    assert controller.in_flight == 2
    assert controller.cached_comments(1) is not None


def test_stale_failure_does_not_surface_as_error() -> None:
    controller = SessionController([make_item(1), make_item(2)], RecordingClient(), spawn=DeferredSpawner())
    controller.ensure_comments_for_selection()
    controller.handle_input(EVENT_DOWN)
    controller.ensure_comments_for_selection()

    controller.process_fetch_message(FetchResult(1, error="boom"))

    assert controller.status == LOADING
    assert controller.cached_comments(1) is None


def test_returning_to_item_before_its_fetch_completes_ends_ready() -> None:
    controller, _, spawner = make_controller()
    controller.ensure_comments_for_selection()  # A in flight
    controller.handle_input(EVENT_DOWN)
    controller.ensure_comments_for_selection()  # B in flight
    controller.handle_input(EVENT_UP)
    controller.ensure_comments_for_selection()  # back to A

    assert controller.status == LOADING
    spawner.run(0)  # first fetch for A
    controller.drain()

    assert controller.selected_item is not None and controller.selected_item.id == 1
    assert controller.status == READY

    spawner.run_all()  # B and the duplicate A fetch
    controller.drain()
    assert controller.status == READY
    assert controller.cache_size == 2


def test_duplicate_fetch_failure_after_success_stays_ready() -> None:
    controller, _, spawner = make_controller()
    controller.ensure_comments_for_selection()
    controller.handle_input(EVENT_DOWN)
    controller.ensure_comments_for_selection()
    controller.handle_input(EVENT_UP)
    controller.ensure_comments_for_selection()
    assert len(spawner.pending) == 3

    controller.process_fetch_message(FetchResult(1, comments=()))
    controller.process_fetch_message(FetchResult(1, error="boom"))

    assert controller.status == READY
    assert controller.cached_comments(1) == ()
    assert controller.selected_comments() == ()


def test_duplicate_completion_keeps_first_cache_entry() -> None:
    controller, _, _ = make_controller()
    first = (make_comment(1),)

    controller.process_fetch_message(FetchResult(1, comments=first))
    controller.process_fetch_message(FetchResult(1, comments=(make_comment(2),)))

    assert controller.cached_comments(1) == first
    assert controller.cache_size == 1


def test_empty_comment_set_is_ready_not_loading() -> None:
    controller, _, _ = make_controller()
    controller.ensure_comments_for_selection()

    controller.process_fetch_message(FetchResult(1, comments=()))

    assert controller.status == READY
    assert controller.selected_comments() == ()


def test_cache_only_grows_during_random_navigation() -> None:
    controller, _, spawner = make_controller(count=5)
    controller.ensure_comments_for_selection()
    sizes = [controller.cache_size]
    for step, event in enumerate([EVENT_DOWN, EVENT_DOWN, EVENT_UP, EVENT_DOWN, EVENT_DOWN, EVENT_DOWN] * 3):
        _, changed = controller.handle_input(event)
        if changed:
            controller.ensure_comments_for_selection()
        if step % 2 and spawner.pending:
            spawner.run()
        controller.drain()
        sizes.append(controller.cache_size)

    assert sizes == sorted(sizes)


def test_channel_receive_nowait_returns_none_when_empty() -> None:
    channel = FetchResultChannel()
    assert channel.receive_nowait() is None
    channel.send(FetchResult(1, comments=()))
    assert channel.receive_nowait() == FetchResult(1, comments=())


def test_background_fetch_does_not_block_controller() -> None:
    release = threading.Event()

    class SlowClient:
        def fetch_comments(self, item: Item, limit: int) -> list[Comment]:
            release.wait(timeout=2.0)
            return [make_comment(1)]

    controller = SessionController([make_item(1)], SlowClient())

    started = time.monotonic()
    controller.ensure_comments_for_selection()
    assert time.monotonic() - started < 0.2
    assert controller.drain() == 0
    assert controller.status == LOADING

    release.set()
    deadline = time.monotonic() + 2.0
    while time.monotonic() < deadline and controller.status == LOADING:
        controller.drain()
        time.sleep(0.01)

    assert controller.status == READY


@pytest.mark.parametrize("limit", [0, 3])
def test_comment_limit_is_passed_to_client(limit: int) -> None:
    client = RecordingClient()
    spawner = DeferredSpawner()
    controller = SessionController([make_item(1)], client, comment_limit=limit, spawn=spawner)

    controller.ensure_comments_for_selection()
    spawner.run_all()

    assert client.calls == [(1, limit)]
