"""
Unit Tests for ToastQueue

Tests capacity eviction, newest-first ordering, timer ownership and the
idempotence of every removal path.
"""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from notifyhub.models.notification import ToastNotification, ToastSource
from notifyhub.notifications.exceptions import WriteFailure
from notifyhub.notifications.toast_queue import ToastQueue

ENQUEUED = datetime(2026, 1, 1, tzinfo=UTC)


def make_toast(toast_id: str, **overrides) -> ToastNotification:
    fields = {"id": toast_id, "title": f"Toast {toast_id}", "enqueued_at": ENQUEUED}
    fields.update(overrides)
    return ToastNotification(**fields)


@pytest.fixture
def queue(scheduler):
    return ToastQueue(capacity=5, call_later=scheduler.call_later)


class TestEnqueue:
    """Ordering and capacity."""

    def test_newest_first(self, queue):
        for toast_id in ("a", "b", "c"):
            queue.enqueue(make_toast(toast_id))

        assert [t.id for t in queue.list()] == ["c", "b", "a"]

    def test_capacity_evicts_oldest_and_cancels_its_timer(self, queue, scheduler):
        for toast_id in ("1", "2", "3", "4", "5", "6"):
            queue.enqueue(make_toast(toast_id))

        assert [t.id for t in queue.list()] == ["6", "5", "4", "3", "2"]
        evicted_handle = scheduler.handles[0]
        assert evicted_handle.cancel_calls == 1
        assert queue.pending_timers == 5

    def test_evicted_timer_firing_late_is_harmless(self, queue, scheduler):
        for toast_id in ("1", "2", "3", "4", "5", "6"):
            queue.enqueue(make_toast(toast_id))

        # A cancelled handle whose callback still runs must not touch the queue.
        scheduler.handles[0].callback()

        assert len(queue) == 5

    def test_same_id_replaces_entry_with_single_timer(self, queue, scheduler):
        queue.enqueue(make_toast("a", title="First"))
        queue.enqueue(make_toast("b"))
        queue.enqueue(make_toast("a", title="Second"))

        assert [t.id for t in queue.list()] == ["a", "b"]
        assert queue.get("a").title == "Second"
        assert queue.pending_timers == 2
        assert scheduler.handles[0].cancel_calls == 1

    def test_sticky_toast_has_no_timer(self, queue, scheduler):
        queue.enqueue(make_toast("sticky", auto_dismiss=False))

        assert queue.pending_timers == 0
        scheduler.advance(60)
        assert "sticky" in queue

    def test_timer_uses_toast_duration(self, queue, scheduler):
        queue.enqueue(make_toast("slow", duration_ms=8000))

        assert scheduler.handles[0].when == pytest.approx(8.0)

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            ToastQueue(capacity=0)


class TestRemoval:
    """Manual dismiss, expiry and clearing."""

    def test_remove_twice_is_noop(self, queue, scheduler):
        queue.enqueue(make_toast("a"))

        assert queue.remove("a") is True
        assert queue.remove("a") is False
        assert scheduler.handles[0].cancel_calls == 1
        assert queue.pending_timers == 0

    def test_remove_unknown_id(self, queue):
        assert queue.remove("missing") is False

    def test_timer_fires_after_five_seconds(self, queue, scheduler):
        queue.enqueue(make_toast("a"))

        scheduler.advance(4.5)
        assert "a" in queue

        scheduler.advance(0.5)
        assert "a" not in queue
        assert queue.pending_timers == 0

    def test_timer_and_manual_dismiss_in_same_tick(self, queue, scheduler):
        queue.enqueue(make_toast("a"))
        on_change = MagicMock()
        queue._on_change = on_change

        handle = scheduler.handles[0]
        handle.callback()
        assert queue.remove("a") is False

        assert on_change.call_count == 1
        assert handle.cancel_calls == 0

    def test_dismiss_then_stale_timer_callback(self, queue, scheduler):
        queue.enqueue(make_toast("a"))
        handle = scheduler.handles[0]

        queue.remove("a")
        handle.callback()

        assert len(queue) == 0
        assert queue.pending_timers == 0

    def test_clear_cancels_every_timer(self, queue, scheduler):
        for toast_id in ("a", "b", "c"):
            queue.enqueue(make_toast(toast_id))

        assert queue.clear() == 3
        assert queue.pending_timers == 0
        assert all(h.cancel_calls == 1 for h in scheduler.handles)
        assert scheduler.pending == []

    def test_on_change_called_for_each_mutation(self, scheduler):
        on_change = MagicMock()
        queue = ToastQueue(call_later=scheduler.call_later, on_change=on_change)

        queue.enqueue(make_toast("a"))
        queue.remove("a")
        queue.remove("a")

        assert on_change.call_count == 2

    def test_listener_failure_does_not_break_queue(self, scheduler):
        queue = ToastQueue(
            call_later=scheduler.call_later,
            on_change=MagicMock(side_effect=RuntimeError("boom")),
        )

        queue.enqueue(make_toast("a"))

        assert "a" in queue


def test_rapid_toasts_expire_independently(queue, scheduler):
    """Toasts enqueued one second apart expire one second apart."""
    for second, toast_id in enumerate(("1", "2", "3", "4", "5", "6")):
        if second:
            scheduler.advance(1)
        queue.enqueue(make_toast(toast_id))

    assert [t.id for t in queue.list()] == ["6", "5", "4", "3", "2"]

    # Toast "2" was enqueued at t=1, so it expires at t=6.
    scheduler.advance(1)
    assert [t.id for t in queue.list()] == ["6", "5", "4", "3"]

    scheduler.advance(4)
    assert len(queue) == 0
    assert queue.pending_timers == 0


class TestMarkRead:
    """Read-mutations forwarded to the store."""

    @pytest.mark.asyncio
    async def test_record_toast_forwards_to_store(self, scheduler):
        store = AsyncMock()
        queue = ToastQueue(store=store, call_later=scheduler.call_later)
        queue.enqueue(make_toast("rec-1", source=ToastSource.RECORD))

        assert await queue.mark_read("rec-1") is True

        store.mark_read.assert_awaited_once_with("rec-1")
        assert "rec-1" not in queue

    @pytest.mark.asyncio
    async def test_local_toast_never_reaches_store(self, scheduler):
        store = AsyncMock()
        queue = ToastQueue(store=store, call_later=scheduler.call_later)
        queue.enqueue(make_toast("local-1"))

        assert await queue.mark_read("local-1") is True

        store.mark_read.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_keeps_removal(self, scheduler):
        store = AsyncMock()
        store.mark_read.side_effect = WriteFailure("mark_read", "unavailable", record_id="rec-1")
        queue = ToastQueue(store=store, call_later=scheduler.call_later)
        queue.enqueue(make_toast("rec-1", source=ToastSource.RECORD))

        assert await queue.mark_read("rec-1") is True

        assert "rec-1" not in queue
        assert queue.pending_timers == 0

    @pytest.mark.asyncio
    async def test_unknown_toast(self, scheduler):
        store = AsyncMock()
        queue = ToastQueue(store=store, call_later=scheduler.call_later)

        assert await queue.mark_read("missing") is False
        store.mark_read.assert_not_awaited()


@pytest.mark.asyncio
async def test_default_scheduler_uses_running_loop():
    queue = ToastQueue()
    queue.enqueue(make_toast("a", duration_ms=10))

    await asyncio.sleep(0.05)

    assert len(queue) == 0
    assert queue.pending_timers == 0
