"""
Toast Queue

Bounded, newest-first queue of ephemeral toasts for the current session.

Each auto-dismissing toast owns exactly one timer while queued. Every removal
path (expiry, manual dismiss, mark-as-read, eviction, clear) pops the timer
handle once, so cancelling is idempotent and a timer firing in the same tick as
a manual dismiss results in a single logical removal.
"""

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Optional, Protocol

import structlog

from notifyhub.models.notification import ToastNotification, ToastSource

if TYPE_CHECKING:
    from notifyhub.stores.base import NotificationRecordStore

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 5
DEFAULT_DURATION_MS = 5000


class TimerHandle(Protocol):
    """Subset of asyncio.TimerHandle the queue relies on."""

    def cancel(self) -> None: ...


CallLater = Callable[[float, Callable[[], None]], TimerHandle]


def _loop_call_later(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class ToastQueue:
    """
    Newest-first toast queue with capacity eviction and auto-dismiss timers.

    Example:
        >>> queue = ToastQueue(capacity=5)
        >>> queue.enqueue(toast)  # starts a 5s dismiss timer
        >>> queue.remove(toast.id)  # cancels it
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        store: Optional["NotificationRecordStore"] = None,
        call_later: Optional[CallLater] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize toast queue.

        Args:
            capacity: Maximum number of queued toasts
            store: Store receiving read-mutations for record-backed toasts
            call_later: Timer scheduler (defaults to the running loop's call_later)
            on_change: Callback invoked after every queue mutation
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._store = store
        self._call_later = call_later or _loop_call_later
        self._on_change = on_change
        self._entries: list[ToastNotification] = []
        self._timers: dict[str, TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, toast_id: object) -> bool:
        return any(t.id == toast_id for t in self._entries)

    @property
    def pending_timers(self) -> int:
        """Number of live auto-dismiss timers."""
        return len(self._timers)

    def list(self) -> list[ToastNotification]:
        """Current queue, newest first."""
        return list(self._entries)

    def get(self, toast_id: str) -> Optional[ToastNotification]:
        for toast in self._entries:
            if toast.id == toast_id:
                return toast
        return None

    def enqueue(self, toast: ToastNotification) -> None:
        """
        Insert a toast at the head of the queue.

        A queued toast with the same id is replaced. When the queue grows past
        capacity the oldest toast is evicted and its timer cancelled.

        Args:
            toast: Toast to show
        """
        if toast.id in self:
            self._discard(toast.id)

        self._entries.insert(0, toast)

        while len(self._entries) > self.capacity:
            evicted = self._entries.pop()
            self._cancel_timer(evicted.id)
            logger.debug("toast_evicted", toast_id=evicted.id, capacity=self.capacity)

        if toast.auto_dismiss:
            self._timers[toast.id] = self._call_later(
                toast.duration_ms / 1000,
                lambda toast_id=toast.id: self._expire(toast_id),
            )

        logger.debug(
            "toast_enqueued",
            toast_id=toast.id,
            source=toast.source.value,
            auto_dismiss=toast.auto_dismiss,
            queue_length=len(self._entries),
        )
        self._notify()

    def remove(self, toast_id: str) -> bool:
        """
        Remove a toast and cancel its timer.

        Safe to call repeatedly or for an unknown id.

        Returns:
            True if a toast was removed, False if it was not queued
        """
        removed = self._discard(toast_id)
        if removed:
            logger.debug("toast_removed", toast_id=toast_id)
            self._notify()
        return removed

    async def mark_read(self, toast_id: str) -> bool:
        """
        Remove a toast and forward the read-mutation to the store.

        The removal is applied before the store call and is kept if the store
        write fails.

        Returns:
            True if a toast was removed
        """
        toast = self.get(toast_id)
        removed = self.remove(toast_id)

        if toast is None or toast.source != ToastSource.RECORD or self._store is None:
            return removed

        try:
            await self._store.mark_read(toast_id)
        except Exception as e:
            logger.error(
                "toast_mark_read_write_failed",
                toast_id=toast_id,
                error=str(e),
            )
        return removed

    def clear(self) -> int:
        """
        Cancel every timer and empty the queue.

        Returns:
            Number of toasts removed
        """
        count = len(self._entries)
        for toast_id in list(self._timers):
            self._cancel_timer(toast_id)
        self._entries.clear()
        if count:
            logger.debug("toast_queue_cleared", removed=count)
            self._notify()
        return count

    def _expire(self, toast_id: str) -> None:
        # The handle already fired; drop it without cancelling.
        if self._timers.pop(toast_id, None) is None:
            return
        self._entries = [t for t in self._entries if t.id != toast_id]
        logger.debug("toast_expired", toast_id=toast_id)
        self._notify()

    def _discard(self, toast_id: str) -> bool:
        self._cancel_timer(toast_id)
        before = len(self._entries)
        self._entries = [t for t in self._entries if t.id != toast_id]
        return len(self._entries) != before

    def _cancel_timer(self, toast_id: str) -> None:
        handle = self._timers.pop(toast_id, None)
        if handle is not None:
            handle.cancel()

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception as e:
            logger.error("toast_queue_listener_failed", error=str(e), exc_info=True)
