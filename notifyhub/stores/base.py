"""
Notification record store interface.

The remote store is an external collaborator: it persists durable notification
records per owner and pushes change batches to live subscribers. Adapters
implement this interface; the core never depends on a concrete transport.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from notifyhub.models.notification import (
    ChangeBatch,
    NotificationDraft,
    NotificationRecord,
)

ChangeCallback = Callable[[ChangeBatch], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], Awaitable[None]]


class NotificationRecordStore(ABC):
    """
    Durable notification storage with live change feed.

    Records are append-only except for the read flag. Write methods raise
    WriteFailure when the store rejects or cannot complete the write.
    """

    @abstractmethod
    async def subscribe(
        self,
        owner_id: str,
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """
        Open a live change feed for an owner's records.

        The first batch delivered is the current snapshot (``initial=True``).

        Args:
            owner_id: Owner whose records are watched
            on_change: Receives each change batch
            on_error: Receives transport failures; the feed is dead afterwards

        Returns:
            Coroutine function closing the feed
        """

    @abstractmethod
    async def create(self, draft: NotificationDraft) -> str:
        """Persist a new record and return its id."""

    @abstractmethod
    async def mark_read(self, record_id: str) -> None:
        """Set ``read=True`` and ``read_at=now`` (no-op if already read)."""

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """Delete a record."""

    @abstractmethod
    async def list_recent(self, owner_id: str, limit: int) -> list[NotificationRecord]:
        """Most recent records for an owner, newest first."""
