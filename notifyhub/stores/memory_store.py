"""
In-process notification store.

Push-style adapter keeping records in memory. Useful for local development,
single-process deployments and tests. Subscribers receive the current snapshot
on subscribe and a change batch after every write.
"""

from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

import structlog

from notifyhub.models.notification import (
    ChangeBatch,
    NotificationDraft,
    NotificationRecord,
    StoreChange,
)
from notifyhub.notifications.exceptions import WriteFailure
from notifyhub.stores.base import (
    ChangeCallback,
    ErrorCallback,
    NotificationRecordStore,
    Unsubscribe,
)

logger = structlog.get_logger(__name__)


class _Listener:
    def __init__(self, owner_id: str, on_change: ChangeCallback, on_error: ErrorCallback):
        self.owner_id = owner_id
        self.on_change = on_change
        self.on_error = on_error


class InMemoryNotificationStore(NotificationRecordStore):
    """Notification store backed by a dict, with synchronous change push."""

    def __init__(
        self,
        snapshot_limit: int = 50,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize store.

        Args:
            snapshot_limit: Records included in the initial subscription snapshot
            clock: Timestamp source (defaults to UTC now)
        """
        self.snapshot_limit = snapshot_limit
        self._clock = clock or (lambda: datetime.now(UTC))
        self._records: dict[str, NotificationRecord] = {}
        self._listeners: dict[str, list[_Listener]] = defaultdict(list)

    def get(self, record_id: str) -> NotificationRecord | None:
        return self._records.get(record_id)

    def put(self, record: NotificationRecord) -> None:
        """Insert or replace a record as-is and push it to subscribers."""
        kind: Literal["added", "modified"] = (
            "modified" if record.id in self._records else "added"
        )
        self._records[record.id] = record
        self._push(record.owner_id, kind, record)

    def subscriber_count(self, owner_id: str) -> int:
        return len(self._listeners.get(owner_id, []))

    async def subscribe(
        self,
        owner_id: str,
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        listener = _Listener(owner_id, on_change, on_error)
        self._listeners[owner_id].append(listener)

        snapshot = await self.list_recent(owner_id, self.snapshot_limit)
        on_change(
            ChangeBatch(
                changes=[StoreChange(kind="added", record=r) for r in snapshot],
                initial=True,
            )
        )
        logger.debug("memory_store_subscribed", owner_id=owner_id, snapshot=len(snapshot))

        async def unsubscribe() -> None:
            listeners = self._listeners.get(owner_id, [])
            if listener in listeners:
                listeners.remove(listener)
                logger.debug("memory_store_unsubscribed", owner_id=owner_id)

        return unsubscribe

    async def create(self, draft: NotificationDraft) -> str:
        record = NotificationRecord(
            id=str(uuid4()),
            owner_id=draft.owner_id,
            type=draft.type,
            title=draft.title,
            message=draft.message,
            data=dict(draft.data),
            action=draft.action,
            created_at=self._clock(),
            read=False,
        )
        self._records[record.id] = record
        logger.info(
            "notification_created",
            notification_id=record.id,
            owner_id=record.owner_id,
            notification_type=record.type.value,
        )
        self._push(record.owner_id, "added", record)
        return record.id

    async def mark_read(self, record_id: str) -> None:
        record = self._records.get(record_id)
        if record is None:
            raise WriteFailure("mark_read", "record not found", record_id=record_id)
        if record.read:
            return
        updated = record.as_read(self._clock())
        self._records[record_id] = updated
        self._push(updated.owner_id, "modified", updated)

    async def delete(self, record_id: str) -> None:
        record = self._records.pop(record_id, None)
        if record is None:
            raise WriteFailure("delete", "record not found", record_id=record_id)
        self._push(record.owner_id, "removed", record)

    async def list_recent(self, owner_id: str, limit: int) -> list[NotificationRecord]:
        owned = [r for r in self._records.values() if r.owner_id == owner_id]
        owned.sort(key=lambda r: r.created_at, reverse=True)
        return owned[:limit]

    def fail_subscriptions(self, owner_id: str, error: Exception) -> int:
        """
        Push a transport failure to every subscriber of an owner.

        Failed feeds are dropped, mirroring a broken connection.

        Returns:
            Number of subscribers notified
        """
        listeners = self._listeners.pop(owner_id, [])
        for listener in listeners:
            listener.on_error(error)
        logger.warning(
            "memory_store_subscriptions_failed",
            owner_id=owner_id,
            subscribers=len(listeners),
            error=str(error),
        )
        return len(listeners)

    def _push(
        self,
        owner_id: str,
        kind: Literal["added", "modified", "removed"],
        record: NotificationRecord,
    ) -> None:
        batch = ChangeBatch(changes=[StoreChange(kind=kind, record=record)])
        for listener in list(self._listeners.get(owner_id, [])):
            try:
                listener.on_change(batch)
            except Exception as e:
                logger.error(
                    "memory_store_listener_failed",
                    owner_id=owner_id,
                    error=str(e),
                    exc_info=True,
                )
