"""
SQL Notification Store

Notification record store on SQLAlchemy 2.0 async ORM. Live subscriptions are
poll-based: each subscriber runs a background task that reloads the owner's
most recent records at a fixed interval and diffs them against the previous
snapshot to produce ``added``/``modified`` change batches.

Records leaving the watched window are not reported as removed, since the
window moving is not a deletion.
"""

import asyncio
from datetime import UTC, datetime
from typing import Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError
from sqlalchemy import delete, desc, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifyhub.models.notification import (
    ChangeBatch,
    NotificationAction,
    NotificationDraft,
    NotificationRecord,
    NotificationType,
    StoreChange,
)
from notifyhub.notifications.exceptions import SubscriptionError, WriteFailure
from notifyhub.orm.models import NotificationORM
from notifyhub.stores.base import (
    ChangeCallback,
    ErrorCallback,
    NotificationRecordStore,
    Unsubscribe,
)

logger = structlog.get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SqlNotificationStore(NotificationRecordStore):
    """Notification store backed by a SQL database."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        poll_interval: float = 2.0,
        snapshot_limit: int = 50,
    ):
        """
        Initialize store.

        Args:
            session_maker: Async session factory
            poll_interval: Seconds between subscription polls
            snapshot_limit: Most recent records watched per subscription
        """
        self._session_maker = session_maker
        self.poll_interval = poll_interval
        self.snapshot_limit = snapshot_limit

    # =============================
    # Record Operations
    # =============================

    async def create(self, draft: NotificationDraft) -> str:
        """
        Persist a new notification.

        Args:
            draft: Payload built by the notification factory

        Returns:
            Id of the created record

        Raises:
            WriteFailure: If the insert fails
        """
        record_id = str(uuid4())
        notification = NotificationORM(
            id=record_id,
            owner_id=draft.owner_id,
            notification_type=draft.type.value,
            title=draft.title,
            message=draft.message,
            data=dict(draft.data),
            action=draft.action.model_dump() if draft.action else None,
            created_at=datetime.now(UTC),
            read=False,
        )

        try:
            async with self._session_maker() as session:
                session.add(notification)
                await session.commit()
        except SQLAlchemyError as e:
            raise WriteFailure("create", str(e)) from e

        logger.info(
            "notification_created",
            notification_id=record_id,
            owner_id=draft.owner_id,
            notification_type=draft.type.value,
        )
        return record_id

    async def mark_read(self, record_id: str) -> None:
        """
        Mark a notification as read.

        Already-read records keep their original ``read_at``.

        Raises:
            WriteFailure: If the record does not exist or the update fails
        """
        stmt = (
            update(NotificationORM)
            .where(NotificationORM.id == record_id, NotificationORM.read == False)  # noqa: E712
            .values(read=True, read_at=datetime.now(UTC))
        )

        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    exists = await session.scalar(
                        select(NotificationORM.id).where(NotificationORM.id == record_id)
                    )
                    if exists is None:
                        raise WriteFailure("mark_read", "record not found", record_id=record_id)
                await session.commit()
        except SQLAlchemyError as e:
            raise WriteFailure("mark_read", str(e), record_id=record_id) from e

    async def delete(self, record_id: str) -> None:
        """
        Delete a notification.

        Raises:
            WriteFailure: If the record does not exist or the delete fails
        """
        stmt = delete(NotificationORM).where(NotificationORM.id == record_id)
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise WriteFailure("delete", str(e), record_id=record_id) from e

        if result.rowcount == 0:
            raise WriteFailure("delete", "record not found", record_id=record_id)

    async def list_recent(self, owner_id: str, limit: int) -> list[NotificationRecord]:
        """
        Get an owner's most recent notifications.

        Args:
            owner_id: Owner id
            limit: Maximum number of results

        Returns:
            Records ordered by most recent first
        """
        query = (
            select(NotificationORM)
            .where(NotificationORM.owner_id == owner_id)
            .order_by(desc(NotificationORM.created_at))
            .limit(limit)
        )
        async with self._session_maker() as session:
            result = await session.execute(query)
            rows = result.scalars().all()
        records: list[NotificationRecord] = []
        for row in rows:
            try:
                records.append(self._orm_to_record(row))
            except (ValueError, ValidationError) as e:
                logger.warning(
                    "sql_store_row_skipped", owner_id=owner_id, record_id=row.id, error=str(e)
                )
        return records

    # =============================
    # Live Subscription
    # =============================

    async def subscribe(
        self,
        owner_id: str,
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        task = asyncio.create_task(self._poll(owner_id, on_change, on_error))
        logger.debug("sql_store_subscribed", owner_id=owner_id, interval=self.poll_interval)

        async def unsubscribe() -> None:
            if task.done():
                return
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        return unsubscribe

    async def _poll(
        self,
        owner_id: str,
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Background task diffing successive snapshots of an owner's records."""
        snapshot: Optional[dict[str, NotificationRecord]] = None

        while True:
            try:
                records = await self.list_recent(owner_id, self.snapshot_limit)
            except Exception as e:
                logger.error("sql_store_poll_failed", owner_id=owner_id, error=str(e))
                on_error(SubscriptionError(owner_id, str(e)))
                return

            changes: list[StoreChange] = []
            current = {r.id: r for r in records}
            for record in records:
                previous = snapshot.get(record.id) if snapshot is not None else None
                if previous is None:
                    changes.append(StoreChange(kind="added", record=record))
                elif previous.read != record.read or previous.read_at != record.read_at:
                    changes.append(StoreChange(kind="modified", record=record))

            if snapshot is None or changes:
                on_change(ChangeBatch(changes=changes, initial=snapshot is None))
            snapshot = current

            await asyncio.sleep(self.poll_interval)

    def _orm_to_record(self, row: NotificationORM) -> NotificationRecord:
        return NotificationRecord(
            id=row.id,
            owner_id=row.owner_id,
            type=NotificationType(row.notification_type),
            title=row.title,
            message=row.message,
            data=dict(row.data or {}),
            action=NotificationAction(**row.action) if row.action else None,
            created_at=_as_utc(row.created_at),
            read=row.read,
            read_at=_as_utc(row.read_at),
        )
