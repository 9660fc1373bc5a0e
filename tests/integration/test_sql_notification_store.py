"""
Integration Tests for SqlNotificationStore

Runs the SQL store against a temporary SQLite database (aiosqlite), including
the poll-based live subscription and a full facade session on top of it.
"""

import asyncio
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from notifyhub.database import create_engine, create_session_maker, init_models
from notifyhub.models.notification import ChangeBatch, NotificationType
from notifyhub.notifications import factory
from notifyhub.notifications.exceptions import SubscriptionError, WriteFailure
from notifyhub.notifications.facade import NotificationsFacade
from notifyhub.orm.models import NotificationORM
from notifyhub.stores.sql_store import SqlNotificationStore


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Poll predicate() until it holds or the timeout expires."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_store(db_engine) -> SqlNotificationStore:
    return SqlNotificationStore(create_session_maker(db_engine), poll_interval=0.05)


@pytest_asyncio.fixture
async def batches(sql_store) -> AsyncGenerator[list[ChangeBatch], None]:
    """Live subscription for user-1 collecting change batches."""
    received: list[ChangeBatch] = []
    errors: list[Exception] = []
    unsubscribe = await sql_store.subscribe("user-1", received.append, errors.append)
    yield received
    await unsubscribe()
    assert errors == []


@pytest.mark.integration
class TestSqlNotificationStore:
    """Record operations."""

    @pytest.mark.asyncio
    async def test_create_and_list_recent(self, sql_store, booking_data):
        first = await sql_store.create(factory.booking_created("user-1", booking_data))
        second = await sql_store.create(factory.password_changed("user-1"))
        await sql_store.create(factory.password_changed("user-2"))

        records = await sql_store.list_recent("user-1", 10)

        assert [r.id for r in records] == [second, first]
        booking = records[1]
        assert booking.type == NotificationType.BOOKING
        assert booking.data["bookingId"] == "booking-123"
        assert booking.action.label == "View Booking"
        assert booking.created_at.tzinfo is not None
        assert booking.read is False
        assert records[0].action is None

    @pytest.mark.asyncio
    async def test_list_recent_respects_limit(self, sql_store):
        for _ in range(3):
            await sql_store.create(factory.profile_updated("user-1"))

        assert len(await sql_store.list_recent("user-1", 2)) == 2

    @pytest.mark.asyncio
    async def test_mark_read_keeps_first_read_at(self, sql_store):
        record_id = await sql_store.create(factory.profile_updated("user-1"))

        await sql_store.mark_read(record_id)
        first = (await sql_store.list_recent("user-1", 1))[0]
        await sql_store.mark_read(record_id)
        second = (await sql_store.list_recent("user-1", 1))[0]

        assert first.read is True
        assert first.read_at is not None
        assert first.read_at.tzinfo == UTC
        assert second.read_at == first.read_at

    @pytest.mark.asyncio
    async def test_mark_read_missing_record(self, sql_store):
        with pytest.raises(WriteFailure) as exc_info:
            await sql_store.mark_read("missing")

        assert exc_info.value.operation == "mark_read"
        assert exc_info.value.record_id == "missing"

    @pytest.mark.asyncio
    async def test_delete(self, sql_store):
        record_id = await sql_store.create(factory.profile_updated("user-1"))

        await sql_store.delete(record_id)

        assert await sql_store.list_recent("user-1", 10) == []
        with pytest.raises(WriteFailure):
            await sql_store.delete(record_id)


@pytest.mark.integration
class TestSqlSubscription:
    """Poll-based change feed."""

    @pytest.mark.asyncio
    async def test_initial_snapshot_then_changes(self, sql_store, batches):
        await wait_for(lambda: len(batches) >= 1)
        assert batches[0].initial is True
        assert batches[0].changes == []

        record_id = await sql_store.create(factory.profile_updated("user-1"))
        await wait_for(lambda: any(c.record.id == record_id for b in batches for c in b.changes))
        added = [c for b in batches[1:] for c in b.changes]
        assert [(c.kind, c.record.id) for c in added] == [("added", record_id)]

        await sql_store.mark_read(record_id)
        await wait_for(lambda: any(c.kind == "modified" for b in batches for c in b.changes))
        modified = [c for b in batches for c in b.changes if c.kind == "modified"]
        assert modified[0].record.read is True
        assert all(not b.initial for b in batches[1:])

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_polling(self, sql_store):
        received: list[ChangeBatch] = []
        unsubscribe = await sql_store.subscribe("user-1", received.append, lambda e: None)
        await wait_for(lambda: len(received) >= 1)

        await unsubscribe()
        await sql_store.create(factory.profile_updated("user-1"))
        await asyncio.sleep(0.15)

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_undecodable_row_skipped(self, sql_store, db_engine, batches):
        async with create_session_maker(db_engine)() as session:
            session.add(
                NotificationORM(
                    id="legacy-promo",
                    owner_id="user-1",
                    notification_type="promo",
                    title="Spring sale",
                    message="20% off",
                    data={},
                    created_at=datetime.now(UTC),
                )
            )
            await session.commit()

        record_id = await sql_store.create(factory.password_changed("user-1"))
        await wait_for(
            lambda: any(c.record.id == record_id for b in batches for c in b.changes)
        )

        assert [r.id for r in await sql_store.list_recent("user-1", 10)] == [record_id]
        assert all(c.record.id != "legacy-promo" for b in batches for c in b.changes)

    @pytest.mark.asyncio
    async def test_unexpected_poll_failure_reported(self, sql_store):
        received: list[ChangeBatch] = []
        errors: list[Exception] = []
        await sql_store.subscribe("user-1", received.append, errors.append)
        await wait_for(lambda: len(received) >= 1)

        sql_store.list_recent = AsyncMock(side_effect=RuntimeError("decoder bug"))
        await wait_for(lambda: len(errors) >= 1)

        assert len(errors) == 1
        assert isinstance(errors[0], SubscriptionError)
        assert errors[0].owner_id == "user-1"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_facade_session_over_sql_store(sql_store, test_settings, scheduler, booking_data):
    """Booking notification flows from the database into toasts and back."""
    facade = NotificationsFacade(sql_store, settings=test_settings, call_later=scheduler.call_later)
    await facade.start("user-1")

    record_id = await facade.create_booking_notification(booking_data)
    await wait_for(lambda: any(t.id == record_id for t in facade.toasts))
    assert facade.unread_count() == 1

    await facade.mark_as_read(record_id)
    assert facade.toasts == []
    assert facade.unread_count() == 0

    await wait_for(lambda: facade.notifications[0].read_at is not None)
    stored = (await sql_store.list_recent("user-1", 1))[0]
    assert stored.read is True

    await facade.stop()
    assert scheduler.pending == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_facade_survives_unknown_notification_type(
    sql_store, db_engine, test_settings, scheduler
):
    """A row with an unknown type is skipped while later records keep flowing."""
    facade = NotificationsFacade(sql_store, settings=test_settings, call_later=scheduler.call_later)
    await facade.start("user-1")

    async with create_session_maker(db_engine)() as session:
        session.add(
            NotificationORM(
                id="legacy-promo",
                owner_id="user-1",
                notification_type="promo",
                title="Spring sale",
                message="20% off",
                data={},
                created_at=datetime.now(UTC),
            )
        )
        await session.commit()
    await asyncio.sleep(0.15)

    record_id = await facade.create_password_change_notification()
    await wait_for(lambda: any(t.id == record_id for t in facade.toasts))

    assert facade.stale is False
    assert not facade.subscription.closed
    assert [r.id for r in facade.notifications] == [record_id]

    await facade.stop()
