"""
Pytest configuration and fixtures for notifyhub tests.

Provides a deterministic scheduler for toast timers, a monotonic clock and
ready-to-use store, cache and facade fixtures.
"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from notifyhub.cache.local_cache import InMemoryLocalCache
from notifyhub.config import Settings
from notifyhub.notifications.facade import NotificationsFacade
from notifyhub.stores.memory_store import InMemoryNotificationStore

# =============================
# Time Control
# =============================


class FakeTimerHandle:
    """Timer handle recording cancel calls."""

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancel_calls = 0
        self.fired = False

    def cancel(self) -> None:
        self.cancel_calls += 1

    def cancelled(self) -> bool:
        return self.cancel_calls > 0


class FakeScheduler:
    """Manual clock for toast timers; nothing fires until advance() is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[FakeTimerHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted(
            (h for h in self.handles if not h.fired and not h.cancelled() and h.when <= self.now),
            key=lambda h: h.when,
        )
        for handle in due:
            if handle.cancelled():
                continue
            handle.fired = True
            handle.callback()

    @property
    def pending(self) -> list[FakeTimerHandle]:
        return [h for h in self.handles if not h.fired and not h.cancelled()]


class FakeClock:
    """Strictly increasing UTC clock (one second per call)."""

    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================
# Notification Fixtures
# =============================


@pytest.fixture
def test_settings() -> Settings:
    """Settings with instant resubscribe backoff."""
    return Settings(
        environment="test",
        toast_capacity=5,
        toast_duration_ms=5000,
        durable_list_limit=50,
        list_recent_limit=50,
        subscription_retry_attempts=3,
        subscription_retry_backoff_seconds=0.0,
        cache_backend="memory",
    )


@pytest.fixture
def store(clock) -> InMemoryNotificationStore:
    return InMemoryNotificationStore(clock=clock)


@pytest.fixture
def cache() -> InMemoryLocalCache:
    return InMemoryLocalCache()


@pytest_asyncio.fixture
async def facade(
    store, cache, test_settings, scheduler, clock
) -> AsyncGenerator[NotificationsFacade, None]:
    """Idle facade wired to the in-memory store; stopped after the test."""
    notifications = NotificationsFacade(
        store,
        cache=cache,
        settings=test_settings,
        call_later=scheduler.call_later,
        clock=clock,
    )
    yield notifications
    await notifications.stop()


@pytest.fixture
def booking_data() -> dict:
    return {
        "id": "booking-123",
        "trip_id": "trip-9",
        "trip_title": "Alpine Lakes Explorer",
    }


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
