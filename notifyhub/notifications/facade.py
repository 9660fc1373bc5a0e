"""
Notifications Facade

Boundary object presentation layers use to observe and mutate notification
state for one authenticated session. Owns the subscription manager, the toast
queue, the durable notification list and the event dispatcher.

State machine:
--------------
- IDLE: no owner. Mutators are no-ops with a warning log.
- ACTIVE(owner_id): cache painted, store reconciled, live subscription open.

Event flow:
-----------
Store change batch -> SubscriptionManager -> RecordEvent -> asyncio.Queue ->
single dispatcher task -> durable list / toast queue -> published state.

Every session transition bumps a generation counter. Events, retries and
post-await continuations tagged with an old generation are discarded, so a
logout racing with in-flight work never touches the next session's state.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from functools import partial
from typing import Any, Optional
from uuid import uuid4

import structlog

from notifyhub.cache.local_cache import InMemoryLocalCache, LocalCache
from notifyhub.config import Settings
from notifyhub.config import settings as default_settings
from notifyhub.models.notification import (
    NotificationAction,
    NotificationDraft,
    NotificationRecord,
    NotificationState,
    NotificationStats,
    NotificationType,
    RecordEvent,
    SessionStatus,
    ToastNotification,
    ToastSource,
)
from notifyhub.notifications import factory
from notifyhub.notifications.exceptions import FactoryValidationError, SubscriptionError
from notifyhub.notifications.subscription import Subscription, SubscriptionManager
from notifyhub.notifications.toast_queue import CallLater, ToastQueue
from notifyhub.notifications.unread import count_unread
from notifyhub.stores.base import NotificationRecordStore

logger = structlog.get_logger(__name__)

StateListener = Callable[[NotificationState], None]


def merge_record(local: NotificationRecord, incoming: NotificationRecord) -> NotificationRecord:
    """
    Merge a store update into the locally held record.

    An update whose write timestamp is equal to or older than the local one is
    ignored. A newer update replaces the local record, except that a local read
    flag is never downgraded.

    Args:
        local: Record currently in the durable list
        incoming: Record carried by a store event

    Returns:
        The record to keep (``local`` itself when the update is ignored)
    """
    if incoming.written_at <= local.written_at:
        return local
    if local.read and not incoming.read:
        return incoming.model_copy(update={"read": True, "read_at": local.read_at})
    return incoming


class NotificationsFacade:
    """
    Session-scoped notification state and operations.

    Example:
        >>> facade = NotificationsFacade(store, cache)
        >>> await facade.start("user-1")
        >>> facade.unread_count()
        >>> await facade.mark_as_read(record_id)
        >>> await facade.stop()
    """

    def __init__(
        self,
        store: NotificationRecordStore,
        cache: Optional[LocalCache] = None,
        settings: Optional[Settings] = None,
        call_later: Optional[CallLater] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize facade in the IDLE state.

        Args:
            store: Durable notification store
            cache: Local cache for instant paint (defaults to in-memory)
            settings: Limits and retry policy (defaults to global settings)
            call_later: Timer scheduler for toast auto-dismiss
            clock: Timestamp source for optimistic writes and toasts
        """
        self._settings = settings or default_settings
        self._store = store
        self._cache = cache or InMemoryLocalCache()
        self._clock = clock or (lambda: datetime.now(UTC))

        self._status = SessionStatus.IDLE
        self._owner_id: Optional[str] = None
        self._generation = 0
        self._stale = False
        self._records: list[NotificationRecord] = []
        self._listeners: list[StateListener] = []

        self._subscriptions = SubscriptionManager(store)
        self._subscription: Optional[Subscription] = None
        self._events: Optional[asyncio.Queue[tuple[int, RecordEvent]]] = None
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        self._toasts = ToastQueue(
            capacity=self._settings.toast_capacity,
            store=store,
            call_later=call_later,
            on_change=self._publish,
        )

    # =============================
    # State accessors
    # =============================

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def is_active(self) -> bool:
        return self._status == SessionStatus.ACTIVE

    @property
    def stale(self) -> bool:
        """True while the live subscription is down."""
        return self._stale

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    @property
    def pending_timers(self) -> int:
        return self._toasts.pending_timers

    @property
    def notifications(self) -> list[NotificationRecord]:
        """Durable notifications, newest first."""
        return list(self._records)

    @property
    def toasts(self) -> list[ToastNotification]:
        """Active toasts, newest first."""
        return self._toasts.list()

    def unread_count(self) -> int:
        return count_unread(self._toasts.list(), self._records)

    def list_notifications(
        self,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        limit: Optional[int] = None,
    ) -> list[NotificationRecord]:
        """
        Filter the durable list.

        Args:
            unread_only: Only unread records
            notification_type: Only records of this type
            limit: Maximum records returned

        Returns:
            Matching records, newest first
        """
        records = [
            r
            for r in self._records
            if (not unread_only or not r.read)
            and (notification_type is None or r.type == notification_type)
        ]
        return records[:limit] if limit is not None else records

    def stats(self) -> NotificationStats:
        unread = sum(1 for r in self._records if not r.read)
        return NotificationStats(
            total=len(self._records),
            unread=unread,
            read=len(self._records) - unread,
        )

    def state(self) -> NotificationState:
        toasts = self._toasts.list()
        return NotificationState(
            status=self._status,
            owner_id=self._owner_id,
            notifications=list(self._records),
            toasts=toasts,
            unread_count=count_unread(toasts, self._records),
            stale=self._stale,
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a state listener called after every state change.

        Returns:
            Function removing the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # =============================
    # Session lifecycle
    # =============================

    async def start(self, owner_id: str) -> None:
        """
        Activate the session for an owner (IDLE -> ACTIVE).

        Paints from the local cache, reconciles with the store's recent records
        and opens the live subscription. An active session for another owner is
        stopped first.

        Args:
            owner_id: Authenticated account id
        """
        if not owner_id:
            raise ValueError("owner_id is required")

        if self.is_active:
            if self._owner_id == owner_id:
                logger.debug("notifications_session_already_active", owner_id=owner_id)
                return
            await self.stop()

        self._generation += 1
        generation = self._generation
        self._status = SessionStatus.ACTIVE
        self._owner_id = owner_id
        self._stale = False
        self._records = []
        self._events = asyncio.Queue()
        self._dispatcher_task = asyncio.create_task(self._dispatch_events(self._events))

        logger.info("notifications_session_started", owner_id=owner_id)
        self._publish()

        # Instant paint from the last known list
        cached = await self._load_cache(owner_id)
        if not self._is_current(generation):
            return
        if cached:
            self._records = self._trim(cached)
            self._publish()

        # Reconcile with the store
        try:
            recent: Optional[list[NotificationRecord]] = await self._store.list_recent(
                owner_id, self._settings.list_recent_limit
            )
        except Exception as e:
            logger.warning(
                "notifications_list_recent_failed",
                owner_id=owner_id,
                error=str(e),
            )
            recent = None
        if not self._is_current(generation):
            return
        if recent is not None:
            self._records = self._reconcile(recent)
            self._publish()
            await self._persist(generation)
            if not self._is_current(generation):
                return

        if not await self._try_subscribe(generation):
            self._schedule_reconnect(generation)

    async def stop(self) -> None:
        """
        Tear down the session (ACTIVE -> IDLE).

        Cancels every toast timer, closes the live subscription and stops the
        dispatcher before returning. Store records are left untouched.
        """
        if not self.is_active:
            logger.debug("notifications_session_not_active")
            return

        owner_id = self._owner_id
        self._generation += 1
        self._status = SessionStatus.IDLE
        self._owner_id = None
        self._stale = False
        self._records = []
        cancelled_toasts = self._toasts.clear()

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
        if owner_id is not None:
            self._subscriptions.forget(owner_id)
        await self._subscriptions.close_all()

        await self._cancel_task(self._reconnect_task)
        self._reconnect_task = None
        await self._cancel_task(self._dispatcher_task)
        self._dispatcher_task = None
        self._events = None

        logger.info(
            "notifications_session_stopped",
            owner_id=owner_id,
            toasts_cancelled=cancelled_toasts,
        )
        self._publish()

    async def refresh(self) -> bool:
        """
        Reopen the live subscription if it is down.

        Returns:
            True if a live subscription is open afterwards
        """
        if not self._require_active("refresh"):
            return False
        if self._owner_id is not None and self._subscriptions.is_open(self._owner_id):
            return True
        await self._cancel_task(self._reconnect_task)
        self._reconnect_task = None
        return await self._try_subscribe(self._generation)

    async def drain(self) -> None:
        """Wait until every queued store event has been applied."""
        if self._events is not None:
            await self._events.join()

    # =============================
    # Mutators
    # =============================

    async def mark_as_read(self, notification_id: str) -> bool:
        """
        Mark a notification read and remove its toast.

        Local state changes immediately; the store write follows and its
        failure is logged without rolling back.

        Returns:
            True if a toast or record changed
        """
        if not self._require_active("mark_as_read"):
            return False
        generation = self._generation

        record = self._find(notification_id)
        if record is None:
            return await self._toasts.mark_read(notification_id)

        toast_removed = self._toasts.remove(notification_id)
        if record.read:
            return toast_removed

        self._replace(record.as_read(self._clock()))
        self._publish()
        await self._persist(generation)
        await self._write("mark_read", self._store.mark_read, notification_id)
        return True

    async def mark_all_as_read(self) -> int:
        """
        Mark every durable notification read and clear all toasts.

        Returns:
            Number of records that were unread
        """
        if not self._require_active("mark_all_as_read"):
            return 0
        generation = self._generation

        now = self._clock()
        unread_ids = [r.id for r in self._records if not r.read]
        self._records = [r.as_read(now) if not r.read else r for r in self._records]
        self._toasts.clear()
        self._publish()
        await self._persist(generation)

        await asyncio.gather(
            *(self._write("mark_read", self._store.mark_read, rid) for rid in unread_ids)
        )
        logger.info("notifications_marked_all_read", count=len(unread_ids))
        return len(unread_ids)

    async def delete(self, notification_id: str) -> bool:
        """
        Delete a notification locally and in the store.

        Returns:
            True if a toast or record was removed
        """
        if not self._require_active("delete"):
            return False
        generation = self._generation

        toast_removed = self._toasts.remove(notification_id)
        if self._find(notification_id) is None:
            return toast_removed

        self._records = [r for r in self._records if r.id != notification_id]
        self._publish()
        await self._persist(generation)
        await self._write("delete", self._store.delete, notification_id)
        return True

    async def clear_all(self) -> int:
        """
        Remove every notification and toast, deleting records from the store.

        Returns:
            Number of durable records removed
        """
        if not self._require_active("clear_all"):
            return 0
        generation = self._generation

        removed = self._records
        self._records = []
        self._toasts.clear()
        self._publish()
        await self._clear_cache(generation)

        await asyncio.gather(
            *(self._write("delete", self._store.delete, r.id) for r in removed)
        )
        logger.info("notifications_cleared", count=len(removed))
        return len(removed)

    def dismiss_toast(self, toast_id: str) -> bool:
        """Remove a toast without touching its durable record."""
        if not self._require_active("dismiss_toast"):
            return False
        return self._toasts.remove(toast_id)

    def show_toast(
        self,
        title: str,
        message: str = "",
        notification_type: NotificationType = NotificationType.INFO,
        action: Optional[NotificationAction] = None,
        auto_dismiss: bool = True,
        duration_ms: Optional[int] = None,
    ) -> Optional[ToastNotification]:
        """
        Show a session-local toast that is never persisted.

        Returns:
            The queued toast, or None while idle
        """
        if not self._require_active("show_toast"):
            return None
        toast = ToastNotification(
            id=str(uuid4()),
            type=notification_type,
            title=title,
            message=message,
            action=action,
            enqueued_at=self._clock(),
            auto_dismiss=auto_dismiss,
            duration_ms=duration_ms or self._settings.toast_duration_ms,
            source=ToastSource.LOCAL,
        )
        self._toasts.enqueue(toast)
        return toast

    # =============================
    # Notification creation
    # =============================

    async def create_booking_notification(self, booking: Any) -> Optional[str]:
        return await self._create(
            "booking_created", lambda owner_id: factory.booking_created(owner_id, booking)
        )

    async def create_booking_cancellation_notification(self, booking: Any) -> Optional[str]:
        return await self._create(
            "booking_cancelled", lambda owner_id: factory.booking_cancelled(owner_id, booking)
        )

    async def create_favorite_notification(self, item: Any) -> Optional[str]:
        return await self._create(
            "favorite_added", lambda owner_id: factory.favorite_added(owner_id, item)
        )

    async def create_welcome_notification(self, user_name: str) -> Optional[str]:
        return await self._create(
            "welcome",
            lambda owner_id: factory.welcome(owner_id, user_name, self._settings.app_name),
        )

    async def create_profile_update_notification(self) -> Optional[str]:
        return await self._create("profile_updated", factory.profile_updated)

    async def create_password_change_notification(self) -> Optional[str]:
        return await self._create("password_changed", factory.password_changed)

    async def create_system_notification(
        self,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO,
    ) -> Optional[str]:
        return await self._create(
            "system",
            lambda owner_id: factory.system(owner_id, title, message, notification_type),
        )

    async def _create(
        self, kind: str, build: Callable[[str], NotificationDraft]
    ) -> Optional[str]:
        """
        Build a draft for the active owner and write it to the store.

        Never raises: business operations must not fail because their
        notification could not be produced.

        Returns:
            New record id, or None if idle, invalid or the write failed
        """
        if not self._require_active(f"create_{kind}"):
            return None
        owner_id = str(self._owner_id)

        try:
            draft = build(owner_id)
        except FactoryValidationError as e:
            logger.error(
                "notification_validation_failed",
                kind=kind,
                owner_id=owner_id,
                error=str(e),
            )
            return None

        try:
            record_id = await self._store.create(draft)
        except Exception as e:
            logger.error(
                "notification_write_failed",
                operation="create",
                kind=kind,
                owner_id=owner_id,
                error=str(e),
            )
            return None

        logger.info(
            "notification_created",
            notification_id=record_id,
            owner_id=owner_id,
            kind=kind,
        )
        return record_id

    # =============================
    # Subscription handling
    # =============================

    async def _try_subscribe(self, generation: int) -> bool:
        owner_id = self._owner_id
        if owner_id is None or not self._is_current(generation):
            return False

        try:
            subscription = await self._subscriptions.open(
                owner_id,
                partial(self._enqueue_event, generation),
                on_error=partial(self._on_subscription_error, generation),
                known_ids=[r.id for r in self._records],
            )
        except SubscriptionError as e:
            if self._is_current(generation):
                self._stale = True
                logger.warning(
                    "notifications_subscription_unavailable",
                    owner_id=owner_id,
                    error=str(e),
                )
                self._publish()
            return False

        if not self._is_current(generation):
            await subscription.close()
            return False

        self._subscription = subscription
        if self._stale:
            self._stale = False
            self._publish()
        return True

    def _on_subscription_error(self, generation: int, error: SubscriptionError) -> None:
        if not self._is_current(generation):
            return
        self._subscription = None
        self._stale = True
        logger.warning(
            "notifications_subscription_lost",
            owner_id=self._owner_id,
            error=str(error),
        )
        self._publish()
        self._schedule_reconnect(generation)

    def _schedule_reconnect(self, generation: int) -> None:
        if self._settings.subscription_retry_attempts == 0:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect(generation))

    async def _reconnect(self, generation: int) -> None:
        """Resubscribe with exponential backoff."""
        attempts = self._settings.subscription_retry_attempts
        backoff = self._settings.subscription_retry_backoff_seconds

        for attempt in range(1, attempts + 1):
            await asyncio.sleep(backoff * 2 ** (attempt - 1))
            if not self._is_current(generation):
                return
            if await self._try_subscribe(generation):
                logger.info(
                    "notifications_resubscribed",
                    owner_id=self._owner_id,
                    attempt=attempt,
                )
                return
            logger.warning(
                "notifications_resubscribe_failed",
                owner_id=self._owner_id,
                attempt=attempt,
                max_attempts=attempts,
            )

        logger.error("notifications_resubscribe_exhausted", owner_id=self._owner_id)

    def _enqueue_event(self, generation: int, event: RecordEvent) -> None:
        if not self._is_current(generation) or self._events is None:
            return
        self._events.put_nowait((generation, event))

    async def _dispatch_events(self, queue: asyncio.Queue) -> None:
        """Background task applying store events in arrival order."""
        while True:
            try:
                generation, event = await queue.get()
            except asyncio.CancelledError:
                break
            try:
                if self._is_current(generation):
                    await self._handle_event(generation, event)
            except Exception as e:
                logger.error(
                    "notifications_event_failed",
                    kind=event.kind,
                    notification_id=event.record.id,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                queue.task_done()

    async def _handle_event(self, generation: int, event: RecordEvent) -> None:
        if event.kind == "added":
            self._apply_added(event)
        else:
            self._apply_modified(event.record)
        self._publish()
        await self._persist(generation)

    def _apply_added(self, event: RecordEvent) -> None:
        record = event.record
        existing = self._find(record.id)
        if existing is not None:
            self._apply_modified(record)
            return

        self._records = self._trim([record, *self._records])
        logger.debug(
            "notification_received",
            notification_id=record.id,
            initial=event.initial,
        )

        # Listed ids arrive as ``modified``; an ``added`` is new to this session.
        if not record.read:
            self._toasts.enqueue(self._toast_from_record(record))

    def _apply_modified(self, record: NotificationRecord) -> None:
        existing = self._find(record.id)
        if existing is None:
            logger.debug("notification_update_for_unlisted_record", notification_id=record.id)
            return

        merged = merge_record(existing, record)
        if merged is existing:
            return
        self._replace(merged)
        if merged.read:
            self._toasts.remove(merged.id)

    # =============================
    # Helpers
    # =============================

    def _toast_from_record(self, record: NotificationRecord) -> ToastNotification:
        return ToastNotification(
            id=record.id,
            type=record.type,
            title=record.title,
            message=record.message,
            action=record.action,
            enqueued_at=self._clock(),
            auto_dismiss=True,
            duration_ms=self._settings.toast_duration_ms,
            source=ToastSource.RECORD,
        )

    def _reconcile(self, recent: list[NotificationRecord]) -> list[NotificationRecord]:
        """Store list is authoritative; local read flags survive."""
        local = {r.id: r for r in self._records}
        merged = [
            merge_record(local[r.id], r) if r.id in local else r for r in recent
        ]
        return self._trim(merged)

    def _trim(self, records: list[NotificationRecord]) -> list[NotificationRecord]:
        ordered = sorted(records, key=lambda r: r.created_at, reverse=True)
        return ordered[: self._settings.durable_list_limit]

    def _find(self, notification_id: str) -> Optional[NotificationRecord]:
        for record in self._records:
            if record.id == notification_id:
                return record
        return None

    def _replace(self, record: NotificationRecord) -> None:
        self._records = [record if r.id == record.id else r for r in self._records]

    def _is_current(self, generation: int) -> bool:
        return self.is_active and generation == self._generation

    def _require_active(self, operation: str) -> bool:
        if self.is_active:
            return True
        logger.warning("notifications_idle_operation_ignored", operation=operation)
        return False

    async def _write(self, operation: str, call: Callable[[str], Any], record_id: str) -> bool:
        try:
            await call(record_id)
        except Exception as e:
            logger.error(
                "notification_write_failed",
                operation=operation,
                notification_id=record_id,
                error=str(e),
            )
            return False
        return True

    async def _load_cache(self, owner_id: str) -> list[NotificationRecord]:
        try:
            return await self._cache.load(owner_id)
        except Exception as e:
            logger.warning("notifications_cache_load_failed", owner_id=owner_id, error=str(e))
            return []

    async def _persist(self, generation: int) -> None:
        if not self._is_current(generation) or self._owner_id is None:
            return
        try:
            await self._cache.save(self._owner_id, list(self._records))
        except Exception as e:
            logger.warning(
                "notifications_cache_save_failed",
                owner_id=self._owner_id,
                error=str(e),
            )

    async def _clear_cache(self, generation: int) -> None:
        if not self._is_current(generation) or self._owner_id is None:
            return
        try:
            await self._cache.clear(self._owner_id)
        except Exception as e:
            logger.warning(
                "notifications_cache_clear_failed",
                owner_id=self._owner_id,
                error=str(e),
            )

    async def _cancel_task(self, task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _publish(self) -> None:
        if not self._listeners:
            return
        state = self.state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error("notifications_listener_failed", error=str(e), exc_info=True)
