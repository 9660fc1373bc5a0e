"""
Subscription Manager

Keeps exactly one live store subscription per owner and translates store
change batches into ``added``/``modified`` RecordEvents.

Dedupe:
-------
Every owner has a seen-id set that outlives individual subscriptions. A store
reconnect or snapshot replay re-delivers records as ``added``; ids already in
the seen set are re-emitted as ``modified`` so nothing is announced twice.

Errors:
-------
Failure to open raises SubscriptionError. Failure of a live feed is logged,
closes the subscription and is forwarded to ``on_error``. The manager never
retries; retry policy belongs to the caller.
"""

from collections.abc import Callable, Iterable
from typing import Optional

import structlog

from notifyhub.models.notification import ChangeBatch, RecordEvent
from notifyhub.notifications.exceptions import SubscriptionError
from notifyhub.stores.base import NotificationRecordStore, Unsubscribe

logger = structlog.get_logger(__name__)

EventCallback = Callable[[RecordEvent], None]
SubscriptionErrorCallback = Callable[[SubscriptionError], None]


class Subscription:
    """Handle for one live owner subscription."""

    def __init__(self, manager: "SubscriptionManager", owner_id: str):
        self.owner_id = owner_id
        self.error: Optional[SubscriptionError] = None
        self._manager = manager
        self._unsubscribe: Optional[Unsubscribe] = None
        self._closed = False
        self._live = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close the feed. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._manager._release(self)

        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is None:
            return
        try:
            await unsubscribe()
        except Exception as e:
            logger.warning(
                "subscription_unsubscribe_failed",
                owner_id=self.owner_id,
                error=str(e),
            )
        logger.info("subscription_closed", owner_id=self.owner_id)

    def _mark_failed(self, error: SubscriptionError) -> None:
        self.error = error
        self._closed = True
        self._unsubscribe = None
        self._manager._release(self)


class SubscriptionManager:
    """
    Opens and tracks live store subscriptions, one per owner.

    Example:
        >>> manager = SubscriptionManager(store)
        >>> subscription = await manager.open("user-1", on_event)
        >>> await subscription.close()
    """

    def __init__(self, store: NotificationRecordStore):
        """
        Initialize manager.

        Args:
            store: Store providing the live change feed
        """
        self._store = store
        self._subscriptions: dict[str, Subscription] = {}
        self._seen: dict[str, set[str]] = {}

    def is_open(self, owner_id: str) -> bool:
        subscription = self._subscriptions.get(owner_id)
        return subscription is not None and not subscription.closed

    async def open(
        self,
        owner_id: str,
        on_event: EventCallback,
        on_error: Optional[SubscriptionErrorCallback] = None,
        known_ids: Iterable[str] = (),
    ) -> Subscription:
        """
        Open the live subscription for an owner.

        An existing live subscription for the same owner is closed first.

        Args:
            owner_id: Owner whose records are watched
            on_event: Receives translated RecordEvents
            on_error: Receives SubscriptionError if the live feed fails
            known_ids: Record ids already shown; seeded into the dedupe set

        Returns:
            Live Subscription handle

        Raises:
            SubscriptionError: If the store cannot open the feed
        """
        existing = self._subscriptions.get(owner_id)
        if existing is not None:
            logger.info("subscription_replaced", owner_id=owner_id)
            await existing.close()

        self._seen.setdefault(owner_id, set()).update(known_ids)

        subscription = Subscription(self, owner_id)
        self._subscriptions[owner_id] = subscription

        def handle_change(batch: ChangeBatch) -> None:
            if subscription.closed:
                return
            self._dispatch(subscription, batch, on_event)

        def handle_error(error: Exception) -> None:
            if subscription.closed:
                return
            failure = (
                error
                if isinstance(error, SubscriptionError)
                else SubscriptionError(owner_id, str(error))
            )
            logger.error("subscription_failed", owner_id=owner_id, error=str(error))
            subscription._mark_failed(failure)
            # Failures while opening surface as the exception raised by open().
            if subscription._live and on_error is not None:
                on_error(failure)

        try:
            unsubscribe = await self._store.subscribe(owner_id, handle_change, handle_error)
        except Exception as e:
            self._release(subscription)
            subscription._closed = True
            logger.error("subscription_open_failed", owner_id=owner_id, error=str(e))
            raise SubscriptionError(owner_id, str(e)) from e

        if subscription.closed:
            # Failed or closed while the store was still opening the feed.
            await unsubscribe()
            if subscription.error is not None:
                raise subscription.error
            return subscription

        subscription._unsubscribe = unsubscribe
        subscription._live = True
        logger.info("subscription_opened", owner_id=owner_id)
        return subscription

    def forget(self, owner_id: str) -> None:
        """Drop the dedupe set of an owner (session ended)."""
        self._seen.pop(owner_id, None)

    async def close_all(self) -> None:
        for subscription in list(self._subscriptions.values()):
            await subscription.close()

    def _release(self, subscription: Subscription) -> None:
        if self._subscriptions.get(subscription.owner_id) is subscription:
            del self._subscriptions[subscription.owner_id]

    def _dispatch(
        self,
        subscription: Subscription,
        batch: ChangeBatch,
        on_event: EventCallback,
    ) -> None:
        owner_id = subscription.owner_id
        seen = self._seen.setdefault(owner_id, set())

        for change in batch.changes:
            record = change.record
            if record.owner_id != owner_id:
                logger.warning(
                    "subscription_foreign_record_dropped",
                    owner_id=owner_id,
                    record_owner_id=record.owner_id,
                    notification_id=record.id,
                )
                continue

            if change.kind == "removed":
                seen.discard(record.id)
                logger.debug("subscription_record_removed", notification_id=record.id)
                continue

            if change.kind == "added" and record.id not in seen:
                kind = "added"
            else:
                kind = "modified"
            seen.add(record.id)

            try:
                on_event(
                    RecordEvent(
                        kind=kind,
                        owner_id=owner_id,
                        record=record,
                        initial=batch.initial,
                    )
                )
            except Exception as e:
                logger.error(
                    "subscription_event_handler_failed",
                    owner_id=owner_id,
                    notification_id=record.id,
                    error=str(e),
                    exc_info=True,
                )
