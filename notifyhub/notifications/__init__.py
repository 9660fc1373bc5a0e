"""
Notification delivery and toast lifecycle for authenticated sessions.

This package provides:
- NotificationsFacade: session-scoped state machine and operations
- SubscriptionManager: one live store subscription per owner, deduplicated
- ToastQueue: bounded newest-first toasts with auto-dismiss timers
- count_unread: always-recomputed unread count
- factory: notification copy for business events
"""

from notifyhub.notifications.facade import NotificationsFacade, merge_record
from notifyhub.notifications.session import (
    AuthSession,
    AuthSessionProvider,
    NotificationSessionBinder,
)
from notifyhub.notifications.subscription import Subscription, SubscriptionManager
from notifyhub.notifications.toast_queue import ToastQueue
from notifyhub.notifications.unread import count_unread

__all__ = [
    "AuthSession",
    "AuthSessionProvider",
    "NotificationSessionBinder",
    "NotificationsFacade",
    "Subscription",
    "SubscriptionManager",
    "ToastQueue",
    "count_unread",
    "merge_record",
]
