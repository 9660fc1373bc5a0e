"""
Notification record store adapters.
"""

from notifyhub.stores.base import NotificationRecordStore
from notifyhub.stores.memory_store import InMemoryNotificationStore

__all__ = ["InMemoryNotificationStore", "NotificationRecordStore"]
