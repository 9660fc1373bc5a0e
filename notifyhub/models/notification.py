"""
Notification data models for durable records and session toasts.

This module defines Pydantic models for the durable notification records kept
in the remote store, the ephemeral toasts held for the current session, and the
change events flowing from the store into the notifications facade.

Serialized field names follow the store contract (camelCase: ``ownerId``,
``createdAt``, ``readAt``); Python attributes stay snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NotificationType(str, Enum):
    """Types of notifications supported by the system."""

    BOOKING = "booking"
    FAVORITE = "favorite"
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"
    ERROR = "error"


class ToastSource(str, Enum):
    """Where a toast came from."""

    RECORD = "record"  # Mirrored from a durable record (toast id == record id)
    LOCAL = "local"  # Synthesized from a UI event, never persisted


class SessionStatus(str, Enum):
    """Notification session states."""

    IDLE = "idle"
    ACTIVE = "active"


class _ContractModel(BaseModel):
    """Base for models serialized with the store's camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationAction(_ContractModel):
    """Routing hint attached to a notification (button label + target URL)."""

    label: str = Field(..., min_length=1, max_length=100)
    url: str = Field(..., min_length=1, max_length=500)


class NotificationDraft(_ContractModel):
    """
    Pre-write notification payload produced by the notification factory.

    Carries everything a store needs to create a record; the store assigns
    ``id`` and ``created_at``.
    """

    owner_id: str = Field(..., min_length=1)
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    data: dict[str, Any] = Field(default_factory=dict)
    action: Optional[NotificationAction] = None


class NotificationRecord(_ContractModel):
    """Durable notification record persisted in the store."""

    id: str
    owner_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    action: Optional[NotificationAction] = None
    created_at: datetime
    read: bool = False
    read_at: Optional[datetime] = None

    @property
    def written_at(self) -> datetime:
        """Timestamp of the latest write to this record."""
        return self.read_at or self.created_at

    def as_read(self, read_at: datetime) -> "NotificationRecord":
        """Return a copy with the read flag set (no-op copy if already read)."""
        if self.read:
            return self.model_copy()
        return self.model_copy(update={"read": True, "read_at": read_at})


class ToastNotification(BaseModel):
    """Ephemeral in-memory notification shown for the current session."""

    id: str
    type: NotificationType = NotificationType.INFO
    title: str
    message: str = ""
    action: Optional[NotificationAction] = None
    enqueued_at: datetime
    auto_dismiss: bool = True
    duration_ms: int = Field(default=5000, gt=0)
    source: ToastSource = ToastSource.LOCAL


class StoreChange(BaseModel):
    """Single document change pushed by a store subscription."""

    kind: Literal["added", "modified", "removed"]
    record: NotificationRecord


class ChangeBatch(BaseModel):
    """
    Batch of changes delivered by one store push.

    ``initial`` marks the snapshot batch delivered when a subscription opens.
    """

    changes: list[StoreChange] = Field(default_factory=list)
    initial: bool = False


class RecordEvent(BaseModel):
    """Discriminated event emitted by the subscription manager."""

    kind: Literal["added", "modified"]
    owner_id: str
    record: NotificationRecord
    initial: bool = False


class NotificationStats(BaseModel):
    """Read/unread totals over the durable notification list."""

    total: int = 0
    unread: int = 0
    read: int = 0


class NotificationState(BaseModel):
    """Snapshot of facade state published to presentation listeners."""

    model_config = ConfigDict(frozen=True)

    status: SessionStatus
    owner_id: Optional[str] = None
    notifications: list[NotificationRecord] = Field(default_factory=list)
    toasts: list[ToastNotification] = Field(default_factory=list)
    unread_count: int = 0
    stale: bool = False


class NotificationListResponse(BaseModel):
    """List of durable notifications with paging metadata."""

    data: list[NotificationRecord]
    pagination: dict[str, Any]


class NotificationResponse(BaseModel):
    """Standard response for notification operations."""

    success: bool
    message: Optional[str] = None
    notification_id: Optional[str] = None


class UnreadCountResponse(BaseModel):
    """Current unread notification count."""

    unread_count: int


class SessionRequest(BaseModel):
    """Request to open a notification session for an owner."""

    owner_id: str = Field(..., min_length=1)
