"""
Notification Factory

Single place where notification copy is authored. Each builder takes business
data for one event kind and returns a fully populated NotificationDraft ready
for a store write. Builders are pure: no I/O, no state.

Malformed input raises FactoryValidationError before anything reaches a store.
"""

from collections.abc import Mapping
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError, model_validator

from notifyhub.models.notification import (
    NotificationAction,
    NotificationDraft,
    NotificationType,
)
from notifyhub.notifications.exceptions import FactoryValidationError

BOOKINGS_URL = "/profile?tab=bookings"
WISHLIST_URL = "/wishlist"
TRIPS_URL = "/trips"
PROFILE_URL = "/profile"


class BookingDetails(BaseModel):
    """Booking data needed to describe a booking notification."""

    id: str = Field(..., min_length=1)
    trip_id: Optional[str] = None
    hotel_id: Optional[str] = None
    trip_title: Optional[str] = None
    hotel_name: Optional[str] = None

    @model_validator(mode="after")
    def require_display_name(self) -> "BookingDetails":
        """A booking must name what was booked."""
        if not (self.trip_title or self.hotel_name):
            raise ValueError("booking needs a trip_title or hotel_name")
        return self

    @property
    def display_name(self) -> str:
        return self.trip_title or self.hotel_name  # type: ignore[return-value]

    @property
    def item_kind(self) -> str:
        return "trip" if self.trip_id else "hotel"

    @property
    def item_id(self) -> Optional[str]:
        return self.trip_id or self.hotel_id


class FavoriteItem(BaseModel):
    """Wishlist item data."""

    id: str = Field(..., min_length=1)
    title: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None

    @model_validator(mode="after")
    def require_display_name(self) -> "FavoriteItem":
        if not (self.title or self.name):
            raise ValueError("favorite item needs a title or name")
        return self

    @property
    def display_name(self) -> str:
        return self.title or self.name  # type: ignore[return-value]


ModelT = TypeVar("ModelT", bound=BaseModel)


def _coerce(model: type[ModelT], value: ModelT | Mapping[str, Any], kind: str) -> ModelT:
    """Validate raw business data into its input model."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as e:
        raise FactoryValidationError(f"Invalid {kind} data: {e}") from e


def _draft(**fields: Any) -> NotificationDraft:
    try:
        return NotificationDraft(**fields)
    except ValidationError as e:
        raise FactoryValidationError(f"Invalid notification: {e}") from e


def _require_owner(owner_id: str) -> None:
    if not owner_id or not str(owner_id).strip():
        raise FactoryValidationError("owner_id is required")


def booking_created(
    owner_id: str, booking: BookingDetails | Mapping[str, Any]
) -> NotificationDraft:
    """
    Build the booking confirmation notification.

    Args:
        owner_id: Account receiving the notification
        booking: Booking data (id plus trip title or hotel name)

    Returns:
        NotificationDraft of type BOOKING

    Raises:
        FactoryValidationError: If owner or booking data is malformed
    """
    _require_owner(owner_id)
    details = _coerce(BookingDetails, booking, "booking")
    return _draft(
        owner_id=owner_id,
        type=NotificationType.BOOKING,
        title="Booking Confirmed! 🎉",
        message=(
            f'Your booking for "{details.display_name}" has been confirmed. '
            "Check your email for details."
        ),
        data={
            "bookingId": details.id,
            "type": details.item_kind,
            "itemId": details.item_id,
        },
        action=NotificationAction(label="View Booking", url=BOOKINGS_URL),
    )


def booking_cancelled(
    owner_id: str, booking: BookingDetails | Mapping[str, Any]
) -> NotificationDraft:
    """
    Build the booking cancellation notification.

    Raises:
        FactoryValidationError: If owner or booking data is malformed
    """
    _require_owner(owner_id)
    details = _coerce(BookingDetails, booking, "booking")
    return _draft(
        owner_id=owner_id,
        type=NotificationType.WARNING,
        title="Booking Cancelled ⚠️",
        message=(
            f'Your booking for "{details.display_name}" has been cancelled. '
            "Refund will be processed within 3-5 business days."
        ),
        data={"bookingId": details.id, "type": "cancellation"},
        action=NotificationAction(label="View Details", url=BOOKINGS_URL),
    )


def favorite_added(
    owner_id: str, item: FavoriteItem | Mapping[str, Any]
) -> NotificationDraft:
    """Build the wishlist notification."""
    _require_owner(owner_id)
    favorite = _coerce(FavoriteItem, item, "favorite item")
    return _draft(
        owner_id=owner_id,
        type=NotificationType.FAVORITE,
        title="Added to Favorites! ❤️",
        message=(
            f'"{favorite.display_name}" has been added to your wishlist. '
            "View it anytime!"
        ),
        data={"itemId": favorite.id, "type": favorite.type},
        action=NotificationAction(label="View Wishlist", url=WISHLIST_URL),
    )


def welcome(owner_id: str, user_name: str, app_name: str = "Tours") -> NotificationDraft:
    """Build the account welcome notification."""
    _require_owner(owner_id)
    if not user_name or not user_name.strip():
        raise FactoryValidationError("user_name is required for a welcome notification")
    return _draft(
        owner_id=owner_id,
        type=NotificationType.SUCCESS,
        title=f"Welcome to {app_name}! 🌟",
        message=(
            f"Hi {user_name.strip()}! Your account has been created successfully. "
            "Discover amazing destinations and book your dream vacation with us."
        ),
        data={"type": "welcome"},
        action=NotificationAction(label="Explore Trips", url=TRIPS_URL),
    )


def profile_updated(owner_id: str) -> NotificationDraft:
    _require_owner(owner_id)
    return _draft(
        owner_id=owner_id,
        type=NotificationType.SUCCESS,
        title="Profile Updated! ✅",
        message="Your profile information has been updated successfully.",
        data={"type": "profile"},
        action=NotificationAction(label="View Profile", url=PROFILE_URL),
    )


def password_changed(owner_id: str) -> NotificationDraft:
    _require_owner(owner_id)
    return _draft(
        owner_id=owner_id,
        type=NotificationType.SUCCESS,
        title="Password Changed! 🔒",
        message=(
            "Your password has been changed successfully. "
            "Your account is now more secure."
        ),
        data={"type": "security"},
    )


def system(
    owner_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.INFO,
) -> NotificationDraft:
    """Build a free-form system notification (maintenance notices, announcements)."""
    _require_owner(owner_id)
    if not title or not title.strip():
        raise FactoryValidationError("title is required for a system notification")
    if not message or not message.strip():
        raise FactoryValidationError("message is required for a system notification")
    return _draft(
        owner_id=owner_id,
        type=notification_type,
        title=title.strip(),
        message=message.strip(),
        data={"type": "system"},
    )
