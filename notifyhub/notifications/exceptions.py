"""
Notification subsystem errors.

- SubscriptionError: live feed could not be opened or broke while open
- WriteFailure: a store write (create/mark read/delete) failed
- FactoryValidationError: malformed business data handed to the factory
"""


class NotificationError(Exception):
    """Base class for notification subsystem errors."""

    pass


class SubscriptionError(NotificationError):
    """Raised when the live store subscription fails."""

    def __init__(self, owner_id: str, message: str):
        self.owner_id = owner_id
        super().__init__(f"Subscription for owner {owner_id} failed: {message}")


class WriteFailure(NotificationError):
    """Raised when a store write fails."""

    def __init__(self, operation: str, message: str, record_id: str | None = None):
        self.operation = operation
        self.record_id = record_id
        target = f" ({record_id})" if record_id else ""
        super().__init__(f"Store {operation}{target} failed: {message}")


class FactoryValidationError(NotificationError):
    """Raised when business data cannot produce a valid notification."""

    pass
