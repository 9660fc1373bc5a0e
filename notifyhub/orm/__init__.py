"""ORM models for the SQL notification store."""

from notifyhub.orm.models import NotificationORM

__all__ = ["NotificationORM"]
