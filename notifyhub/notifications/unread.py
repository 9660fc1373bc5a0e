"""
Unread counter.

The count is recomputed from the toast queue and the durable list on every
call; no running tally is kept.
"""

from collections.abc import Iterable

from notifyhub.models.notification import NotificationRecord, ToastNotification


def count_unread(
    toasts: Iterable[ToastNotification],
    records: Iterable[NotificationRecord],
) -> int:
    """
    Count unread notifications across toasts and durable records.

    A queued toast is unread until it leaves the queue. A toast mirroring a
    durable record is counted through that record only.

    Args:
        toasts: Currently queued toasts
        records: Durable notification list

    Returns:
        Number of unread notifications
    """
    record_ids: set[str] = set()
    unread = 0
    for record in records:
        record_ids.add(record.id)
        if not record.read:
            unread += 1

    unread += sum(1 for toast in toasts if toast.id not in record_ids)
    return unread
