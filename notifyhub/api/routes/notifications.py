"""
Notification API Routes

Provides REST endpoints over the session's notifications facade:
- POST /api/v1/session - Open the notification session (login)
- DELETE /api/v1/session - Close the notification session (logout)
- GET /api/v1/notifications - List durable notifications with filtering
- GET /api/v1/notifications/stats - Read/unread totals
- GET /api/v1/notifications/unread-count - Unread count
- GET /api/v1/notifications/toasts - Active toasts
- PATCH /api/v1/notifications/{id}/read - Mark as read
- POST /api/v1/notifications/read-all - Mark all as read
- DELETE /api/v1/notifications/{id} - Delete notification
- DELETE /api/v1/notifications - Clear all notifications
- DELETE /api/v1/notifications/toasts/{id} - Dismiss toast
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status

from notifyhub.models.notification import (
    NotificationListResponse,
    NotificationResponse,
    NotificationStats,
    NotificationType,
    SessionRequest,
    ToastNotification,
    UnreadCountResponse,
)
from notifyhub.notifications.facade import NotificationsFacade
from notifyhub.notifications.session import AuthSession

router = APIRouter(prefix="/api/v1", tags=["notifications"])


def get_notifications_facade(request: Request) -> NotificationsFacade:
    """Facade owned by the application's auth session."""
    return request.app.state.notifications_facade


def get_auth_session(request: Request) -> AuthSession:
    return request.app.state.auth_session


def require_active_facade(
    facade: NotificationsFacade = Depends(get_notifications_facade),
) -> NotificationsFacade:
    """Reject mutations when no notification session is active."""
    if not facade.is_active:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No active notification session",
        )
    return facade


# =============================
# Session
# =============================


@router.post("/session", response_model=NotificationResponse)
async def open_session(
    body: SessionRequest,
    auth: AuthSession = Depends(get_auth_session),
):
    """Log the owner in; the facade follows through the session binder."""
    await auth.login(body.owner_id)
    return NotificationResponse(success=True, message=f"Session active for {body.owner_id}")


@router.delete("/session", response_model=NotificationResponse)
async def close_session(auth: AuthSession = Depends(get_auth_session)):
    await auth.logout()
    return NotificationResponse(success=True, message="Session closed")


# =============================
# Notifications
# =============================


@router.get("/notifications", response_model=NotificationListResponse)
async def get_notifications(
    unread_only: bool = Query(False, description="Only return unread notifications"),
    notification_type: Optional[NotificationType] = Query(
        None, description="Filter by notification type"
    ),
    limit: int = Query(50, ge=1, le=100, description="Maximum results to return"),
    facade: NotificationsFacade = Depends(get_notifications_facade),
):
    """
    Get durable notifications for the active session.

    Returns notifications ordered by most recent first. Empty while idle.
    """
    matching = facade.list_notifications(
        unread_only=unread_only,
        notification_type=notification_type,
    )
    page = matching[:limit]

    return {
        "data": page,
        "pagination": {
            "returned_count": len(page),
            "total_count": len(matching),
            "limit": limit,
            "has_more": len(page) < len(matching),
        },
    }


@router.get("/notifications/stats", response_model=NotificationStats)
async def get_notification_stats(
    facade: NotificationsFacade = Depends(get_notifications_facade),
):
    return facade.stats()


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    facade: NotificationsFacade = Depends(get_notifications_facade),
):
    return UnreadCountResponse(unread_count=facade.unread_count())


@router.get("/notifications/toasts", response_model=list[ToastNotification])
async def get_toasts(
    facade: NotificationsFacade = Depends(get_notifications_facade),
):
    return facade.toasts


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: str = Path(..., description="Notification id"),
    facade: NotificationsFacade = Depends(require_active_facade),
):
    """
    Mark a notification as read.

    Returns 404 if neither a notification nor a toast has this id.
    """
    changed = await facade.mark_as_read(notification_id)
    if not changed and all(n.id != notification_id for n in facade.notifications):
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationResponse(
        success=True,
        message="Notification marked as read",
        notification_id=notification_id,
    )


@router.post("/notifications/read-all", response_model=NotificationResponse)
async def mark_all_notifications_read(
    facade: NotificationsFacade = Depends(require_active_facade),
):
    count = await facade.mark_all_as_read()
    return NotificationResponse(success=True, message=f"Marked {count} notifications as read")


@router.delete("/notifications/toasts/{toast_id}", response_model=NotificationResponse)
async def dismiss_toast(
    toast_id: str = Path(..., description="Toast id"),
    facade: NotificationsFacade = Depends(require_active_facade),
):
    if not facade.dismiss_toast(toast_id):
        raise HTTPException(status_code=404, detail="Toast not found")
    return NotificationResponse(success=True, message="Toast dismissed", notification_id=toast_id)


@router.delete("/notifications/{notification_id}", response_model=NotificationResponse)
async def delete_notification(
    notification_id: str = Path(..., description="Notification id"),
    facade: NotificationsFacade = Depends(require_active_facade),
):
    if not await facade.delete(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationResponse(
        success=True,
        message="Notification deleted",
        notification_id=notification_id,
    )


@router.delete("/notifications", response_model=NotificationResponse)
async def clear_notifications(
    facade: NotificationsFacade = Depends(require_active_facade),
):
    count = await facade.clear_all()
    return NotificationResponse(success=True, message=f"Cleared {count} notifications")
