"""In-app notification routes."""

from fastapi import APIRouter, Query, Request

from ..auth import CurrentUser
from ..database import Market
from ..models import NotificationListResponse, NotificationResponse
from ..rate_limit import limiter

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
@limiter.limit("60/minute")
async def list_notifications(
    request: Request,
    auth: CurrentUser,
    market: Market,
    unread_only: bool = Query(False),
):
    """The caller's notifications, newest first."""
    notifications = market.notifications.list_for(auth.user_id, unread_only=unread_only)
    return NotificationListResponse(
        notifications=[NotificationResponse(**n.to_dict()) for n in notifications],
        unread=sum(1 for n in notifications if not n.is_read),
    )


@router.post("/read-all")
@limiter.limit("30/minute")
async def mark_all_read(request: Request, auth: CurrentUser, market: Market):
    return {"marked": market.notifications.mark_all_read(auth.user_id)}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
@limiter.limit("60/minute")
async def mark_read(request: Request, notification_id: str, auth: CurrentUser, market: Market):
    return NotificationResponse(**market.notifications.mark_read(notification_id, auth.user_id).to_dict())
