from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.auth.models import User
from app.core.config import NOTIFICATION_RETENTION_DAYS
from app.core.deps import get_current_user, get_notification_service
from app.notifications.models import notification_to_dict
from app.notifications.service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationCreate(BaseModel):
    title: str
    message: str
    type: str
    priority: str = "medium"


class MarkRead(BaseModel):
    ids: List[int]


@router.get("")
def list_notifications(
    unread: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    rows = notifications.list_unread(user.id) if unread else notifications.list_recent(user.id, limit)
    return [notification_to_dict(n) for n in rows]


@router.post("", status_code=201)
def create_notification(
    payload: NotificationCreate,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Self-addressed note (e.g. a manual reminder set from the UI)."""
    n = notifications.emit(user.id, payload.type, payload.title, payload.message, priority=payload.priority)
    return notification_to_dict(n)


@router.get("/stats")
def notification_stats(
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return notifications.stats(user.id)


@router.post("/read")
def mark_read(
    payload: MarkRead,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return {"updated": notifications.mark_read(user.id, payload.ids)}


@router.post("/purge")
def purge_notifications(
    days: Optional[int] = Query(None, ge=0),
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    window = NOTIFICATION_RETENTION_DAYS if days is None else days
    return {"deleted": notifications.purge_older_than(user.id, window)}


@router.post("/{notification_id}/read")
def mark_one_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return notification_to_dict(notifications.mark_one_read(user.id, notification_id))


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    notifications.delete(user.id, notification_id)
    return {"success": True}
