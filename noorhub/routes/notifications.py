import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import commit_or_raise, get_db
from ..models.models import Employee
from ..services import notifications


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    """Own notifications, unread first, plus the unread count."""
    return notifications.list_notifications(db, me)


@router.put("/{notification_id}/read")
def mark_notification_read(
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    n = notifications.mark_read(db, me, notification_id)
    commit_or_raise(db)
    return notifications.serialize_notification(n)
