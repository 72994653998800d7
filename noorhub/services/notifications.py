"""
Notification emission rules and in-app notification storage.

Drafts are computed from a workflow event (pure), then dispatched after the
transition has committed. Dispatch is fire-and-forget: a failing insert is
logged and dropped, it never undoes the transition.
"""
import enum
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFound
from ..models.models import Employee, Notification
from .workflow import Scope, WorkAction, WorkState


logger = structlog.get_logger(__name__)


class NotificationType(str, enum.Enum):
    TASK_UPDATE = "TASK_UPDATE"
    CHAT_UPDATE = "CHAT_UPDATE"
    STAGE_COMPLETED = "STAGE_COMPLETED"
    ASSIGNMENT = "ASSIGNMENT"


@dataclass(frozen=True)
class NotificationDraft:
    target_employee_id: uuid.UUID
    type: NotificationType
    message: str
    site_id: Optional[uuid.UUID] = None
    phase_id: Optional[uuid.UUID] = None
    task_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class TransitionEvent:
    scope: Scope
    action: WorkAction
    from_state: WorkState
    to_state: WorkState
    name: str
    actor_id: uuid.UUID
    site_id: Optional[uuid.UUID]
    phase_id: Optional[uuid.UUID]
    task_id: Optional[uuid.UUID] = None
    progress: Optional[int] = None
    reason: Optional[str] = None


def _unique(ids: Iterable[uuid.UUID], exclude: Optional[uuid.UUID] = None) -> List[uuid.UUID]:
    seen = []
    for i in ids:
        if i is None or i == exclude or i in seen:
            continue
        seen.append(i)
    return seen


def _draft(event: TransitionEvent, target: uuid.UUID, ntype: NotificationType, message: str) -> NotificationDraft:
    return NotificationDraft(
        target_employee_id=target,
        type=ntype,
        message=message,
        site_id=event.site_id,
        phase_id=event.phase_id,
        task_id=event.task_id,
    )


def drafts_for_transition(
    event: TransitionEvent,
    admin_ids: Iterable[uuid.UUID],
    assignee_ids: Iterable[uuid.UUID],
) -> List[NotificationDraft]:
    """
    Decide who hears about a transition.

    - submitted for approval: every admin
    - approved / changes requested: the assigned employee(s)
    - progress below 100%: nobody
    The actor never notifies themself.
    """
    noun = "Task" if event.scope is Scope.TASK else "Stage"

    if event.action is WorkAction.SUBMIT:
        if event.to_state is not WorkState.WAITING_FOR_APPROVAL:
            return []
        ntype = NotificationType.TASK_UPDATE if event.scope is Scope.TASK else NotificationType.STAGE_COMPLETED
        message = f'{noun} "{event.name}" submitted for approval.'
        return [_draft(event, i, ntype, message) for i in _unique(admin_ids, exclude=event.actor_id)]

    if event.action is WorkAction.APPROVE:
        ntype = NotificationType.TASK_UPDATE if event.scope is Scope.TASK else NotificationType.STAGE_COMPLETED
        message = f'Your work on "{event.name}" has been approved!'
        return [_draft(event, i, ntype, message) for i in _unique(assignee_ids, exclude=event.actor_id)]

    if event.action is WorkAction.REJECT:
        message = f'Changes requested for "{event.name}": {event.reason}'
        return [
            _draft(event, i, NotificationType.TASK_UPDATE, message)
            for i in _unique(assignee_ids, exclude=event.actor_id)
        ]

    return []


def chat_preview(content: Optional[str], limit: Optional[int] = None) -> str:
    limit = limit or settings.chat_preview_chars
    if not content:
        return "Media attachment"
    if len(content) > limit:
        return content[:limit] + "..."
    return content


def drafts_for_chat_message(
    sender_id: uuid.UUID,
    participant_ids: Iterable[uuid.UUID],
    content: Optional[str],
    site_id: Optional[uuid.UUID],
    phase_id: Optional[uuid.UUID],
    task_id: Optional[uuid.UUID] = None,
) -> List[NotificationDraft]:
    """CHAT_UPDATE for every participant except the sender."""
    message = f"New message: {chat_preview(content)}"
    return [
        NotificationDraft(
            target_employee_id=i,
            type=NotificationType.CHAT_UPDATE,
            message=message,
            site_id=site_id,
            phase_id=phase_id,
            task_id=task_id,
        )
        for i in _unique(participant_ids, exclude=sender_id)
    ]


def drafts_for_assignment(
    employee_id: uuid.UUID,
    message: str,
    site_id: Optional[uuid.UUID],
    phase_id: Optional[uuid.UUID],
    task_id: Optional[uuid.UUID] = None,
) -> List[NotificationDraft]:
    return [
        NotificationDraft(
            target_employee_id=employee_id,
            type=NotificationType.ASSIGNMENT,
            message=message,
            site_id=site_id,
            phase_id=phase_id,
            task_id=task_id,
        )
    ]


def active_admin_ids(db: Session) -> List[uuid.UUID]:
    rows = (
        db.query(Employee.id)
        .filter(Employee.role == "admin", Employee.status == "Active")
        .all()
    )
    return [r[0] for r in rows]


def _store(db: Session, drafts: List[NotificationDraft]) -> List[Notification]:
    created = []
    for d in drafts:
        notification = Notification(
            employee_id=d.target_employee_id,
            type=d.type.value,
            message=d.message,
            site_id=d.site_id,
            phase_id=d.phase_id,
            task_id=d.task_id,
            is_read=False,
        )
        db.add(notification)
        created.append(notification)
    db.commit()
    return created


def dispatch_notifications(db: Session, drafts: List[NotificationDraft]) -> List[Notification]:
    """
    Persist drafts in their own commit.
    Returns the created notifications, or [] when the store refused them.
    """
    if not drafts:
        return []
    try:
        return _store(db, drafts)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            "notification_dispatch_failed",
            count=len(drafts),
            types=sorted({d.type.value for d in drafts}),
            error=str(e),
        )
        return []


def list_notifications(db: Session, employee: Employee, limit: Optional[int] = None) -> dict:
    """Unread first, newest first."""
    limit = limit or settings.notification_list_limit
    rows = (
        db.query(Notification)
        .filter(Notification.employee_id == employee.id)
        .order_by(Notification.is_read.asc(), Notification.created_at.desc())
        .limit(max(1, limit))
        .all()
    )
    unread = (
        db.query(Notification)
        .filter(Notification.employee_id == employee.id, Notification.is_read.is_(False))
        .count()
    )
    return {"notifications": [serialize_notification(n) for n in rows], "unread_count": unread}


def mark_read(db: Session, employee: Employee, notification_id: uuid.UUID) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.employee_id == employee.id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found")
    notification.is_read = True
    return notification


def serialize_notification(n: Notification) -> dict:
    return {
        "id": str(n.id),
        "type": n.type,
        "message": n.message,
        "site_id": str(n.site_id) if n.site_id else None,
        "phase_id": str(n.phase_id) if n.phase_id else None,
        "task_id": str(n.task_id) if n.task_id else None,
        "is_read": bool(n.is_read),
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }
