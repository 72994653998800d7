"""
Task and stage chat.

A task shares its conversation with the parent phase: reading a task
returns its own messages plus the stage-level ones, reading a phase returns
the stage messages plus those of every task in it. Both are merged in
insertion order.
"""
import uuid
from typing import List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models.models import ChatMessage, Employee, Phase, Task, task_assignments
from . import permissions
from .notifications import NotificationDraft, active_admin_ids, drafts_for_chat_message


MESSAGE_TYPES = ("text", "image", "audio", "document")
SYSTEM = "system"


def post_system_message(
    db: Session,
    content: str,
    sender_id: Optional[uuid.UUID],
    task: Optional[Task] = None,
    phase: Optional[Phase] = None,
) -> ChatMessage:
    """System line describing a workflow event; joins the caller's transaction."""
    message = ChatMessage(
        task_id=task.id if task else None,
        phase_id=phase.id if phase and not task else None,
        sender_id=sender_id,
        type=SYSTEM,
        content=content,
    )
    db.add(message)
    return message


def build_message(
    sender: Employee,
    message_type: Optional[str],
    content: Optional[str],
    media_url: Optional[str],
    task: Optional[Task] = None,
    phase: Optional[Phase] = None,
) -> ChatMessage:
    message_type = (message_type or "text").strip().lower()
    if message_type == SYSTEM:
        raise ValidationError("System messages cannot be posted")
    if message_type not in MESSAGE_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MESSAGE_TYPES)}")
    content = (content or "").strip() or None
    media_url = (media_url or "").strip() or None
    if message_type == "text" and not content:
        raise ValidationError("Message content is required")
    if message_type != "text" and not media_url:
        raise ValidationError(f"media_url is required for {message_type} messages")
    return ChatMessage(
        task_id=task.id if task else None,
        phase_id=phase.id if phase and not task else None,
        sender_id=sender.id,
        type=message_type,
        content=content,
        media_url=media_url,
    )


def phase_participant_ids(db: Session, phase: Phase) -> Set[uuid.UUID]:
    """Admins, the phase's assigned employee and everyone assigned to one of its tasks."""
    ids = set(active_admin_ids(db))
    if phase.assigned_to_id:
        ids.add(phase.assigned_to_id)
    rows = (
        db.query(task_assignments.c.employee_id)
        .join(Task, Task.id == task_assignments.c.task_id)
        .filter(Task.phase_id == phase.id)
        .all()
    )
    ids.update(r[0] for r in rows)
    return ids


def chat_drafts(db: Session, message: ChatMessage, phase: Phase, task: Optional[Task] = None) -> List[NotificationDraft]:
    return drafts_for_chat_message(
        sender_id=message.sender_id,
        participant_ids=phase_participant_ids(db, phase),
        content=message.content,
        site_id=phase.site_id,
        phase_id=phase.id,
        task_id=task.id if task else None,
    )


def send_task_message(db: Session, sender: Employee, task: Task, message_type, content, media_url):
    permissions.ensure_can_view_task(sender, task)
    message = build_message(sender, message_type, content, media_url, task=task)
    db.add(message)
    return message, chat_drafts(db, message, task.phase, task)


def send_phase_message(db: Session, sender: Employee, phase: Phase, message_type, content, media_url):
    permissions.ensure_can_view_phase(db, sender, phase)
    message = build_message(sender, message_type, content, media_url, phase=phase)
    db.add(message)
    return message, chat_drafts(db, message, phase)


def conversation(db: Session, phase: Phase) -> List[ChatMessage]:
    """Phase messages plus the messages of all of its tasks, oldest first."""
    task_ids = [t.id for t in phase.tasks]
    filters = [ChatMessage.phase_id == phase.id]
    if task_ids:
        filters.append(ChatMessage.task_id.in_(task_ids))
    return db.query(ChatMessage).filter(or_(*filters)).order_by(ChatMessage.id.asc()).all()


def task_conversation(db: Session, task: Task) -> List[ChatMessage]:
    """Task messages plus the stage-level messages of its phase."""
    return (
        db.query(ChatMessage)
        .filter(or_(ChatMessage.task_id == task.id, ChatMessage.phase_id == task.phase_id))
        .order_by(ChatMessage.id.asc())
        .all()
    )


def serialize_message(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "task_id": str(m.task_id) if m.task_id else None,
        "phase_id": str(m.phase_id) if m.phase_id else None,
        "type": m.type,
        "content": m.content,
        "media_url": m.media_url,
        "sender": {
            "id": str(m.sender_id) if m.sender_id else None,
            "name": m.sender.name if m.sender else None,
            "role": m.sender.role if m.sender else None,
        },
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }
