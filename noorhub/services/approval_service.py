"""
Approval workflow orchestration for tasks and phases.

Every action follows the same path:
gate -> state machine -> progress record -> phase aggregation -> system chat
line -> commit -> notifications (separate commit, may be lost).
All checks run before anything is written, so a refused action leaves
the stored state untouched.
"""
import uuid
from typing import List, Optional, Union

import structlog
from sqlalchemy.orm import Session

from ..db import commit_or_raise
from ..errors import NotFound, ValidationError
from ..models.models import Employee, Phase, Task, utcnow
from . import permissions, progress_store
from .aggregation import refresh_phase_progress
from .chat import post_system_message
from .notifications import (
    TransitionEvent,
    active_admin_ids,
    dispatch_notifications,
    drafts_for_transition,
)
from .workflow import (
    Scope,
    WorkAction,
    WorkState,
    next_state,
    progress_after_reject,
    status_label,
    validate_progress,
)


logger = structlog.get_logger(__name__)

Target = Union[Task, Phase]


def load_target(db: Session, scope: Scope, scope_id: uuid.UUID, for_update: bool = False) -> Target:
    model = Task if scope is Scope.TASK else Phase
    query = db.query(model).filter(model.id == scope_id)
    if for_update:
        # Serialises concurrent transitions on the same row where the database supports it
        query = query.with_for_update()
    target = query.first()
    if not target:
        raise NotFound(f"{'Task' if scope is Scope.TASK else 'Stage'} not found")
    return target


def _ensure_can_drive(db: Session, actor: Employee, scope: Scope, target: Target) -> None:
    if scope is Scope.TASK:
        permissions.ensure_can_drive_task(actor, target)
    else:
        permissions.ensure_can_drive_phase(db, actor, target)


def _assignee_ids(db: Session, scope: Scope, target: Target) -> List[uuid.UUID]:
    if scope is Scope.TASK:
        return [a.id for a in target.assignees]
    ids = [target.assigned_to_id] if target.assigned_to_id else []
    for task in target.tasks:
        ids.extend(a.id for a in task.assignees)
    return ids


def _event(scope: Scope, target: Target, action: WorkAction, before: WorkState, after: WorkState,
           actor: Employee, progress: Optional[int] = None, reason: Optional[str] = None) -> TransitionEvent:
    return TransitionEvent(
        scope=scope,
        action=action,
        from_state=before,
        to_state=after,
        name=target.name,
        actor_id=actor.id,
        site_id=target.site_id,
        phase_id=target.phase_id if scope is Scope.TASK else target.id,
        task_id=target.id if scope is Scope.TASK else None,
        progress=progress,
        reason=reason,
    )


def _system_line(db: Session, scope: Scope, target: Target, actor: Employee, content: str) -> None:
    if scope is Scope.TASK:
        post_system_message(db, content, actor.id, task=target)
    else:
        post_system_message(db, content, actor.id, phase=target)


def _finish(db: Session, scope: Scope, target: Target, event: TransitionEvent) -> None:
    """Commit the transition, then hand the notifications off."""
    admins = active_admin_ids(db)
    assignees = _assignee_ids(db, scope, target)
    commit_or_raise(db)
    logger.info(
        "workflow_transition",
        scope=scope.value,
        scope_id=str(target.id),
        action=event.action.value,
        from_state=event.from_state.value,
        to_state=event.to_state.value,
        actor_id=str(event.actor_id),
    )
    dispatch_notifications(db, drafts_for_transition(event, admins, assignees))


def _state_payload(scope: Scope, target: Target) -> dict:
    state = WorkState.parse(target.status)
    return {
        "status": state.value,
        "status_label": status_label(state, scope),
        "progress": target.progress or 0,
    }


def submit_progress(
    db: Session,
    actor: Employee,
    scope: Scope,
    scope_id: uuid.UUID,
    progress: int,
    note: Optional[str] = None,
    image_url: Optional[str] = None,
    audio_url: Optional[str] = None,
) -> dict:
    target = load_target(db, scope, scope_id, for_update=True)
    _ensure_can_drive(db, actor, scope, target)
    value = validate_progress(progress)
    before = WorkState.parse(target.status)
    after = next_state(before, WorkAction.SUBMIT, value)
    previous = target.progress or 0

    progress_store.record_progress(
        db, scope, target.id, previous, value, actor.id, note,
        image_url=image_url, audio_url=audio_url,
    )
    target.progress = value
    target.status = after.value

    if after is WorkState.WAITING_FOR_APPROVAL:
        if scope is Scope.TASK:
            target.submitted_by_id = actor.id
            target.submitted_at = utcnow()
        _system_line(db, scope, target, actor, f"{'Task' if scope is Scope.TASK else 'Stage'} marked as completed. Waiting for admin approval.")
    else:
        _system_line(db, scope, target, actor, f"Progress update: {value}% - {(note or '').strip() or 'Progress updated'}")

    if scope is Scope.TASK:
        refresh_phase_progress(target.phase)

    _finish(db, scope, target, _event(scope, target, WorkAction.SUBMIT, before, after, actor, progress=value))
    return _state_payload(scope, target)


def approve(db: Session, actor: Employee, scope: Scope, scope_id: uuid.UUID) -> dict:
    target = load_target(db, scope, scope_id, for_update=True)
    permissions.ensure_admin(actor, f"approve {'tasks' if scope is Scope.TASK else 'stages'}")
    before = WorkState.parse(target.status)
    after = next_state(before, WorkAction.APPROVE)

    now = utcnow()
    target.status = after.value
    if scope is Scope.TASK:
        target.completed_by_id = actor.id
        target.completed_at = now
        refresh_phase_progress(target.phase)
        _system_line(db, scope, target, actor, "Good work! Task approved and completed by admin.")
    else:
        target.approved_by_id = actor.id
        target.approved_at = now
        _system_line(db, scope, target, actor, "Work approved by admin.")

    _finish(db, scope, target, _event(scope, target, WorkAction.APPROVE, before, after, actor))
    return _state_payload(scope, target)


def reject(db: Session, actor: Employee, scope: Scope, scope_id: uuid.UUID, reason: Optional[str]) -> dict:
    target = load_target(db, scope, scope_id, for_update=True)
    permissions.ensure_admin(actor, f"request changes on {'tasks' if scope is Scope.TASK else 'stages'}")
    before = WorkState.parse(target.status)
    after = next_state(before, WorkAction.REJECT)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to request changes")

    previous = target.progress or 0
    fallback = progress_after_reject(scope)

    progress_store.record_progress(db, scope, target.id, previous, fallback, actor.id, reason)
    target.status = after.value
    target.progress = fallback
    if scope is Scope.TASK:
        target.submitted_by_id = None
        target.submitted_at = None
        target.completed_by_id = None
        target.completed_at = None
        refresh_phase_progress(target.phase)
    _system_line(db, scope, target, actor, f"Changes requested: {reason}")

    _finish(db, scope, target, _event(scope, target, WorkAction.REJECT, before, after, actor, reason=reason))
    return _state_payload(scope, target)


def list_updates(
    db: Session,
    actor: Employee,
    scope: Scope,
    scope_id: uuid.UUID,
    limit: Optional[int] = None,
    collapse: bool = False,
) -> List[dict]:
    target = load_target(db, scope, scope_id)
    if scope is Scope.TASK:
        permissions.ensure_can_view_task(actor, target)
    else:
        permissions.ensure_can_view_phase(db, actor, target)
    if limit is not None and limit < 1:
        raise ValidationError("limit must be at least 1")
    records = progress_store.list_updates(db, scope, target.id, limit=limit)
    if collapse:
        records = progress_store.collapse_consecutive_duplicates(records)
    return [progress_store.serialize_update(r) for r in records]


