import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import commit_or_raise, get_db
from ..models.models import Employee
from ..schemas.chat import MessageCreate
from ..schemas.sites import PhaseAssign, PhaseCreate, PhaseUpdate
from ..schemas.todos import TodoCreate
from ..schemas.workflow import ProgressSubmit, RejectRequest
from ..services import approval_service, chat, site_service, todos
from ..services.aggregation import EXPLICIT
from ..services.notifications import dispatch_notifications
from ..services.workflow import Scope


router = APIRouter(prefix="/phases", tags=["phases"])


@router.post("", status_code=201)
def add_phase(payload: PhaseCreate, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    data = payload.model_dump()
    phase = site_service.add_phase(db, me, data.pop("site_id"), data)
    commit_or_raise(db)
    return site_service.serialize_phase(phase, with_tasks=False)


@router.put("/todos/{todo_id}/toggle")
def toggle_phase_todo(todo_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    todo = todos.toggle_todo(db, me, todo_id, Scope.PHASE.value)
    commit_or_raise(db)
    return todos.serialize_todo(todo)


@router.put("/{phase_id}")
def update_phase(
    phase_id: uuid.UUID,
    payload: PhaseUpdate,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    phase = site_service.update_phase(db, me, phase_id, payload.model_dump(exclude_unset=True))
    commit_or_raise(db)
    return site_service.serialize_phase(phase, with_tasks=False)


@router.delete("/{phase_id}")
def delete_phase(phase_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    site_service.delete_phase(db, me, phase_id)
    commit_or_raise(db)
    return {"message": "Stage deleted and timeline re-indexed"}


@router.put("/{phase_id}/assign")
def assign_phase(
    phase_id: uuid.UUID,
    payload: PhaseAssign,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    phase, drafts = site_service.assign_employee_to_phase(db, me, phase_id, payload.employee_id)
    commit_or_raise(db)
    dispatch_notifications(db, drafts)
    return site_service.serialize_phase(phase, with_tasks=False)


@router.get("/{phase_id}/details")
def phase_details(
    phase_id: uuid.UUID,
    mode: str = Query(EXPLICIT),
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    return site_service.phase_details(db, me, phase_id, mode)


@router.get("/{phase_id}/updates")
def list_phase_updates(
    phase_id: uuid.UUID,
    limit: Optional[int] = Query(None),
    collapse: bool = Query(False),
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    return {"updates": approval_service.list_updates(db, me, Scope.PHASE, phase_id, limit=limit, collapse=collapse)}


@router.post("/{phase_id}/updates")
def submit_phase_progress(
    phase_id: uuid.UUID,
    payload: ProgressSubmit,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    return approval_service.submit_progress(
        db, me, Scope.PHASE, phase_id, payload.progress, payload.note,
        image_url=payload.image_url, audio_url=payload.audio_url,
    )


@router.put("/{phase_id}/approve")
def approve_phase(phase_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return approval_service.approve(db, me, Scope.PHASE, phase_id)


@router.put("/{phase_id}/reject")
def reject_phase(
    phase_id: uuid.UUID,
    payload: RejectRequest,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    return approval_service.reject(db, me, Scope.PHASE, phase_id, payload.reason)


@router.post("/{phase_id}/todos", status_code=201)
def add_phase_todo(
    phase_id: uuid.UUID,
    payload: TodoCreate,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    phase = site_service.get_phase_or_404(db, phase_id)
    todo = todos.add_todo(db, me, payload.content, phase=phase)
    commit_or_raise(db)
    return todos.serialize_todo(todo)


@router.post("/{phase_id}/messages", status_code=201)
def send_phase_message(
    phase_id: uuid.UUID,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    phase = site_service.get_phase_or_404(db, phase_id)
    message, drafts = chat.send_phase_message(db, me, phase, payload.type, payload.content, payload.media_url)
    commit_or_raise(db)
    dispatch_notifications(db, drafts)
    return chat.serialize_message(message)
