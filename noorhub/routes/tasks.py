import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import commit_or_raise, get_db
from ..models.models import Employee
from ..schemas.chat import MessageCreate
from ..schemas.sites import TaskAssignToggle, TaskCreate, TaskUpdate
from ..schemas.todos import TodoCreate
from ..schemas.workflow import ProgressSubmit, RejectRequest
from ..services import approval_service, chat, site_service, todos
from ..services.notifications import dispatch_notifications
from ..services.workflow import Scope


router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("")
def list_tasks(db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return {"tasks": site_service.list_tasks(db, me)}


@router.post("", status_code=201)
def create_task(payload: TaskCreate, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    task, drafts = site_service.create_task(db, me, payload.model_dump())
    commit_or_raise(db)
    dispatch_notifications(db, drafts)
    return site_service.serialize_task(task)


@router.put("/todos/{todo_id}/toggle")
def toggle_task_todo(todo_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    todo = todos.toggle_todo(db, me, todo_id, Scope.TASK.value)
    commit_or_raise(db)
    return todos.serialize_todo(todo)


@router.put("/{task_id}")
def update_task(
    task_id: uuid.UUID,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    task = site_service.update_task(db, me, task_id, payload.model_dump(exclude_unset=True))
    commit_or_raise(db)
    return site_service.serialize_task(task)


@router.delete("/{task_id}")
def delete_task(task_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    site_service.delete_task(db, me, task_id)
    commit_or_raise(db)
    return {"status": "ok"}


@router.get("/{task_id}/details")
def task_details(task_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return site_service.task_details(db, me, task_id)


@router.get("/{task_id}/updates")
def list_task_updates(
    task_id: uuid.UUID,
    limit: Optional[int] = Query(None),
    collapse: bool = Query(False),
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    return {"updates": approval_service.list_updates(db, me, Scope.TASK, task_id, limit=limit, collapse=collapse)}


@router.post("/{task_id}/updates")
def submit_task_progress(
    task_id: uuid.UUID,
    payload: ProgressSubmit,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    return approval_service.submit_progress(
        db, me, Scope.TASK, task_id, payload.progress, payload.note,
        image_url=payload.image_url, audio_url=payload.audio_url,
    )


@router.put("/{task_id}/approve")
def approve_task(task_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return approval_service.approve(db, me, Scope.TASK, task_id)


@router.put("/{task_id}/reject")
def reject_task(
    task_id: uuid.UUID,
    payload: RejectRequest,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    return approval_service.reject(db, me, Scope.TASK, task_id, payload.reason)


@router.put("/{task_id}/assign")
def toggle_task_assignment(
    task_id: uuid.UUID,
    payload: TaskAssignToggle,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    task, assigned, drafts = site_service.toggle_task_assignment(db, me, task_id, payload.employee_id, payload.due_date)
    commit_or_raise(db)
    dispatch_notifications(db, drafts)
    return {"assigned": assigned, "task": site_service.serialize_task(task)}


@router.post("/{task_id}/todos", status_code=201)
def add_task_todo(
    task_id: uuid.UUID,
    payload: TodoCreate,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    task = site_service.get_task_or_404(db, task_id)
    todo = todos.add_todo(db, me, payload.content, task=task)
    commit_or_raise(db)
    return todos.serialize_todo(todo)


@router.post("/{task_id}/messages", status_code=201)
def send_task_message(
    task_id: uuid.UUID,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    task = site_service.get_task_or_404(db, task_id)
    message, drafts = chat.send_task_message(db, me, task, payload.type, payload.content, payload.media_url)
    commit_or_raise(db)
    dispatch_notifications(db, drafts)
    return chat.serialize_message(message)
