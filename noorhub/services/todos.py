import uuid
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import NotFound, ValidationError
from ..models.models import Employee, Phase, Task, Todo
from . import permissions


def add_todo(
    db: Session,
    author: Employee,
    content: Optional[str],
    task: Optional[Task] = None,
    phase: Optional[Phase] = None,
) -> Todo:
    if task is not None:
        permissions.ensure_can_view_task(author, task)
    elif phase is not None:
        permissions.ensure_can_view_phase(db, author, phase)
    content = (content or "").strip()
    if not content:
        raise ValidationError("Todo content is required")
    todo = Todo(
        task_id=task.id if task is not None else None,
        phase_id=phase.id if task is None and phase is not None else None,
        author_id=author.id,
        content=content,
        is_completed=False,
    )
    db.add(todo)
    return todo


def toggle_todo(db: Session, actor: Employee, todo_id: uuid.UUID, scope: str) -> Todo:
    todo = db.query(Todo).filter(Todo.id == todo_id).first()
    if not todo:
        raise NotFound("Todo not found")
    if scope == "task":
        if not todo.task:
            raise NotFound("Todo not found")
        permissions.ensure_can_view_task(actor, todo.task)
    else:
        if not todo.phase:
            raise NotFound("Todo not found")
        permissions.ensure_can_view_phase(db, actor, todo.phase)
    todo.is_completed = not todo.is_completed
    return todo


def serialize_todo(todo: Todo) -> dict:
    return {
        "id": str(todo.id),
        "task_id": str(todo.task_id) if todo.task_id else None,
        "phase_id": str(todo.phase_id) if todo.phase_id else None,
        "content": todo.content,
        "is_completed": bool(todo.is_completed),
        "author_id": str(todo.author_id) if todo.author_id else None,
        "created_at": todo.created_at.isoformat() if todo.created_at else None,
    }
