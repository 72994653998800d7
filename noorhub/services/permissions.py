"""
Assignment gate: who may drive a task or a phase through the approval workflow.
"""
from sqlalchemy.orm import Session

from ..errors import Forbidden
from ..models.models import Employee, Phase, Task, task_assignments


ADMIN_ROLE = "admin"


def is_admin(employee: Employee) -> bool:
    """Check if employee has the admin role."""
    return (employee.role or "").strip().lower() == ADMIN_ROLE


def is_task_assignee(employee: Employee, task: Task) -> bool:
    return any(a.id == employee.id for a in task.assignees)


def can_drive_task(employee: Employee, task: Task) -> bool:
    """
    Check if employee can push a task through the workflow.
    - Admin can drive any task
    - Otherwise only employees listed in the task's assignments
    """
    if is_admin(employee):
        return True
    return is_task_assignee(employee, task)


def is_assigned_in_phase(db: Session, employee: Employee, phase: Phase) -> bool:
    """True when employee is assigned to at least one task of the phase."""
    row = (
        db.query(Task.id)
        .join(task_assignments, task_assignments.c.task_id == Task.id)
        .filter(Task.phase_id == phase.id, task_assignments.c.employee_id == employee.id)
        .first()
    )
    return row is not None


def can_drive_phase(db: Session, employee: Employee, phase: Phase) -> bool:
    """
    Check if employee can push a phase through the workflow.
    - Admin can drive any phase
    - The phase's assigned employee
    - Anyone assigned to at least one task within the phase
    """
    if is_admin(employee):
        return True
    if phase.assigned_to_id and phase.assigned_to_id == employee.id:
        return True
    return is_assigned_in_phase(db, employee, phase)


def can_view_task(employee: Employee, task: Task) -> bool:
    """Task chat, todos and history are also open to the phase's assigned employee."""
    if can_drive_task(employee, task):
        return True
    phase = task.phase
    return bool(phase and phase.assigned_to_id and phase.assigned_to_id == employee.id)


def can_view_phase(db: Session, employee: Employee, phase: Phase) -> bool:
    return can_drive_phase(db, employee, phase)


def ensure_admin(employee: Employee, action: str = "perform this action") -> None:
    if not is_admin(employee):
        raise Forbidden(f"Only admin can {action}")


def ensure_can_drive_task(employee: Employee, task: Task) -> None:
    if not can_drive_task(employee, task):
        raise Forbidden("You are not assigned to this task")


def ensure_can_drive_phase(db: Session, employee: Employee, phase: Phase) -> None:
    if not can_drive_phase(db, employee, phase):
        raise Forbidden("You are not assigned to this stage")


def ensure_can_view_task(employee: Employee, task: Task) -> None:
    if not can_view_task(employee, task):
        raise Forbidden("You do not have access to this task")


def ensure_can_view_phase(db: Session, employee: Employee, phase: Phase) -> None:
    if not can_view_phase(db, employee, phase):
        raise Forbidden("You do not have access to this stage")
