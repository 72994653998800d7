import uuid
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.security import set_password
from ..errors import NotFound, ValidationError
from ..models.models import Employee, Phase, Site, Task, site_assignments, task_assignments
from . import permissions
from .site_service import serialize_phase, serialize_site, serialize_task
from .workflow import WorkState


ROLES = ("admin", "supervisor", "worker", "engineer", "employee")
STATUSES = ("Active", "Inactive")


def _normalize_role(role: Optional[str]) -> str:
    value = (role or "").strip().lower()
    if value not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    return value


def _normalize_status(value: Optional[str]) -> str:
    for s in STATUSES:
        if (value or "").strip().lower() == s.lower():
            return s
    raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")


def _ensure_unique(db: Session, phone: Optional[str], email: Optional[str], exclude_id: Optional[uuid.UUID] = None) -> None:
    if phone:
        q = db.query(Employee.id).filter(Employee.phone == phone)
        if exclude_id:
            q = q.filter(Employee.id != exclude_id)
        if q.first():
            raise ValidationError("Phone number already registered")
    if email:
        q = db.query(Employee.id).filter(func.lower(Employee.email) == email.lower())
        if exclude_id:
            q = q.filter(Employee.id != exclude_id)
        if q.first():
            raise ValidationError("Email already registered")


def get_employee_or_404(db: Session, employee_id: uuid.UUID) -> Employee:
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if not employee:
        raise NotFound("Employee not found")
    return employee


def list_employees(db: Session, actor: Employee) -> List[Employee]:
    permissions.ensure_admin(actor, "list employees")
    return db.query(Employee).order_by(Employee.name.asc()).all()


def create_employee(db: Session, actor: Employee, data: dict) -> Employee:
    permissions.ensure_admin(actor, "create employees")
    name = (data.get("name") or "").strip()
    phone = (data.get("phone") or "").strip()
    password = data.get("password") or ""
    if not name or not phone or not password:
        raise ValidationError("name, phone and password are required")
    email = (data.get("email") or "").strip() or None
    _ensure_unique(db, phone, email)
    employee = Employee(
        name=name,
        phone=phone,
        email=email,
        role=_normalize_role(data.get("role")),
        status=_normalize_status(data.get("status") or "Active"),
        profile_image=data.get("profile_image"),
    )
    set_password(employee, password)
    db.add(employee)
    return employee


def update_employee(db: Session, actor: Employee, employee_id: uuid.UUID, data: dict) -> Employee:
    permissions.ensure_admin(actor, "update employees")
    employee = get_employee_or_404(db, employee_id)
    return _apply_update(db, employee, data, admin=True)


def _apply_update(db: Session, employee: Employee, data: dict, admin: bool) -> Employee:
    phone = data.get("phone")
    email = data.get("email")
    if phone is not None:
        phone = phone.strip()
        if not phone:
            raise ValidationError("phone cannot be empty")
    if email is not None:
        email = email.strip() or None
    _ensure_unique(db, phone, email, exclude_id=employee.id)
    if data.get("name") is not None:
        name = data["name"].strip()
        if not name:
            raise ValidationError("name cannot be empty")
        employee.name = name
    if phone is not None:
        employee.phone = phone
    if "email" in data:
        employee.email = email
    if "profile_image" in data:
        employee.profile_image = data["profile_image"]
    if data.get("password"):
        set_password(employee, data["password"])
    if admin:
        if data.get("role") is not None:
            employee.role = _normalize_role(data["role"])
        if data.get("status") is not None:
            employee.status = _normalize_status(data["status"])
    return employee


def delete_employee(db: Session, actor: Employee, employee_id: uuid.UUID) -> None:
    permissions.ensure_admin(actor, "delete employees")
    employee = get_employee_or_404(db, employee_id)
    if employee.id == actor.id:
        raise ValidationError("You cannot delete your own account")
    db.query(Phase).filter(Phase.assigned_to_id == employee.id).update(
        {Phase.assigned_to_id: None}, synchronize_session=False
    )
    db.delete(employee)


def update_profile(db: Session, employee: Employee, data: dict) -> Employee:
    """Self-service update: role and status stay untouched."""
    return _apply_update(db, employee, data, admin=False)


def dashboard_stats(db: Session, employee: Employee) -> dict:
    statuses = [
        WorkState.parse(r[0])
        for r in db.query(Task.status)
        .join(task_assignments, task_assignments.c.task_id == Task.id)
        .filter(task_assignments.c.employee_id == employee.id)
        .all()
    ]
    completed = sum(1 for s in statuses if s is WorkState.COMPLETED)
    sites = (
        db.query(func.count(func.distinct(site_assignments.c.site_id)))
        .filter(site_assignments.c.employee_id == employee.id)
        .scalar()
    )
    return {"pending": len(statuses) - completed, "completed": completed, "sites": sites or 0}


def my_tasks(db: Session, employee: Employee) -> List[dict]:
    tasks = (
        db.query(Task)
        .join(task_assignments, task_assignments.c.task_id == Task.id)
        .filter(task_assignments.c.employee_id == employee.id)
        .order_by(Task.created_at.desc())
        .all()
    )
    return [serialize_task(t) for t in tasks]


def my_phases(db: Session, employee: Employee) -> List[dict]:
    """Phases the employee is assigned to directly or through one of their tasks."""
    via_tasks = (
        db.query(Task.phase_id)
        .join(task_assignments, task_assignments.c.task_id == Task.id)
        .filter(task_assignments.c.employee_id == employee.id)
    )
    phases = (
        db.query(Phase)
        .join(Site, Site.id == Phase.site_id)
        .filter((Phase.id.in_(via_tasks)) | (Phase.assigned_to_id == employee.id))
        .order_by(Site.created_at.desc(), Phase.order_num.asc())
        .all()
    )
    out = []
    for p in phases:
        d = serialize_phase(p, with_tasks=False)
        d["site"] = {"id": str(p.site_id), "name": p.site.name, "location": p.site.location}
        out.append(d)
    return out


def my_sites(db: Session, employee: Employee) -> List[dict]:
    """Sites the employee is assigned to, newest first, with how many of their tasks each holds."""
    task_counts = dict(
        db.query(Task.site_id, func.count(func.distinct(Task.id)))
        .join(task_assignments, task_assignments.c.task_id == Task.id)
        .filter(task_assignments.c.employee_id == employee.id)
        .group_by(Task.site_id)
        .all()
    )
    sites = (
        db.query(Site)
        .join(site_assignments, site_assignments.c.site_id == Site.id)
        .filter(site_assignments.c.employee_id == employee.id)
        .order_by(Site.created_at.desc())
        .all()
    )
    out = []
    for s in sites:
        d = serialize_site(s)
        d["my_tasks"] = task_counts.get(s.id, 0)
        out.append(d)
    return out


def serialize_employee(e: Employee) -> dict:
    return {
        "id": str(e.id),
        "name": e.name,
        "phone": e.phone,
        "email": e.email,
        "role": e.role,
        "status": e.status,
        "profile_image": e.profile_image,
        "created_at": e.created_at.isoformat() if e.created_at else None,
    }
