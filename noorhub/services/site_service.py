"""
Sites, phases and tasks: everything around the approval workflow that an
admin edits directly.
"""
import re
import uuid
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import NotFound, ValidationError
from ..models.models import Employee, Phase, PhaseTemplate, Site, Task, utcnow
from . import permissions
from .aggregation import check_mode, display_progress, refresh_phase_progress
from .chat import conversation, serialize_message, task_conversation
from .notifications import NotificationDraft, drafts_for_assignment
from .progress_store import list_updates, serialize_update
from .todos import serialize_todo
from .workflow import Scope, WorkState, check_manual_status, status_label


logger = structlog.get_logger(__name__)

SITE_STATUSES = ("active", "on_hold", "completed")

# Used when the template table is empty
DEFAULT_PHASES = [
    "Planning & Site Preparation",
    "Foundation",
    "Structure",
    "Finishing",
]

DEFAULT_TEMPLATES = [
    ("Plumbing Finishes", [
        "Plumbing finishing work", "Outer plumbing pipeline", "Inner plumbing pipeline",
        "Kitchen tap", "Bathroom fittings", "Outer area fittings",
        "Overhead Water tank fixing and connection",
    ]),
    ("Electrical Finishes", [
        "Electrical finishing work", "Switch box", "MCB box", "Light fittings",
    ]),
    ("Painting", [
        "Inner painting work", "Patti 2 or 3 coats", "Primer", "Emulsion", "Gril painting",
        "Main door polish", "Windows and doors polishing or painting", "Outer painting work",
        "Elevation", "MS gate painting", "Additional laser cut or other elevation element painting",
    ]),
    ("Tiles work", [
        "Both room wall and floor finish", "Main floor finish", "Kitchen wall", "Elevation wall", "Parking",
    ]),
    ("Granite and Staircase Work", [
        "Tabletop granite", "Front step", "Inner staircase", "Paneling work",
    ]),
    ("Carpentry Finishes", [
        "Carpenter finishing work", "Main door", "Bedroom door", "Bathroom door",
        "Windows frame and shutter", "All glasses fixing",
    ]),
    ("Optional Extras", [
        "Elevation grill or laser work", "Main gate work", "Outer stair handrails", "MS or SS work",
    ]),
]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def ensure_iso_date(value) -> Optional[date]:
    """Accept a date, YYYY-MM-DD (optionally with a time part) or DD/MM/YYYY."""
    if value is None or isinstance(value, date):
        return value.date() if isinstance(value, datetime) else value
    raw = str(value).strip()
    if not raw or raw.lower() == "null":
        return None
    try:
        if _ISO_DATE.match(raw):
            return date.fromisoformat(raw[:10])
        parts = raw.split("/")
        if len(parts) == 3:
            d, m, y = (int(p) for p in parts)
            return date(y, m, d)
    except ValueError:
        pass
    raise ValidationError(f"Invalid date: {value}")


def seed_templates(db: Session, templates=DEFAULT_TEMPLATES) -> int:
    """Insert template rows that are not there yet. Returns how many were added."""
    existing = {(t.phase_name, t.task_name) for t in db.query(PhaseTemplate).all()}
    order = (db.query(func.max(PhaseTemplate.order_num)).scalar() or 0) + 1
    added = 0
    for phase_name, task_names in templates:
        for task_name in task_names:
            if (phase_name, task_name) in existing:
                continue
            db.add(PhaseTemplate(phase_name=phase_name, task_name=task_name, order_num=order))
            existing.add((phase_name, task_name))
            order += 1
            added += 1
    return added


# ----- helpers -----

def get_site_or_404(db: Session, site_id: uuid.UUID) -> Site:
    site = db.query(Site).filter(Site.id == site_id).first()
    if not site:
        raise NotFound("Site not found")
    return site


def get_phase_or_404(db: Session, phase_id: uuid.UUID) -> Phase:
    phase = db.query(Phase).filter(Phase.id == phase_id).first()
    if not phase:
        raise NotFound("Stage not found")
    return phase


def get_task_or_404(db: Session, task_id: uuid.UUID) -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFound("Task not found")
    return task


def _employees_by_id(db: Session, ids: Iterable[uuid.UUID]) -> List[Employee]:
    ids = list(dict.fromkeys(ids or []))
    if not ids:
        return []
    found = db.query(Employee).filter(Employee.id.in_(ids)).all()
    missing = set(ids) - {e.id for e in found}
    if missing:
        raise ValidationError(f"Unknown employee(s): {', '.join(sorted(str(m) for m in missing))}")
    by_id = {e.id: e for e in found}
    return [by_id[i] for i in ids]


def _reindex(phases: Iterable[Phase]) -> None:
    for i, phase in enumerate(sorted(phases, key=lambda p: p.order_num or 0), start=1):
        phase.order_num = i


def _required_name(value: Optional[str], what: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{what} name is required")
    return name


# ----- sites -----

def list_sites(db: Session) -> List[dict]:
    phase_counts = dict(db.query(Phase.site_id, func.count(Phase.id)).group_by(Phase.site_id).all())
    task_counts = dict(db.query(Task.site_id, func.count(Task.id)).group_by(Task.site_id).all())
    sites = db.query(Site).order_by(Site.created_at.desc()).all()
    out = []
    for s in sites:
        d = serialize_site(s)
        d["phase_count"] = phase_counts.get(s.id, 0)
        d["task_count"] = task_counts.get(s.id, 0)
        out.append(d)
    return out


def create_site(db: Session, actor: Employee, data: dict) -> Site:
    """Create a site and seed its phases and tasks from the template table."""
    permissions.ensure_admin(actor, "create sites")
    site = Site(
        name=_required_name(data.get("name"), "Site"),
        location=data.get("location"),
        city=data.get("city"),
        state=data.get("state"),
        country=data.get("country"),
        client_name=data.get("client_name"),
        client_email=data.get("client_email"),
        client_phone=data.get("client_phone"),
        client_company=data.get("client_company"),
        budget=data.get("budget") or 0,
        start_date=ensure_iso_date(data.get("start_date")),
        end_date=ensure_iso_date(data.get("end_date")),
        duration=data.get("duration"),
        status="active",
    )
    db.add(site)

    templates = db.query(PhaseTemplate).order_by(PhaseTemplate.order_num.asc()).all()
    phases = {}
    if templates:
        for t in templates:
            phase = phases.get(t.phase_name)
            if phase is None:
                phase = Phase(name=t.phase_name, order_num=len(phases) + 1, status=WorkState.NOT_STARTED.value)
                site.phases.append(phase)
                phases[t.phase_name] = phase
            phase.tasks.append(Task(site=site, name=t.task_name, status=WorkState.NOT_STARTED.value, progress=0))
    else:
        for i, name in enumerate(DEFAULT_PHASES, start=1):
            site.phases.append(Phase(name=name, order_num=i, status=WorkState.NOT_STARTED.value))

    site.employees = _employees_by_id(db, data.get("assigned_employees"))
    logger.info("site_created", site_name=site.name, phases=len(site.phases), templates=len(templates))
    return site


def update_site(db: Session, actor: Employee, site_id: uuid.UUID, data: dict) -> Site:
    permissions.ensure_admin(actor, "update sites")
    site = get_site_or_404(db, site_id)
    if "name" in data:
        site.name = _required_name(data["name"], "Site")
    for field in (
        "location", "city", "state", "country", "client_name", "client_email",
        "client_phone", "client_company", "budget", "duration",
    ):
        if field in data:
            setattr(site, field, data[field])
    for field in ("start_date", "end_date"):
        if field in data:
            setattr(site, field, ensure_iso_date(data[field]))
    if data.get("status") is not None:
        status = str(data["status"]).strip().lower()
        if status not in SITE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SITE_STATUSES)}")
        site.status = status
    if "assigned_employees" in data and data["assigned_employees"] is not None:
        site.employees = _employees_by_id(db, data["assigned_employees"])
    site.updated_at = utcnow()
    return site


def delete_site(db: Session, actor: Employee, site_id: uuid.UUID) -> None:
    permissions.ensure_admin(actor, "delete sites")
    site = get_site_or_404(db, site_id)
    db.delete(site)


def site_phases(db: Session, site_id: uuid.UUID, mode: str) -> List[dict]:
    site = get_site_or_404(db, site_id)
    check_mode(mode)
    return [serialize_phase(p, mode=mode) for p in site.phases]


# ----- phases -----

def add_phase(db: Session, actor: Employee, site_id: uuid.UUID, data: dict) -> Phase:
    """Insert a phase at the requested position; later phases shift down by one."""
    permissions.ensure_admin(actor, "add stages")
    site = get_site_or_404(db, site_id)
    name = _required_name(data.get("name"), "Stage")
    existing = list(site.phases)
    requested = data.get("order_num")
    if requested is None:
        requested = len(existing) + 1
    if requested < 1:
        raise ValidationError("order_num must be at least 1")
    for p in existing:
        if p.order_num >= requested:
            p.order_num += 1
    phase = Phase(
        name=name,
        order_num=requested,
        status=WorkState.NOT_STARTED.value,
        start_date=ensure_iso_date(data.get("start_date")),
        due_date=ensure_iso_date(data.get("due_date")),
        budget=data.get("budget"),
    )
    site.phases.append(phase)
    _reindex(existing + [phase])
    return phase


def update_phase(db: Session, actor: Employee, phase_id: uuid.UUID, data: dict) -> Phase:
    permissions.ensure_admin(actor, "update stages")
    phase = get_phase_or_404(db, phase_id)
    new_state = check_manual_status(WorkState.parse(phase.status), data.get("status"))
    if "name" in data:
        phase.name = _required_name(data["name"], "Stage")
    for field in ("start_date", "due_date"):
        if field in data:
            setattr(phase, field, ensure_iso_date(data[field]))
    if "budget" in data:
        phase.budget = data["budget"]
    if data.get("order_num") is not None:
        target = data["order_num"]
        if target < 1:
            raise ValidationError("order_num must be at least 1")
        others = sorted((p for p in phase.site.phases if p.id != phase.id), key=lambda p: p.order_num or 0)
        others.insert(min(target, len(others) + 1) - 1, phase)
        for i, p in enumerate(others, start=1):
            p.order_num = i
    if new_state is not None:
        phase.status = new_state.value
    return phase


def delete_phase(db: Session, actor: Employee, phase_id: uuid.UUID) -> None:
    """Delete a phase with its tasks, todos, updates and messages, then close the gap in ordering."""
    permissions.ensure_admin(actor, "delete stages")
    phase = get_phase_or_404(db, phase_id)
    _reindex(p for p in phase.site.phases if p.id != phase.id)
    db.delete(phase)


def assign_employee_to_phase(
    db: Session, actor: Employee, phase_id: uuid.UUID, employee_id: Optional[uuid.UUID]
) -> Tuple[Phase, List[NotificationDraft]]:
    permissions.ensure_admin(actor, "assign stages")
    phase = get_phase_or_404(db, phase_id)
    if employee_id is None:
        phase.assigned_to_id = None
        return phase, []
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if not employee:
        raise NotFound("Employee not found")
    if phase.assigned_to_id == employee.id:
        return phase, []
    phase.assigned_to_id = employee.id
    drafts = drafts_for_assignment(
        employee.id,
        f"You have been assigned to stage: {phase.name} in project: {phase.site.name}",
        site_id=phase.site_id,
        phase_id=phase.id,
    )
    return phase, drafts


# ----- tasks -----

def list_tasks(db: Session, actor: Employee) -> List[dict]:
    permissions.ensure_admin(actor, "list all tasks")
    tasks = db.query(Task).order_by(Task.created_at.desc()).all()
    return [serialize_task(t) for t in tasks]


def _task_assignment_draft(task: Task, employee: Employee) -> List[NotificationDraft]:
    due = task.due_date.isoformat() if task.due_date else "N/A"
    return drafts_for_assignment(
        employee.id,
        f'You have been assigned to task: "{task.name}". Due: {due}',
        site_id=task.site_id,
        phase_id=task.phase_id,
        task_id=task.id,
    )


def create_task(db: Session, actor: Employee, data: dict) -> Tuple[Task, List[NotificationDraft]]:
    permissions.ensure_admin(actor, "create tasks")
    site = get_site_or_404(db, data.get("site_id"))
    phase = get_phase_or_404(db, data.get("phase_id"))
    if phase.site_id != site.id:
        raise ValidationError("Stage does not belong to this site")
    task = Task(
        id=uuid.uuid4(),
        site_id=site.id,
        phase_id=phase.id,
        name=_required_name(data.get("name"), "Task"),
        status=WorkState.NOT_STARTED.value,
        progress=0,
        amount=data.get("amount"),
        start_date=ensure_iso_date(data.get("start_date")),
        due_date=ensure_iso_date(data.get("due_date")),
    )
    phase.tasks.append(task)
    task.assignees = _employees_by_id(db, data.get("assignee_ids"))
    db.add(task)
    refresh_phase_progress(phase)
    drafts = []
    for employee in task.assignees:
        drafts.extend(_task_assignment_draft(task, employee))
    return task, drafts


def update_task(db: Session, actor: Employee, task_id: uuid.UUID, data: dict) -> Task:
    permissions.ensure_admin(actor, "update tasks")
    task = get_task_or_404(db, task_id)
    new_state = check_manual_status(WorkState.parse(task.status), data.get("status"))
    if "name" in data:
        task.name = _required_name(data["name"], "Task")
    if "amount" in data:
        task.amount = data["amount"]
    for field in ("start_date", "due_date"):
        if field in data:
            setattr(task, field, ensure_iso_date(data[field]))
    if data.get("assignee_ids") is not None:
        task.assignees = _employees_by_id(db, data["assignee_ids"])
    if new_state is not None:
        task.status = new_state.value
        refresh_phase_progress(task.phase)
    return task


def delete_task(db: Session, actor: Employee, task_id: uuid.UUID) -> None:
    permissions.ensure_admin(actor, "delete tasks")
    task = get_task_or_404(db, task_id)
    phase = task.phase
    db.delete(task)
    db.flush()
    db.expire(phase, ["tasks"])
    refresh_phase_progress(phase)


def toggle_task_assignment(
    db: Session,
    actor: Employee,
    task_id: uuid.UUID,
    employee_id: uuid.UUID,
    due_date=None,
) -> Tuple[Task, bool, List[NotificationDraft]]:
    """Assign the employee if not yet assigned, otherwise unassign. Returns (task, assigned, drafts)."""
    permissions.ensure_admin(actor, "assign tasks")
    task = get_task_or_404(db, task_id)
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if not employee:
        raise NotFound("Employee not found")
    if any(a.id == employee.id for a in task.assignees):
        task.assignees = [a for a in task.assignees if a.id != employee.id]
        return task, False, []
    due = ensure_iso_date(due_date)
    if due is not None:
        task.due_date = due
    task.assignees.append(employee)
    return task, True, _task_assignment_draft(task, employee)


# ----- serializers -----

def _assignee(e: Employee) -> dict:
    return {"id": str(e.id), "name": e.name, "email": e.email, "role": e.role}


def serialize_site(s: Site) -> dict:
    return {
        "id": str(s.id),
        "name": s.name,
        "location": s.location,
        "city": s.city,
        "state": s.state,
        "country": s.country,
        "client": {
            "name": s.client_name,
            "email": s.client_email,
            "phone": s.client_phone,
            "company": s.client_company,
        },
        "budget": float(s.budget) if s.budget is not None else None,
        "start_date": s.start_date.isoformat() if s.start_date else None,
        "end_date": s.end_date.isoformat() if s.end_date else None,
        "duration": s.duration,
        "status": s.status,
        "assigned_employees": [_assignee(e) for e in s.employees],
        "created_at": s.created_at.isoformat() if s.created_at else None,
        "updated_at": s.updated_at.isoformat() if s.updated_at else None,
    }


def serialize_task(t: Task) -> dict:
    state = WorkState.parse(t.status)
    return {
        "id": str(t.id),
        "site": {"id": str(t.site_id), "name": t.site.name if t.site else None},
        "phase": {"id": str(t.phase_id), "name": t.phase.name if t.phase else None},
        "name": t.name,
        "status": state.value,
        "status_label": status_label(state, Scope.TASK),
        "progress": t.progress or 0,
        "amount": float(t.amount) if t.amount is not None else None,
        "start_date": t.start_date.isoformat() if t.start_date else None,
        "due_date": t.due_date.isoformat() if t.due_date else None,
        "assignees": [_assignee(a) for a in t.assignees],
        "submitted_by_id": str(t.submitted_by_id) if t.submitted_by_id else None,
        "submitted_at": t.submitted_at.isoformat() if t.submitted_at else None,
        "completed_by_id": str(t.completed_by_id) if t.completed_by_id else None,
        "completed_at": t.completed_at.isoformat() if t.completed_at else None,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }


def serialize_phase(p: Phase, mode: Optional[str] = None, with_tasks: bool = True) -> dict:
    state = WorkState.parse(p.status)
    d = {
        "id": str(p.id),
        "site_id": str(p.site_id),
        "name": p.name,
        "order_num": p.order_num,
        "status": state.value,
        "status_label": status_label(state, Scope.PHASE),
        "explicit_progress": p.progress or 0,
        "derived_progress": p.derived_progress or 0,
        "assigned_to": {
            "id": str(p.assigned_to_id),
            "name": p.assigned_to.name if p.assigned_to else None,
        } if p.assigned_to_id else None,
        "start_date": p.start_date.isoformat() if p.start_date else None,
        "due_date": p.due_date.isoformat() if p.due_date else None,
        "budget": float(p.budget) if p.budget is not None else None,
        "approved_by_id": str(p.approved_by_id) if p.approved_by_id else None,
        "approved_at": p.approved_at.isoformat() if p.approved_at else None,
    }
    if mode is not None:
        d["display"] = display_progress(p, mode)
    if with_tasks:
        d["tasks"] = [serialize_task(t) for t in p.tasks]
    return d


def get_site(db: Session, site_id: uuid.UUID, mode: str) -> dict:
    site = get_site_or_404(db, site_id)
    check_mode(mode)
    d = serialize_site(site)
    d["phases"] = [serialize_phase(p, mode=mode) for p in site.phases]
    return d


# ----- details -----

def task_details(db: Session, actor: Employee, task_id: uuid.UUID) -> dict:
    task = get_task_or_404(db, task_id)
    permissions.ensure_can_view_task(actor, task)
    return {
        "task": serialize_task(task),
        "updates": [serialize_update(u) for u in list_updates(db, Scope.TASK, task.id)],
        "messages": [serialize_message(m) for m in task_conversation(db, task)],
        "todos": [serialize_todo(t) for t in sorted(task.todos, key=lambda t: t.created_at)],
    }


def phase_details(db: Session, actor: Employee, phase_id: uuid.UUID, mode: str = "explicit") -> dict:
    phase = get_phase_or_404(db, phase_id)
    permissions.ensure_can_view_phase(db, actor, phase)
    check_mode(mode)
    d = serialize_phase(phase, mode=mode)
    d["site"] = {"id": str(phase.site_id), "name": phase.site.name, "location": phase.site.location}
    return {
        "phase": d,
        "updates": [serialize_update(u) for u in list_updates(db, Scope.PHASE, phase.id)],
        "messages": [serialize_message(m) for m in conversation(db, phase)],
        "todos": [serialize_todo(t) for t in sorted(phase.todos, key=lambda t: t.created_at)],
    }
