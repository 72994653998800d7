import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import commit_or_raise, get_db
from ..models.models import Employee
from ..schemas.employees import EmployeeCreate, EmployeeUpdate, ProfileUpdate
from ..services import employees


router = APIRouter(prefix="/employees", tags=["employees"])
# Self-service endpoints for the signed-in employee
me_router = APIRouter(prefix="/employee", tags=["employees"])


@router.get("")
def list_employees(db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return {"employees": [employees.serialize_employee(e) for e in employees.list_employees(db, me)]}


@router.post("", status_code=201)
def create_employee(payload: EmployeeCreate, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    employee = employees.create_employee(db, me, payload.model_dump())
    commit_or_raise(db)
    return employees.serialize_employee(employee)


@router.put("/{employee_id}")
def update_employee(
    employee_id: uuid.UUID,
    payload: EmployeeUpdate,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    employee = employees.update_employee(db, me, employee_id, payload.model_dump(exclude_unset=True))
    commit_or_raise(db)
    return employees.serialize_employee(employee)


@router.delete("/{employee_id}")
def delete_employee(employee_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    employees.delete_employee(db, me, employee_id)
    commit_or_raise(db)
    return {"status": "ok"}


@me_router.get("/profile")
def get_profile(me: Employee = Depends(get_current_user)):
    return employees.serialize_employee(me)


@me_router.put("/profile")
def update_profile(payload: ProfileUpdate, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    employee = employees.update_profile(db, me, payload.model_dump(exclude_unset=True))
    commit_or_raise(db)
    return employees.serialize_employee(employee)


@me_router.get("/dashboard-stats")
def dashboard_stats(db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return employees.dashboard_stats(db, me)


@me_router.get("/tasks")
def my_tasks(db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return {"tasks": employees.my_tasks(db, me)}


@me_router.get("/phases")
def my_phases(db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return {"phases": employees.my_phases(db, me)}


@me_router.get("/sites")
def my_sites(db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    return {"sites": employees.my_sites(db, me)}
