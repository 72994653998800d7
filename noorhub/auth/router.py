import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import commit_or_raise, get_db
from ..models.models import Employee
from ..schemas.auth import LoginRequest, TokenResponse
from ..services.employees import serialize_employee
from .security import StoredCredential, create_access_token, get_current_user, set_password


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    identifier = (req.identifier or "").strip()
    q = db.query(Employee).filter(
        (func.lower(Employee.email) == identifier.lower())
        | (Employee.phone == identifier)
    )
    employee = q.first()
    if not employee:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    credential = StoredCredential.of(employee)
    if not credential.verify(req.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if employee.status != "Active":
        raise HTTPException(status_code=403, detail="Account is inactive")
    if credential.needs_rehash:
        # Move legacy rows to the current scheme on the first successful login
        set_password(employee, req.password)
        commit_or_raise(db)
        logger.info("credential_rehashed", employee_id=str(employee.id), from_scheme=credential.scheme.value)
    return TokenResponse(access_token=create_access_token(str(employee.id), role=employee.role))


@router.get("/me")
def me(employee: Employee = Depends(get_current_user)):
    return serialize_employee(employee)
