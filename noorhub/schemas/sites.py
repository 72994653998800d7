import uuid
from typing import List, Optional

from pydantic import BaseModel, field_validator


class SiteBase(BaseModel):
    location: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    client_company: Optional[str] = None
    budget: Optional[float] = None
    # YYYY-MM-DD or DD/MM/YYYY
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    duration: Optional[str] = None
    assigned_employees: Optional[List[uuid.UUID]] = None

    @field_validator('location', 'city', 'state', 'country', 'client_name', 'client_email', 'client_phone', 'client_company', 'start_date', 'end_date', 'duration', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class SiteCreate(SiteBase):
    name: str


class SiteUpdate(SiteBase):
    name: Optional[str] = None
    status: Optional[str] = None


class PhaseCreate(BaseModel):
    site_id: uuid.UUID
    name: str
    order_num: Optional[int] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    budget: Optional[float] = None


class PhaseUpdate(BaseModel):
    name: Optional[str] = None
    order_num: Optional[int] = None
    status: Optional[str] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    budget: Optional[float] = None


class PhaseAssign(BaseModel):
    employee_id: Optional[uuid.UUID] = None


class TaskCreate(BaseModel):
    site_id: uuid.UUID
    phase_id: uuid.UUID
    name: str
    amount: Optional[float] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    assignee_ids: Optional[List[uuid.UUID]] = None


class TaskUpdate(BaseModel):
    name: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[float] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    assignee_ids: Optional[List[uuid.UUID]] = None


class TaskAssignToggle(BaseModel):
    employee_id: uuid.UUID
    due_date: Optional[str] = None
