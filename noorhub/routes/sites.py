import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_admin
from ..db import commit_or_raise, get_db
from ..models.models import Employee
from ..schemas.sites import SiteCreate, SiteUpdate
from ..services import site_service
from ..services.aggregation import EXPLICIT


router = APIRouter(prefix="/sites", tags=["sites"])


@router.get("")
def list_sites(db: Session = Depends(get_db), me: Employee = Depends(require_admin)):
    return {"sites": site_service.list_sites(db)}


@router.post("", status_code=201)
def create_site(payload: SiteCreate, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    site = site_service.create_site(db, me, payload.model_dump())
    commit_or_raise(db)
    return {"message": "Site created with predefined tasks", "site": site_service.serialize_site(site)}


@router.get("/{site_id}")
def get_site(
    site_id: uuid.UUID,
    mode: str = Query(EXPLICIT),
    db: Session = Depends(get_db),
    me: Employee = Depends(require_admin),
):
    return site_service.get_site(db, site_id, mode)


@router.put("/{site_id}")
def update_site(
    site_id: uuid.UUID,
    payload: SiteUpdate,
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    site = site_service.update_site(db, me, site_id, payload.model_dump(exclude_unset=True))
    commit_or_raise(db)
    return site_service.serialize_site(site)


@router.delete("/{site_id}")
def delete_site(site_id: uuid.UUID, db: Session = Depends(get_db), me: Employee = Depends(get_current_user)):
    site_service.delete_site(db, me, site_id)
    commit_or_raise(db)
    return {"status": "ok"}


@router.get("/{site_id}/phases")
def list_site_phases(
    site_id: uuid.UUID,
    mode: str = Query(EXPLICIT),
    db: Session = Depends(get_db),
    me: Employee = Depends(get_current_user),
):
    """Phases in timeline order; `mode` picks explicit or task-derived progress for the badge."""
    return {"phases": site_service.site_phases(db, site_id, mode)}
