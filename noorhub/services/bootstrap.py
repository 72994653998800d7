import structlog
from sqlalchemy.orm import Session

from ..auth.security import set_password
from ..config import Settings
from ..models.models import Employee
from .permissions import ADMIN_ROLE


logger = structlog.get_logger(__name__)


def ensure_bootstrap_admin(db: Session, settings: Settings):
    """
    Create the configured admin account once, as an ordinary employee row.

    Nothing happens when ADMIN_PHONE/ADMIN_PASSWORD are unset or an employee
    with that phone (or email) already exists; an existing account is never
    overwritten.
    """
    if not settings.admin_phone or not settings.admin_password:
        return None
    q = db.query(Employee).filter(Employee.phone == settings.admin_phone)
    existing = q.first()
    if existing is None and settings.admin_email:
        existing = db.query(Employee).filter(Employee.email == settings.admin_email).first()
    if existing is not None:
        return existing
    admin = Employee(
        name=settings.admin_name,
        phone=settings.admin_phone,
        email=settings.admin_email,
        role=ADMIN_ROLE,
        status="Active",
    )
    set_password(admin, settings.admin_password)
    db.add(admin)
    db.commit()
    logger.info("bootstrap_admin_created", phone=settings.admin_phone)
    return admin
