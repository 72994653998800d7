import enum
import hmac
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import Employee
from ..services.permissions import ensure_admin


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


class CredentialScheme(str, enum.Enum):
    PBKDF2_SHA256 = "pbkdf2_sha256"  # current
    BCRYPT = "bcrypt"  # legacy hashed rows
    PLAINTEXT = "plaintext"  # legacy rows stored before hashing was introduced


CURRENT_SCHEME = CredentialScheme.PBKDF2_SHA256


@dataclass(frozen=True)
class StoredCredential:
    """Password as stored for an employee: the scheme decides how `value` is checked.

    `scheme` is None when the row carries a scheme this version does not know;
    such a credential never verifies.
    """
    scheme: Optional[CredentialScheme]
    value: str

    @classmethod
    def of(cls, employee: Employee) -> "StoredCredential":
        try:
            scheme = CredentialScheme(employee.password_scheme or CURRENT_SCHEME.value)
        except ValueError:
            scheme = None
        return cls(scheme, employee.password_hash or "")

    @property
    def needs_rehash(self) -> bool:
        return self.scheme is not CURRENT_SCHEME

    def verify(self, plain: str) -> bool:
        if self.scheme is None or not self.value or plain is None:
            return False
        if self.scheme is CredentialScheme.PLAINTEXT:
            return hmac.compare_digest(plain.encode("utf-8"), self.value.encode("utf-8"))
        if self.scheme is CredentialScheme.BCRYPT:
            # bcrypt only looks at the first 72 bytes
            pb = plain.encode("utf-8")[:72]
            try:
                return bcrypt.checkpw(pb, self.value.encode("utf-8"))
            except ValueError:
                return False
        try:
            return pwd_context.verify(plain, self.value)
        except ValueError:
            return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def hash_password(password: str) -> StoredCredential:
    return StoredCredential(CURRENT_SCHEME, get_password_hash(password))


def set_password(employee: Employee, password: str) -> None:
    credential = hash_password(password)
    employee.password_scheme = credential.scheme.value
    employee.password_hash = credential.value


def verify_password(employee: Employee, plain: str) -> bool:
    return StoredCredential.of(employee).verify(plain)


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token


def create_access_token(employee_id: str, role: Optional[str] = None) -> str:
    return _create_token(employee_id, settings.jwt_ttl_seconds, extra={"role": role})


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> Employee:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(creds.credentials)
    employee_id_raw = payload.get("sub")
    try:
        employee_uuid = uuid.UUID(str(employee_id_raw))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    employee = db.query(Employee).filter(Employee.id == employee_uuid).first()
    if employee is None or employee.status != "Active":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    return employee


def require_admin(employee: Employee = Depends(get_current_user)) -> Employee:
    ensure_admin(employee)
    return employee
