"""
HTTP tests for login and credentials
"""
import bcrypt
import pytest

from noorhub.auth.security import CredentialScheme, StoredCredential, hash_password
from noorhub.config import Settings
from noorhub.models.models import Employee
from noorhub.services.bootstrap import ensure_bootstrap_admin


def _legacy_employee(db, scheme, stored, phone="+19990000001"):
    employee = Employee(name="Legacy", phone=phone, role="worker", status="Active",
                        password_scheme=scheme, password_hash=stored)
    db.add(employee)
    db.commit()
    return employee


@pytest.mark.unit
class TestStoredCredential:
    """Tests for scheme-dispatched verification"""

    def test_current_scheme(self):
        credential = hash_password("secret123")
        assert credential.scheme is CredentialScheme.PBKDF2_SHA256
        assert credential.verify("secret123")
        assert not credential.verify("wrong")
        assert not credential.needs_rehash

    def test_bcrypt(self):
        stored = bcrypt.hashpw(b"secret123", bcrypt.gensalt()).decode()
        credential = StoredCredential(CredentialScheme.BCRYPT, stored)
        assert credential.verify("secret123")
        assert credential.needs_rehash

    def test_plaintext(self):
        credential = StoredCredential(CredentialScheme.PLAINTEXT, "secret123")
        assert credential.verify("secret123")
        assert not credential.verify("secret1234")

    def test_plaintext_row_is_not_a_hash(self):
        # a plaintext password that happens to look like a hash is still compared literally
        credential = StoredCredential(CredentialScheme.PLAINTEXT, "$2b$looks-like-bcrypt")
        assert credential.verify("$2b$looks-like-bcrypt")


@pytest.mark.api
class TestLogin:
    """Tests for /auth endpoints"""

    def test_login_by_phone(self, client, worker):
        r = client.post("/auth/login", json={"identifier": worker.phone, "password": "secret123"})
        assert r.status_code == 200
        token = r.json()["access_token"]
        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["name"] == "Worker W"

    def test_login_by_email(self, client, worker):
        r = client.post("/auth/login", json={"identifier": "WORKER@example.com", "password": "secret123"})
        assert r.status_code == 200

    def test_wrong_password(self, client, worker):
        r = client.post("/auth/login", json={"identifier": worker.phone, "password": "nope"})
        assert r.status_code == 401

    def test_inactive_refused(self, client, make_employee):
        sleeper = make_employee(status="Inactive")
        r = client.post("/auth/login", json={"identifier": sleeper.phone, "password": "secret123"})
        assert r.status_code == 403

    def test_legacy_plaintext_rehashed(self, client, db):
        employee = _legacy_employee(db, "plaintext", "old-pass")
        r = client.post("/auth/login", json={"identifier": employee.phone, "password": "old-pass"})
        assert r.status_code == 200
        db.expire_all()
        assert employee.password_scheme == "pbkdf2_sha256"
        assert employee.password_hash != "old-pass"
        r = client.post("/auth/login", json={"identifier": employee.phone, "password": "old-pass"})
        assert r.status_code == 200

    def test_unknown_scheme_is_refused(self, client, db):
        employee = _legacy_employee(db, "argon2id", "whatever")
        assert not StoredCredential.of(employee).verify("whatever")
        r = client.post("/auth/login", json={"identifier": employee.phone, "password": "whatever"})
        assert r.status_code == 401

    def test_invalid_token(self, client):
        r = client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert r.status_code == 401


@pytest.mark.unit
class TestBootstrapAdmin:
    """Tests for the configured admin account"""

    def test_created_once(self, db):
        settings = Settings(ADMIN_PHONE="+15550000000", ADMIN_PASSWORD="boot-pass", ADMIN_NAME="Boss")
        created = ensure_bootstrap_admin(db, settings)
        assert created.role == "admin"
        assert StoredCredential.of(created).verify("boot-pass")
        again = ensure_bootstrap_admin(db, settings)
        assert again.id == created.id
        assert db.query(Employee).count() == 1

    def test_skipped_without_settings(self, db):
        assert ensure_bootstrap_admin(db, Settings(ADMIN_PHONE=None, ADMIN_PASSWORD=None)) is None
        assert db.query(Employee).count() == 0
