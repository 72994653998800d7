"""
Tag imported employee rows with the scheme their password was stored in.

Rows copied from the old database carry either a bcrypt hash ($2a$/$2b$/$2y$)
or the raw password. Login dispatches on employees.password_scheme, so each
imported row must be tagged once; the password is re-hashed to pbkdf2_sha256
on the employee's next successful login.

Usage:
  python scripts/tag_legacy_credentials.py [--dry-run]
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from noorhub.auth.security import CredentialScheme
from noorhub.db import SessionLocal
from noorhub.models.models import Employee


def detect_scheme(stored: str) -> CredentialScheme:
    if stored.startswith(("$2a$", "$2b$", "$2y$")):
        return CredentialScheme.BCRYPT
    if stored.startswith("$pbkdf2-sha256$"):
        return CredentialScheme.PBKDF2_SHA256
    return CredentialScheme.PLAINTEXT


def main():
    dry_run = "--dry-run" in sys.argv
    db = SessionLocal()
    try:
        counts = {s: 0 for s in CredentialScheme}
        for employee in db.query(Employee).all():
            scheme = detect_scheme(employee.password_hash or "")
            counts[scheme] += 1
            if employee.password_scheme != scheme.value:
                print(f"  {employee.phone}: {employee.password_scheme} -> {scheme.value}")
                if not dry_run:
                    employee.password_scheme = scheme.value
        if not dry_run:
            db.commit()
        print("=" * 60)
        for scheme, n in counts.items():
            print(f"{scheme.value}: {n}")
        print("=" * 60)
    finally:
        db.close()


if __name__ == "__main__":
    main()
