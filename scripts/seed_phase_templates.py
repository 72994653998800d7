"""
Seed the phase/task template table used when a new site is created.

Usage:
  python scripts/seed_phase_templates.py

Idempotent: rows that already exist (same phase and task name) are skipped.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from noorhub.db import Base, SessionLocal, engine
from noorhub.services.site_service import DEFAULT_TEMPLATES, seed_templates


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        added = seed_templates(db, DEFAULT_TEMPLATES)
        db.commit()
        print("=" * 60)
        print(f"Phase templates: {added} added")
        print("=" * 60)
    finally:
        db.close()


if __name__ == "__main__":
    main()
