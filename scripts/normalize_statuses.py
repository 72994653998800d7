"""
Rewrite legacy task/phase status spellings ("Not Started", "pending",
"achieved", "Completed", ...) to the snake_case workflow values.

Usage:
  python scripts/normalize_statuses.py [--dry-run]
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from noorhub.db import SessionLocal
from noorhub.errors import ValidationError
from noorhub.models.models import Phase, Task
from noorhub.services.workflow import WorkState


def normalize(db, model, dry_run=False):
    changed = 0
    unknown = []
    for row in db.query(model).all():
        try:
            state = WorkState.parse(row.status)
        except ValidationError:
            unknown.append((row.id, row.status))
            continue
        if row.status != state.value:
            print(f"  {model.__tablename__} {row.id}: {row.status!r} -> {state.value}")
            if not dry_run:
                row.status = state.value
            changed += 1
    return changed, unknown


def main():
    dry_run = "--dry-run" in sys.argv
    db = SessionLocal()
    try:
        print("=" * 60)
        print("Normalizing workflow statuses" + (" (dry run)" if dry_run else ""))
        print("=" * 60)
        total_unknown = []
        for model in (Task, Phase):
            changed, unknown = normalize(db, model, dry_run=dry_run)
            total_unknown.extend(unknown)
            print(f"[OK] {model.__tablename__}: {changed} row(s) updated")
        if total_unknown:
            print(f"[WARN] {len(total_unknown)} row(s) with unknown status left untouched:")
            for row_id, status in total_unknown:
                print(f"  {row_id}: {status!r}")
        if not dry_run:
            db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    main()
