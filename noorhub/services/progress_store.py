"""
Append-only store of progress events for tasks and phases.
Rows are never updated or deleted here; ordering follows insertion (integer id).
"""
import uuid
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models.models import ProgressUpdate
from .workflow import MAX_PROGRESS, MIN_PROGRESS, Scope


def _scope_column(scope: Scope):
    return ProgressUpdate.task_id if scope is Scope.TASK else ProgressUpdate.phase_id


def record_progress(
    db: Session,
    scope: Scope,
    scope_id: uuid.UUID,
    previous: int,
    new: int,
    author_id: Optional[uuid.UUID],
    note: Optional[str],
    image_url: Optional[str] = None,
    audio_url: Optional[str] = None,
) -> ProgressUpdate:
    for value in (previous, new):
        if value is None or value < MIN_PROGRESS or value > MAX_PROGRESS:
            raise ValidationError(f"Progress {value} is outside 0-100")
    record = ProgressUpdate(
        scope=scope.value,
        task_id=scope_id if scope is Scope.TASK else None,
        phase_id=scope_id if scope is Scope.PHASE else None,
        author_id=author_id,
        previous_progress=previous,
        new_progress=new,
        note=(note or "").strip() or None,
        image_url=image_url or None,
        audio_url=audio_url or None,
    )
    db.add(record)
    db.flush()
    return record


def list_updates(
    db: Session,
    scope: Scope,
    scope_id: uuid.UUID,
    limit: Optional[int] = None,
) -> List[ProgressUpdate]:
    """Most recent `limit` records (all when None), returned oldest first."""
    query = db.query(ProgressUpdate).filter(_scope_column(scope) == scope_id)
    if limit is None:
        return query.order_by(ProgressUpdate.id.asc()).all()
    rows = query.order_by(ProgressUpdate.id.desc()).limit(max(0, limit)).all()
    rows.reverse()
    return rows


def collapse_consecutive_duplicates(records: Iterable[ProgressUpdate]) -> List[ProgressUpdate]:
    """
    Drop a record when it repeats the one right before it.

    Display-only: two records match when previous, new, note and author are
    equal. Nothing is removed from the store.
    """
    result: List[ProgressUpdate] = []
    last_key = None
    for record in records:
        key = (record.previous_progress, record.new_progress, record.note or "", record.author_id)
        if key == last_key:
            continue
        result.append(record)
        last_key = key
    return result


def serialize_update(record: ProgressUpdate) -> dict:
    return {
        "id": record.id,
        "scope": record.scope,
        "task_id": str(record.task_id) if record.task_id else None,
        "phase_id": str(record.phase_id) if record.phase_id else None,
        "previous_progress": record.previous_progress,
        "new_progress": record.new_progress,
        "note": record.note,
        "image_url": record.image_url,
        "audio_url": record.audio_url,
        "author": {
            "id": str(record.author_id) if record.author_id else None,
            "name": record.author.name if record.author else None,
        },
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }
