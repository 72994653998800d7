"""
Tests for the append-only progress record store
"""
import pytest

from noorhub.errors import ValidationError
from noorhub.models.models import ProgressUpdate
from noorhub.services import progress_store
from noorhub.services.workflow import Scope


@pytest.mark.unit
class TestRecordProgress:
    """Tests for appending records"""

    def test_record_is_appended(self, db, task, worker):
        record = progress_store.record_progress(db, Scope.TASK, task.id, 0, 40, worker.id, "  half done ")
        db.commit()
        assert record.id is not None
        assert record.scope == "task"
        assert record.note == "half done"
        assert record.phase_id is None

    @pytest.mark.parametrize("previous,new", [(0, 101), (-1, 10), (0, None)])
    def test_out_of_range_values_rejected(self, db, task, worker, previous, new):
        with pytest.raises(ValidationError):
            progress_store.record_progress(db, Scope.TASK, task.id, previous, new, worker.id, None)
        assert db.query(ProgressUpdate).count() == 0


@pytest.mark.unit
class TestListUpdates:
    """Tests for reading history"""

    def _seed(self, db, task, worker):
        for prev, new in [(0, 10), (10, 20), (20, 30), (30, 40)]:
            progress_store.record_progress(db, Scope.TASK, task.id, prev, new, worker.id, f"to {new}")
        db.commit()

    def test_insertion_order(self, db, task, worker):
        self._seed(db, task, worker)
        rows = progress_store.list_updates(db, Scope.TASK, task.id)
        assert [r.new_progress for r in rows] == [10, 20, 30, 40]

    def test_limit_keeps_most_recent_in_order(self, db, task, worker):
        self._seed(db, task, worker)
        rows = progress_store.list_updates(db, Scope.TASK, task.id, limit=2)
        assert [r.new_progress for r in rows] == [30, 40]

    def test_scopes_are_separate(self, db, task, phase, worker):
        self._seed(db, task, worker)
        assert progress_store.list_updates(db, Scope.PHASE, phase.id) == []


@pytest.mark.unit
class TestCollapse:
    """Tests for display-side de-duplication"""

    def test_consecutive_duplicates_dropped(self, db, task, worker):
        for _ in range(3):
            progress_store.record_progress(db, Scope.TASK, task.id, 0, 40, worker.id, "same")
        progress_store.record_progress(db, Scope.TASK, task.id, 40, 50, worker.id, "next")
        progress_store.record_progress(db, Scope.TASK, task.id, 0, 40, worker.id, "same")
        db.commit()
        rows = progress_store.list_updates(db, Scope.TASK, task.id)
        collapsed = progress_store.collapse_consecutive_duplicates(rows)
        assert [r.new_progress for r in collapsed] == [40, 50, 40]
        # nothing removed from the store
        assert db.query(ProgressUpdate).count() == 5
