"""
HTTP tests for task and phase workflow endpoints
"""
import uuid

import pytest

from noorhub.models.models import Notification, ProgressUpdate


@pytest.mark.api
class TestTaskEndpoints:
    """Submitting, approving and rejecting tasks over HTTP"""

    def test_submit_partial(self, client, auth_headers, worker, task):
        r = client.post(f"/tasks/{task.id}/updates", json={"progress": 40, "note": "half done"}, headers=auth_headers(worker))
        assert r.status_code == 200
        assert r.json() == {"status": "in_progress", "status_label": "In Progress", "progress": 40}

    def test_full_cycle(self, client, db, auth_headers, admin, worker, task):
        client.post(f"/tasks/{task.id}/updates", json={"progress": 100, "note": "finished"}, headers=auth_headers(worker))
        r = client.put(f"/tasks/{task.id}/approve", headers=auth_headers(admin))
        assert r.status_code == 200
        assert r.json()["status"] == "completed"
        r = client.post(f"/tasks/{task.id}/updates", json={"progress": 50}, headers=auth_headers(worker))
        assert r.status_code == 409
        assert r.json()["kind"] == "invalid_state_transition"

    def test_reject_needs_reason(self, client, auth_headers, admin, worker, task):
        client.post(f"/tasks/{task.id}/updates", json={"progress": 100}, headers=auth_headers(worker))
        r = client.put(f"/tasks/{task.id}/reject", json={"reason": ""}, headers=auth_headers(admin))
        assert r.status_code == 400
        assert r.json()["kind"] == "validation_error"
        r = client.put(f"/tasks/{task.id}/reject", json={"reason": "redo grouting"}, headers=auth_headers(admin))
        assert r.status_code == 200
        assert r.json()["status"] == "in_progress"

    def test_out_of_range(self, client, db, auth_headers, worker, task):
        r = client.post(f"/tasks/{task.id}/updates", json={"progress": 150}, headers=auth_headers(worker))
        assert r.status_code == 400
        assert r.json()["kind"] == "invalid_progress"
        assert db.query(ProgressUpdate).count() == 0

    def test_outsider_forbidden(self, client, auth_headers, outsider, task):
        r = client.post(f"/tasks/{task.id}/updates", json={"progress": 10}, headers=auth_headers(outsider))
        assert r.status_code == 403
        assert r.json()["kind"] == "forbidden"

    def test_unknown_task(self, client, auth_headers, admin):
        r = client.put(f"/tasks/{uuid.uuid4()}/approve", headers=auth_headers(admin))
        assert r.status_code == 404

    def test_requires_token(self, client, task):
        r = client.post(f"/tasks/{task.id}/updates", json={"progress": 10})
        assert r.status_code == 401

    def test_history(self, client, auth_headers, worker, task):
        for value in (20, 60):
            client.post(f"/tasks/{task.id}/updates", json={"progress": value}, headers=auth_headers(worker))
        r = client.get(f"/tasks/{task.id}/updates?limit=1", headers=auth_headers(worker))
        assert r.status_code == 200
        updates = r.json()["updates"]
        assert [(u["previous_progress"], u["new_progress"]) for u in updates] == [(20, 60)]

    def test_admin_notified_on_submission(self, client, db, auth_headers, admin, worker, task):
        client.post(f"/tasks/{task.id}/updates", json={"progress": 100}, headers=auth_headers(worker))
        r = client.get("/notifications", headers=auth_headers(admin))
        body = r.json()
        assert body["unread_count"] == 1
        assert body["notifications"][0]["type"] == "TASK_UPDATE"
        r = client.put(f"/notifications/{body['notifications'][0]['id']}/read", headers=auth_headers(admin))
        assert r.json()["is_read"] is True
        assert client.get("/notifications", headers=auth_headers(admin)).json()["unread_count"] == 0

    def test_details(self, client, auth_headers, worker, task):
        client.post(f"/tasks/{task.id}/updates", json={"progress": 100}, headers=auth_headers(worker))
        r = client.get(f"/tasks/{task.id}/details", headers=auth_headers(worker))
        assert r.status_code == 200
        body = r.json()
        assert body["task"]["status"] == "waiting_for_approval"
        assert len(body["updates"]) == 1
        assert body["messages"][0]["type"] == "system"


@pytest.mark.api
class TestPhaseEndpoints:
    """Phase-level workflow over HTTP"""

    def test_submit_and_approve(self, client, db, auth_headers, admin, worker, phase, task):
        r = client.post(f"/phases/{phase.id}/updates", json={"progress": 100, "note": "stage done"}, headers=auth_headers(worker))
        assert r.json()["status"] == "waiting_for_approval"
        r = client.put(f"/phases/{phase.id}/approve", headers=auth_headers(admin))
        assert r.json()["status_label"] == "Achieved"
        db.expire_all()
        types = {n.type for n in db.query(Notification).filter(Notification.employee_id == worker.id)}
        assert types == {"STAGE_COMPLETED"}

    def test_reject_resets(self, client, auth_headers, admin, worker, phase, task):
        client.post(f"/phases/{phase.id}/updates", json={"progress": 100}, headers=auth_headers(worker))
        r = client.put(f"/phases/{phase.id}/reject", json={"reason": "wall out of plumb"}, headers=auth_headers(admin))
        assert r.json()["progress"] == 0

    def test_progress_modes(self, client, auth_headers, admin, worker, site, phase, task):
        client.post(f"/phases/{phase.id}/updates", json={"progress": 70}, headers=auth_headers(worker))
        client.post(f"/tasks/{task.id}/updates", json={"progress": 100}, headers=auth_headers(worker))
        client.put(f"/tasks/{task.id}/approve", headers=auth_headers(admin))
        explicit = client.get(f"/sites/{site.id}/phases?mode=explicit", headers=auth_headers(worker)).json()["phases"][0]
        derived = client.get(f"/sites/{site.id}/phases?mode=derived", headers=auth_headers(worker)).json()["phases"][0]
        assert explicit["display"]["progress"] == 70
        assert derived["display"]["progress"] == 100
        assert explicit["explicit_progress"] == 70
        assert explicit["derived_progress"] == 100

    def test_bad_mode(self, client, auth_headers, worker, site):
        r = client.get(f"/sites/{site.id}/phases?mode=blend", headers=auth_headers(worker))
        assert r.status_code == 400

    def test_outsider_cannot_see_details(self, client, auth_headers, outsider, phase):
        r = client.get(f"/phases/{phase.id}/details", headers=auth_headers(outsider))
        assert r.status_code == 403
