"""
HTTP tests for sites, tasks, employees, todos and chat
"""
import pytest

from noorhub.models.models import Employee, Notification, Phase, Site, Task
from noorhub.services.site_service import seed_templates


@pytest.mark.api
class TestSites:
    """Site administration endpoints"""

    def test_create_and_list(self, client, db, auth_headers, admin):
        seed_templates(db, [("Painting", ["Primer"])])
        db.commit()
        r = client.post("/sites", json={"name": "Villa 3", "start_date": "01/02/2025", "budget": 125000}, headers=auth_headers(admin))
        assert r.status_code == 201
        site_id = r.json()["site"]["id"]
        sites = client.get("/sites", headers=auth_headers(admin)).json()["sites"]
        assert [(s["name"], s["phase_count"], s["task_count"]) for s in sites] == [("Villa 3", 1, 1)]
        detail = client.get(f"/sites/{site_id}", headers=auth_headers(admin)).json()
        assert detail["start_date"] == "2025-02-01"
        assert detail["phases"][0]["tasks"][0]["name"] == "Primer"

    def test_worker_cannot_list(self, client, auth_headers, worker):
        r = client.get("/sites", headers=auth_headers(worker))
        assert r.status_code == 403

    def test_update_status(self, client, auth_headers, admin, site):
        r = client.put(f"/sites/{site.id}", json={"status": "on_hold"}, headers=auth_headers(admin))
        assert r.json()["status"] == "on_hold"
        r = client.put(f"/sites/{site.id}", json={"status": "abandoned"}, headers=auth_headers(admin))
        assert r.status_code == 400

    def test_delete(self, client, db, auth_headers, admin, site, phase, task):
        r = client.delete(f"/sites/{site.id}", headers=auth_headers(admin))
        assert r.status_code == 200
        assert db.query(Task).count() == 0


@pytest.mark.api
class TestTaskAdmin:
    """Task administration endpoints"""

    def test_create_task(self, client, auth_headers, admin, worker, site, phase):
        r = client.post(
            "/tasks",
            json={"site_id": str(site.id), "phase_id": str(phase.id), "name": "Parking", "assignee_ids": [str(worker.id)]},
            headers=auth_headers(admin),
        )
        assert r.status_code == 201
        assert r.json()["assignees"][0]["id"] == str(worker.id)
        notes = client.get("/notifications", headers=auth_headers(worker)).json()["notifications"]
        assert notes[0]["type"] == "ASSIGNMENT"

    def test_toggle_assignment(self, client, auth_headers, admin, outsider, task):
        r = client.put(f"/tasks/{task.id}/assign", json={"employee_id": str(outsider.id)}, headers=auth_headers(admin))
        assert r.json()["assigned"] is True
        r = client.post(f"/tasks/{task.id}/updates", json={"progress": 5}, headers=auth_headers(outsider))
        assert r.status_code == 200

    def test_generic_update_cannot_complete(self, client, auth_headers, admin, task):
        r = client.put(f"/tasks/{task.id}", json={"status": "completed"}, headers=auth_headers(admin))
        assert r.status_code == 400

    def test_worker_cannot_create(self, client, auth_headers, worker, site, phase):
        r = client.post("/tasks", json={"site_id": str(site.id), "phase_id": str(phase.id), "name": "X"}, headers=auth_headers(worker))
        assert r.status_code == 403

    def test_add_phase(self, client, db, auth_headers, admin, site, phase):
        r = client.post("/phases", json={"site_id": str(site.id), "name": "Foundation", "order_num": 1}, headers=auth_headers(admin))
        assert r.status_code == 201
        db.expire_all()
        assert [(p.name, p.order_num) for p in db.query(Phase).order_by(Phase.order_num)] == [("Foundation", 1), ("Tiles work", 2)]

    def test_assign_phase_notifies(self, client, db, auth_headers, admin, outsider, phase):
        r = client.put(f"/phases/{phase.id}/assign", json={"employee_id": str(outsider.id)}, headers=auth_headers(admin))
        assert r.json()["assigned_to"]["id"] == str(outsider.id)
        assert db.query(Notification).filter(Notification.employee_id == outsider.id).count() == 1


@pytest.mark.api
class TestEmployees:
    """Employee management and self-service endpoints"""

    def test_create_employee(self, client, auth_headers, admin):
        r = client.post(
            "/employees",
            json={"name": "Ravi", "phone": "+19876543210", "password": "pw123456", "role": "Supervisor", "email": ""},
            headers=auth_headers(admin),
        )
        assert r.status_code == 201
        assert r.json()["role"] == "supervisor"
        assert r.json()["email"] is None

    def test_duplicate_phone(self, client, auth_headers, admin, worker):
        r = client.post(
            "/employees",
            json={"name": "Copy", "phone": worker.phone, "password": "pw", "role": "worker"},
            headers=auth_headers(admin),
        )
        assert r.status_code == 400

    def test_unknown_role(self, client, auth_headers, admin):
        r = client.post(
            "/employees",
            json={"name": "Odd", "phone": "+1222", "password": "pw", "role": "overlord"},
            headers=auth_headers(admin),
        )
        assert r.status_code == 400

    def test_delete_unassigns_phase(self, client, db, auth_headers, admin, outsider, phase):
        outsider_id = outsider.id
        phase.assigned_to_id = outsider_id
        db.commit()
        r = client.delete(f"/employees/{outsider_id}", headers=auth_headers(admin))
        assert r.status_code == 200
        db.expire_all()
        assert db.query(Phase).first().assigned_to_id is None
        assert db.query(Employee).filter(Employee.id == outsider_id).first() is None

    def test_worker_cannot_manage(self, client, auth_headers, worker):
        assert client.get("/employees", headers=auth_headers(worker)).status_code == 403

    def test_profile_update_keeps_role(self, client, auth_headers, worker):
        r = client.put("/employee/profile", json={"name": "Worker Prime", "role": "admin"}, headers=auth_headers(worker))
        assert r.status_code == 200
        assert r.json()["name"] == "Worker Prime"
        assert r.json()["role"] == "worker"

    def test_dashboard(self, client, auth_headers, admin, worker, task):
        client.post(f"/tasks/{task.id}/updates", json={"progress": 100}, headers=auth_headers(worker))
        client.put(f"/tasks/{task.id}/approve", headers=auth_headers(admin))
        stats = client.get("/employee/dashboard-stats", headers=auth_headers(worker)).json()
        assert stats == {"pending": 0, "completed": 1, "sites": 0}
        tasks = client.get("/employee/tasks", headers=auth_headers(worker)).json()["tasks"]
        assert [t["name"] for t in tasks] == ["Kitchen wall"]
        phases = client.get("/employee/phases", headers=auth_headers(worker)).json()["phases"]
        assert [p["name"] for p in phases] == ["Tiles work"]

    def test_my_sites(self, client, db, auth_headers, worker, outsider, site, task):
        other = Site(name="Villa 3", status="active")
        other.employees.append(worker)
        site.employees.append(worker)
        db.add(other)
        db.commit()
        sites = client.get("/employee/sites", headers=auth_headers(worker)).json()["sites"]
        assert {s["name"]: s["my_tasks"] for s in sites} == {"Villa 12": 1, "Villa 3": 0}
        assert client.get("/employee/sites", headers=auth_headers(outsider)).json()["sites"] == []


@pytest.mark.api
class TestTodosAndChat:
    """Todos and chat over HTTP"""

    def test_todo_lifecycle(self, client, auth_headers, worker, task):
        r = client.post(f"/tasks/{task.id}/todos", json={"content": "Buy grout"}, headers=auth_headers(worker))
        assert r.status_code == 201
        todo_id = r.json()["id"]
        r = client.put(f"/tasks/todos/{todo_id}/toggle", headers=auth_headers(worker))
        assert r.json()["is_completed"] is True

    def test_empty_todo(self, client, auth_headers, worker, phase, task):
        r = client.post(f"/phases/{phase.id}/todos", json={"content": " "}, headers=auth_headers(worker))
        assert r.status_code == 400

    def test_outsider_cannot_toggle(self, client, auth_headers, worker, outsider, task):
        todo_id = client.post(f"/tasks/{task.id}/todos", json={"content": "Buy grout"}, headers=auth_headers(worker)).json()["id"]
        r = client.put(f"/tasks/todos/{todo_id}/toggle", headers=auth_headers(outsider))
        assert r.status_code == 403

    def test_chat_notifies_others(self, client, db, auth_headers, admin, worker, phase, task):
        r = client.post(f"/tasks/{task.id}/messages", json={"content": "Grout delivered"}, headers=auth_headers(worker))
        assert r.status_code == 201
        assert r.json()["sender"]["name"] == "Worker W"
        admin_notes = db.query(Notification).filter(Notification.employee_id == admin.id).all()
        assert [n.message for n in admin_notes] == ["New message: Grout delivered"]
        assert db.query(Notification).filter(Notification.employee_id == worker.id).count() == 0

    def test_system_type_refused(self, client, auth_headers, worker, task):
        r = client.post(f"/tasks/{task.id}/messages", json={"type": "system", "content": "fake"}, headers=auth_headers(worker))
        assert r.status_code == 400

    def test_media_needs_url(self, client, auth_headers, worker, task):
        r = client.post(f"/tasks/{task.id}/messages", json={"type": "image"}, headers=auth_headers(worker))
        assert r.status_code == 400

    def test_phase_conversation_includes_task_messages(self, client, auth_headers, admin, worker, phase, task):
        client.post(f"/tasks/{task.id}/messages", json={"content": "from task"}, headers=auth_headers(worker))
        client.post(f"/phases/{phase.id}/messages", json={"content": "from stage"}, headers=auth_headers(admin))
        messages = client.get(f"/phases/{phase.id}/details", headers=auth_headers(worker)).json()["messages"]
        assert [m["content"] for m in messages] == ["from task", "from stage"]
