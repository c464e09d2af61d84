"""
Tests for api/routes/tasks.py

Covers task creation, subtasks (same-project rule, counts, cascade),
filters, upcoming ordering, updates and ownership checks.
"""
import sys
from datetime import date, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conftest import create_project, create_task  # noqa: E402


class TestCreateTask:
    def test_defaults(self, auth_client):
        p = create_project(auth_client, "Task Defaults")
        t = create_task(auth_client, p["id"], "Plain task")
        assert t["status"] == "to_do"
        assert t["priority"] == "medium"
        assert t["project_name"] == "Task Defaults"
        assert t["parent_task_id"] is None

    def test_unknown_project_404(self, auth_client):
        resp = auth_client.post("/api/v1/tasks",
                                json={"project_id": "missing", "title": "Lost task"})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Project not found"

    def test_other_users_project_404(self, auth_client, other_client):
        p = create_project(auth_client, "Not Yours")
        resp = other_client.post("/api/v1/tasks", json={"project_id": p["id"], "title": "Intrude"})
        assert resp.status_code == 404

    def test_invalid_priority_422(self, auth_client):
        p = create_project(auth_client, "Priority Check")
        resp = auth_client.post("/api/v1/tasks", json={
            "project_id": p["id"], "title": "Urgent", "priority": "critical",
        })
        assert resp.status_code == 422

    def test_blank_due_date_is_null(self, auth_client):
        p = create_project(auth_client, "Blank Due")
        t = create_task(auth_client, p["id"], "No due", due_date="")
        assert t["due_date"] is None


class TestSubtasks:
    def test_subtask_counts(self, auth_client):
        p = create_project(auth_client, "Subtask Project")
        parent = create_task(auth_client, p["id"], "Parent task")
        create_task(auth_client, p["id"], "Child one", parent_task_id=parent["id"], status="done")
        create_task(auth_client, p["id"], "Child two", parent_task_id=parent["id"])

        body = auth_client.get(f"/api/v1/tasks/{parent['id']}").json()
        assert body["subtask_count"] == 2
        assert body["completed_subtask_count"] == 1
        assert [s["title"] for s in body["subtasks"]] == ["Child one", "Child two"]

    def test_parent_in_other_project_400(self, auth_client):
        p1 = create_project(auth_client, "Project One")
        p2 = create_project(auth_client, "Project Two")
        parent = create_task(auth_client, p1["id"], "Parent elsewhere")
        resp = auth_client.post("/api/v1/tasks", json={
            "project_id": p2["id"], "title": "Mismatched child", "parent_task_id": parent["id"],
        })
        assert resp.status_code == 400
        assert "different project" in resp.json()["detail"]

    def test_unknown_parent_404(self, auth_client):
        p = create_project(auth_client, "Missing Parent")
        resp = auth_client.post("/api/v1/tasks", json={
            "project_id": p["id"], "title": "Orphan", "parent_task_id": "nope",
        })
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Parent task not found"

    def test_deleting_parent_removes_subtasks(self, auth_client):
        p = create_project(auth_client, "Cascade Subtasks")
        parent = create_task(auth_client, p["id"], "Parent to delete")
        child = create_task(auth_client, p["id"], "Child to vanish", parent_task_id=parent["id"])
        assert auth_client.delete(f"/api/v1/tasks/{parent['id']}").status_code == 204
        assert auth_client.get(f"/api/v1/tasks/{child['id']}").status_code == 404

    def test_filter_by_parent(self, auth_client):
        p = create_project(auth_client, "Parent Filter")
        parent = create_task(auth_client, p["id"], "Filter parent")
        create_task(auth_client, p["id"], "Filter child", parent_task_id=parent["id"])
        body = auth_client.get("/api/v1/tasks", params={"parent_task_id": parent["id"]}).json()
        assert [t["title"] for t in body["items"]] == ["Filter child"]


class TestListTasks:
    def test_filters(self, signup):
        c = signup("tasks-list@example.com")
        p = create_project(c, "Filter Project")
        create_task(c, p["id"], "Write copy", status="in_progress", priority="high")
        create_task(c, p["id"], "Review copy", status="done", priority="low")
        create_task(c, p["id"], "Publish page", status="blocked", priority="high")

        high = c.get("/api/v1/tasks", params={"priority": "high"}).json()
        assert {t["title"] for t in high["items"]} == {"Write copy", "Publish page"}

        done = c.get("/api/v1/tasks", params={"status": "done"}).json()
        assert [t["title"] for t in done["items"]] == ["Review copy"]

        found = c.get("/api/v1/tasks", params={"q": "COPY"}).json()
        assert found["total"] == 2

    def test_invalid_status_400(self, auth_client):
        assert auth_client.get("/api/v1/tasks", params={"status": "waiting"}).status_code == 400

    def test_invalid_sort_400(self, auth_client):
        assert auth_client.get("/api/v1/tasks", params={"sort_by": "owner"}).status_code == 400


class TestUpcoming:
    def test_soonest_first_excluding_done(self, signup):
        c = signup("upcoming@example.com")
        p = create_project(c, "Upcoming Project")
        today = date.today()
        create_task(c, p["id"], "Next week", due_date=(today + timedelta(days=7)).isoformat())
        create_task(c, p["id"], "Overdue", due_date=(today - timedelta(days=2)).isoformat())
        create_task(c, p["id"], "Tomorrow", due_date=(today + timedelta(days=1)).isoformat())
        create_task(c, p["id"], "Finished", status="done",
                    due_date=(today + timedelta(days=1)).isoformat())
        create_task(c, p["id"], "Someday")

        titles = [t["title"] for t in c.get("/api/v1/tasks/upcoming").json()]
        assert titles == ["Overdue", "Tomorrow", "Next week"]

    def test_limit(self, signup):
        c = signup("upcoming-limit@example.com")
        p = create_project(c, "Many Tasks")
        for i in range(6):
            create_task(c, p["id"], f"Task {i}", due_date=f"2031-01-0{i + 1}")
        assert len(c.get("/api/v1/tasks/upcoming").json()) == 4
        assert len(c.get("/api/v1/tasks/upcoming", params={"limit": 2}).json()) == 2


class TestUpdateTask:
    def test_status_change(self, auth_client):
        p = create_project(auth_client, "Status Changes")
        t = create_task(auth_client, p["id"], "Movable")
        resp = auth_client.patch(f"/api/v1/tasks/{t['id']}", json={"status": "in_progress"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "in_progress"
        assert resp.json()["title"] == "Movable"

    def test_null_status_400(self, auth_client):
        p = create_project(auth_client, "Null Status")
        t = create_task(auth_client, p["id"], "Nullable")
        resp = auth_client.patch(f"/api/v1/tasks/{t['id']}", json={"status": None})
        assert resp.status_code == 400

    def test_task_update_touches_project(self, auth_client):
        p = create_project(auth_client, "Touched Project")
        t = create_task(auth_client, p["id"], "Toucher")
        before = auth_client.get(f"/api/v1/projects/{p['id']}").json()["updated_at"]
        auth_client.patch(f"/api/v1/tasks/{t['id']}", json={"status": "done"})
        after = auth_client.get(f"/api/v1/projects/{p['id']}").json()["updated_at"]
        assert after >= before

    def test_other_user_cannot_update(self, auth_client, other_client):
        p = create_project(auth_client, "Guarded Tasks")
        t = create_task(auth_client, p["id"], "Guarded")
        resp = other_client.patch(f"/api/v1/tasks/{t['id']}", json={"status": "done"})
        assert resp.status_code == 404
