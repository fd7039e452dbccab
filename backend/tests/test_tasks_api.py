"""Tests for the task endpoints: creation, access control and derived state."""

import pytest
from httpx import AsyncClient

from app.models import User


async def _activity(client: AsyncClient, headers: dict, task_id: str | None = None) -> list[dict]:
    params = {"limit": 100}
    if task_id:
        params["taskId"] = task_id
    response = await client.get("/api/tasks/activity-logs", params=params, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["logs"]


@pytest.mark.api
@pytest.mark.asyncio
class TestCreateTask:

    async def test_manager_creates_task(
        self, client: AsyncClient, manager: User, user_a: User, manager_headers: dict, notifier
    ):
        """Defaults apply and user references come back expanded."""
        response = await client.post(
            "/api/tasks",
            json={
                "title": "  Roadmap  ",
                "description": "Draft the Q4 roadmap",
                "assignedTo": user_a.id,
                "dueDate": "2026-11-01",
            },
            headers=manager_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        task = body["task"]
        assert task["title"] == "Roadmap"
        assert task["status"] == "todo"
        assert task["priority"] == "medium"
        assert task["dueDate"] == "2026-11-01"
        assert task["completedAt"] is None
        assert task["tags"] == []
        assert task["assignedTo"] == {"id": user_a.id, "name": user_a.name, "email": user_a.email}
        assert task["createdBy"]["id"] == manager.id

        assert notifier.names() == ["taskCreated"]
        assert notifier.events[0][1]["id"] == task["id"]

        logs = await _activity(client, manager_headers, task["id"])
        assert [log["action"] for log in logs] == ["created"]
        assert logs[0]["performedBy"]["id"] == manager.id
        assert logs[0]["newValue"]["kind"] == "task"
        assert logs[0]["newValue"]["task"]["title"] == "Roadmap"
        assert logs[0]["previousValue"] is None

    async def test_user_cannot_create(
        self, client: AsyncClient, user_a: User, user_a_headers: dict, manager_headers: dict, notifier
    ):
        response = await client.post(
            "/api/tasks",
            json={"title": "Nope", "description": "Nope", "assignedTo": user_a.id},
            headers=user_a_headers,
        )

        assert response.status_code == 403
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Only managers can create tasks"
        assert notifier.events == []
        assert await _activity(client, manager_headers) == []

    async def test_created_completed_is_stamped(self, make_task):
        task = await make_task(status="completed")
        assert task["status"] == "completed"
        assert task["completedAt"] is not None

    async def test_tags_are_normalized(self, make_task):
        task = await make_task(tags=[" ui ", "api", "ui", ""])
        assert task["tags"] == ["ui", "api"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": ""},
            {"title": "x" * 101},
            {"description": "   "},
            {"description": "d" * 1001},
            {"status": "done"},
            {"priority": "critical"},
            {"assignedTo": "not-a-uuid"},
            {"dueDate": "tomorrow"},
        ],
    )
    async def test_invalid_input_is_rejected(
        self, client: AsyncClient, user_a: User, manager_headers: dict, notifier, overrides
    ):
        body = {"title": "Valid", "description": "Valid", "assignedTo": user_a.id, **overrides}
        response = await client.post("/api/tasks", json=body, headers=manager_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert notifier.events == []

    async def test_missing_assignee_is_rejected(self, client: AsyncClient, manager_headers: dict):
        response = await client.post(
            "/api/tasks", json={"title": "T", "description": "D"}, headers=manager_headers
        )
        assert response.status_code == 400

    async def test_unknown_assignee_is_not_found(self, client: AsyncClient, manager_headers: dict):
        response = await client.post(
            "/api/tasks",
            json={
                "title": "T",
                "description": "D",
                "assignedTo": "00000000-0000-4000-8000-000000000000",
            },
            headers=manager_headers,
        )
        assert response.status_code == 404

    async def test_inactive_assignee_is_not_found(
        self, client: AsyncClient, inactive_user: User, manager_headers: dict
    ):
        response = await client.post(
            "/api/tasks",
            json={"title": "T", "description": "D", "assignedTo": inactive_user.id},
            headers=manager_headers,
        )
        assert response.status_code == 404

    async def test_requires_authentication(self, client: AsyncClient, user_a: User):
        response = await client.post(
            "/api/tasks", json={"title": "T", "description": "D", "assignedTo": user_a.id}
        )
        assert response.status_code == 401

    async def test_bad_token_is_unauthorized(self, client: AsyncClient):
        response = await client.get("/api/tasks", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401


@pytest.mark.api
@pytest.mark.asyncio
class TestReadTask:

    async def test_assignee_reads_task_with_activity(self, client: AsyncClient, make_task, user_a_headers):
        task = await make_task()
        response = await client.get(f"/api/tasks/{task['id']}", headers=user_a_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["task"]["id"] == task["id"]
        assert [log["action"] for log in body["activityLogs"]] == ["created"]

    async def test_unrelated_user_is_forbidden(self, client: AsyncClient, make_task, user_b_headers):
        task = await make_task()
        response = await client.get(f"/api/tasks/{task['id']}", headers=user_b_headers)
        assert response.status_code == 403

    async def test_any_manager_can_read(self, client: AsyncClient, make_task, other_manager_headers):
        task = await make_task()
        response = await client.get(f"/api/tasks/{task['id']}", headers=other_manager_headers)
        assert response.status_code == 200

    async def test_tags_survive_a_round_trip(self, client: AsyncClient, make_task, user_a_headers):
        task = await make_task(tags=["backend", "urgent", "q3"])

        response = await client.get(f"/api/tasks/{task['id']}", headers=user_a_headers)

        assert set(response.json()["task"]["tags"]) == {"backend", "urgent", "q3"}

    async def test_missing_task(self, client: AsyncClient, manager_headers: dict):
        response = await client.get("/api/tasks/does-not-exist", headers=manager_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


@pytest.mark.api
@pytest.mark.asyncio
class TestUpdateTask:

    async def test_creator_updates_any_field(
        self, client: AsyncClient, make_task, manager_headers: dict, notifier
    ):
        task = await make_task()
        response = await client.put(
            f"/api/tasks/{task['id']}",
            json={"title": "Renamed", "priority": "urgent", "tags": ["b", "a", "b"]},
            headers=manager_headers,
        )

        assert response.status_code == 200
        updated = response.json()["task"]
        assert updated["title"] == "Renamed"
        assert updated["priority"] == "urgent"
        assert updated["tags"] == ["b", "a"]
        assert updated["description"] == task["description"]
        assert notifier.names() == ["taskCreated", "taskUpdated"]

        logs = await _activity(client, manager_headers, task["id"])
        assert logs[0]["action"] == "updated"
        assert logs[0]["previousValue"]["task"]["title"] == "Write release notes"
        assert logs[0]["newValue"]["task"]["title"] == "Renamed"

    async def test_assignee_updates_status(
        self, client: AsyncClient, make_task, user_a_headers: dict, manager_headers: dict
    ):
        task = await make_task()
        response = await client.put(
            f"/api/tasks/{task['id']}", json={"status": "in-progress"}, headers=user_a_headers
        )

        assert response.status_code == 200
        assert response.json()["task"]["status"] == "in-progress"
        logs = await _activity(client, manager_headers, task["id"])
        assert logs[0]["action"] == "status_changed"

    async def test_assignee_sending_other_fields_changes_nothing(
        self, client: AsyncClient, make_task, user_a_headers: dict, manager_headers: dict, notifier
    ):
        task = await make_task()
        response = await client.put(
            f"/api/tasks/{task['id']}",
            json={"status": "completed", "title": "Hijacked"},
            headers=user_a_headers,
        )

        assert response.status_code == 403
        assert response.json()["message"] == "You can only update the task status"

        current = await client.get(f"/api/tasks/{task['id']}", headers=manager_headers)
        assert current.json()["task"]["title"] == task["title"]
        assert current.json()["task"]["status"] == "todo"
        assert notifier.names() == ["taskCreated"]
        assert len(await _activity(client, manager_headers, task["id"])) == 1

    async def test_assignee_sending_unknown_key_is_denied(
        self, client: AsyncClient, make_task, user_a_headers: dict, manager: User
    ):
        task = await make_task()
        response = await client.put(
            f"/api/tasks/{task['id']}",
            json={"status": "review", "createdBy": manager.id},
            headers=user_a_headers,
        )
        assert response.status_code == 403

    async def test_unrelated_user_cannot_update(self, client: AsyncClient, make_task, user_b_headers):
        task = await make_task()
        response = await client.put(
            f"/api/tasks/{task['id']}", json={"status": "review"}, headers=user_b_headers
        )
        assert response.status_code == 403

    async def test_explicit_null_is_rejected(self, client: AsyncClient, make_task, manager_headers):
        task = await make_task()
        response = await client.put(
            f"/api/tasks/{task['id']}", json={"title": None}, headers=manager_headers
        )
        assert response.status_code == 400

    async def test_due_date_can_be_cleared(self, client: AsyncClient, make_task, manager_headers):
        task = await make_task(dueDate="2026-12-24")
        response = await client.put(
            f"/api/tasks/{task['id']}", json={"dueDate": None}, headers=manager_headers
        )
        assert response.status_code == 200
        assert response.json()["task"]["dueDate"] is None

    async def test_reassignment_is_logged_as_assigned(
        self, client: AsyncClient, make_task, user_b: User, manager_headers: dict
    ):
        task = await make_task()
        response = await client.put(
            f"/api/tasks/{task['id']}",
            json={"assignedTo": user_b.id, "status": "completed"},
            headers=manager_headers,
        )

        assert response.status_code == 200
        assert response.json()["task"]["assignedTo"]["id"] == user_b.id
        logs = await _activity(client, manager_headers, task["id"])
        assert logs[0]["action"] == "assigned"

    async def test_reassign_to_unknown_user(self, client: AsyncClient, make_task, manager_headers):
        task = await make_task()
        response = await client.put(
            f"/api/tasks/{task['id']}",
            json={"assignedTo": "00000000-0000-4000-8000-000000000000"},
            headers=manager_headers,
        )
        assert response.status_code == 404

    async def test_completed_at_follows_status(
        self, client: AsyncClient, make_task, manager_headers: dict
    ):
        task = await make_task()
        url = f"/api/tasks/{task['id']}"

        done = (await client.put(url, json={"status": "completed"}, headers=manager_headers)).json()["task"]
        assert done["completedAt"] is not None

        again = (await client.put(url, json={"status": "completed"}, headers=manager_headers)).json()["task"]
        assert again["completedAt"] == done["completedAt"]

        renamed = (await client.put(url, json={"title": "Still done"}, headers=manager_headers)).json()["task"]
        assert renamed["completedAt"] == done["completedAt"]

        reopened = (await client.put(url, json={"status": "review"}, headers=manager_headers)).json()["task"]
        assert reopened["completedAt"] is None

    async def test_completing_is_logged_as_completed(
        self, client: AsyncClient, make_task, manager_headers: dict
    ):
        task = await make_task()
        await client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=manager_headers)
        logs = await _activity(client, manager_headers, task["id"])
        assert logs[0]["action"] == "completed"

    async def test_update_missing_task(self, client: AsyncClient, manager_headers: dict):
        response = await client.put("/api/tasks/missing", json={"title": "x"}, headers=manager_headers)
        assert response.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestUpdateStatus:

    async def test_assignee_completes_task(
        self, client: AsyncClient, make_task, user_a_headers: dict, manager_headers: dict, notifier
    ):
        task = await make_task()
        response = await client.patch(
            f"/api/tasks/{task['id']}/status", json={"status": "completed"}, headers=user_a_headers
        )

        assert response.status_code == 200
        assert response.json()["task"]["completedAt"] is not None
        assert notifier.events[-1] == ("taskStatusUpdated", {"taskId": task["id"], "status": "completed"})

        log = (await _activity(client, manager_headers, task["id"]))[0]
        assert log["action"] == "completed"
        assert log["previousValue"] == {"kind": "fields", "values": {"status": "todo"}}
        assert log["newValue"] == {"kind": "fields", "values": {"status": "completed"}}

    async def test_status_change_to_same_value_is_still_logged(
        self, client: AsyncClient, make_task, user_a_headers: dict, manager_headers: dict
    ):
        task = await make_task()
        response = await client.patch(
            f"/api/tasks/{task['id']}/status", json={"status": "todo"}, headers=user_a_headers
        )
        assert response.status_code == 200
        logs = await _activity(client, manager_headers, task["id"])
        assert logs[0]["action"] == "status_changed"

    async def test_unrelated_user_cannot_change_status(
        self, client: AsyncClient, make_task, user_b_headers: dict, notifier
    ):
        task = await make_task()
        response = await client.patch(
            f"/api/tasks/{task['id']}/status", json={"status": "review"}, headers=user_b_headers
        )
        assert response.status_code == 403
        assert notifier.names() == ["taskCreated"]

    async def test_invalid_status(self, client: AsyncClient, make_task, user_a_headers: dict):
        task = await make_task()
        response = await client.patch(
            f"/api/tasks/{task['id']}/status", json={"status": "archived"}, headers=user_a_headers
        )
        assert response.status_code == 400

    async def test_completing_twice_keeps_first_stamp(
        self, client: AsyncClient, make_task, user_a_headers: dict
    ):
        task = await make_task()
        url = f"/api/tasks/{task['id']}/status"

        first = await client.patch(url, json={"status": "completed"}, headers=user_a_headers)
        second = await client.patch(url, json={"status": "completed"}, headers=user_a_headers)

        assert first.json()["task"]["completedAt"] is not None
        assert second.json()["task"]["completedAt"] == first.json()["task"]["completedAt"]


@pytest.mark.api
@pytest.mark.asyncio
class TestDeleteTask:

    async def test_creator_deletes_and_history_survives(
        self, client: AsyncClient, make_task, manager_headers: dict, notifier
    ):
        task = await make_task(tags=["keep"])
        response = await client.delete(f"/api/tasks/{task['id']}", headers=manager_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Task deleted successfully"}
        assert notifier.events[-1] == ("taskDeleted", {"taskId": task["id"]})

        gone = await client.get(f"/api/tasks/{task['id']}", headers=manager_headers)
        assert gone.status_code == 404

        logs = await _activity(client, manager_headers, task["id"])
        assert logs[0]["action"] == "deleted"
        assert logs[0]["taskTitle"] == task["title"]
        assert logs[0]["previousValue"]["task"]["tags"] == ["keep"]
        assert logs[0]["newValue"] is None

    async def test_assignee_cannot_delete(self, client: AsyncClient, make_task, user_a_headers: dict):
        task = await make_task()
        response = await client.delete(f"/api/tasks/{task['id']}", headers=user_a_headers)
        assert response.status_code == 403

    async def test_any_manager_can_delete(self, client: AsyncClient, make_task, other_manager_headers):
        task = await make_task()
        response = await client.delete(f"/api/tasks/{task['id']}", headers=other_manager_headers)
        assert response.status_code == 200

    async def test_delete_missing_task(self, client: AsyncClient, manager_headers: dict):
        response = await client.delete("/api/tasks/missing", headers=manager_headers)
        assert response.status_code == 404
