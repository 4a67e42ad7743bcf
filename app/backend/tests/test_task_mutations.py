from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.entities import COLUMN_DONE, COLUMN_STUCK, Notification, Task, TaskAssignee, TaskDependency
from app.services.notification_service import NotificationService
from app.services.tracker_service import find_dependency_cycle
from conftest import World, auth_headers


def _update_body(task: dict[str, object], **changes: object) -> dict[str, object]:
    body = {
        "title": task["title"],
        "description": task["description"],
        "column_id": task["column_id"],
        "start_date": task["start_date"],
        "end_date": task["end_date"],
        "assignee_ids": task["assignee_ids"],
    }
    body.update(changes)
    return body


def test_add_task_then_restore_fields_round_trip(client: TestClient, world: World) -> None:
    headers = auth_headers(world.leader_a)
    created = client.post(
        "/api/v1/projects/proj-a1/tasks",
        headers=headers,
        json={
            "title": "Plan launch",
            "description": "Kickoff checklist",
            "start_date": "2026-04-01",
            "end_date": "2026-04-05",
            "assignee_ids": ["emp-a1"],
        },
    )
    assert created.status_code == 201
    original = created.json()
    assert original["column_id"] == "col-not-started"
    assert original["assignee_ids"] == ["emp-a1"]
    assert original["comments"] == []

    changed = client.put(
        f"/api/v1/tasks/{original['id']}",
        headers=headers,
        json=_update_body(original, title="Plan relaunch", end_date="2026-04-09", assignee_ids=["emp-a2"]),
    )
    assert changed.status_code == 200
    assert changed.json()["title"] == "Plan relaunch"

    restored = client.put(f"/api/v1/tasks/{original['id']}", headers=headers, json=_update_body(original))
    assert restored.status_code == 200
    restored_payload = restored.json()

    assert restored_payload["revision"] == original["revision"] + 2
    restored_payload.pop("revision")
    original.pop("revision")
    assert restored_payload == original


def test_assignee_set_replace(client: TestClient, world: World, db_session: Session) -> None:
    headers = auth_headers(world.admin)
    task = client.get("/api/v1/tasks/task-a1", headers=headers).json()

    first = client.put(
        "/api/v1/tasks/task-a1", headers=headers, json=_update_body(task, assignee_ids=["emp-a1", "emp-a2"])
    )
    assert first.status_code == 200
    second = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, assignee_ids=["emp-a2", "leader-a", "leader-a"]),
    )
    assert second.status_code == 200

    assert second.json()["assignee_ids"] == ["emp-a2", "leader-a"]
    links = db_session.scalars(select(TaskAssignee.user_id).where(TaskAssignee.task_id == "task-a1")).all()
    assert sorted(links) == ["emp-a2", "leader-a"]


def test_employee_cannot_update_unassigned_task(client: TestClient, world: World) -> None:
    task = client.get("/api/v1/tasks/task-a1-free", headers=auth_headers(world.admin)).json()

    response = client.put(
        "/api/v1/tasks/task-a1-free",
        headers=auth_headers(world.employee_a1),
        json=_update_body(task, title="Hijacked"),
    )

    assert response.status_code == 403


def test_employee_cannot_read_unassigned_task(client: TestClient, world: World) -> None:
    response = client.get("/api/v1/tasks/task-a2", headers=auth_headers(world.employee_a1))

    assert response.status_code == 403


def test_unknown_task_is_not_found(client: TestClient, world: World) -> None:
    response = client.get("/api/v1/tasks/missing", headers=auth_headers(world.admin))

    assert response.status_code == 404


def test_end_before_start_is_rejected(client: TestClient, world: World) -> None:
    task = client.get("/api/v1/tasks/task-a1", headers=auth_headers(world.admin)).json()

    response = client.put(
        "/api/v1/tasks/task-a1",
        headers=auth_headers(world.admin),
        json=_update_body(task, start_date="2026-05-10", end_date="2026-05-01"),
    )

    assert response.status_code == 422


def test_stale_revision_is_a_conflict(client: TestClient, world: World) -> None:
    headers = auth_headers(world.employee_a1)
    task = client.get("/api/v1/tasks/task-a1", headers=headers).json()

    ok = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, title="First", expected_revision=task["revision"]),
    )
    assert ok.status_code == 200

    stale = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, title="Second", expected_revision=task["revision"]),
    )
    assert stale.status_code == 409
    assert client.get("/api/v1/tasks/task-a1", headers=headers).json()["title"] == "First"


def test_completion_notifies_leader_and_super_admins(
    client: TestClient,
    world: World,
    db_session: Session,
) -> None:
    response = client.patch(
        "/api/v1/tasks/task-a1/status",
        headers=auth_headers(world.employee_a1),
        json={"column_id": COLUMN_DONE},
    )
    assert response.status_code == 200
    assert response.json()["column_id"] == COLUMN_DONE

    rows = db_session.scalars(select(Notification).where(Notification.task_id == "task-a1")).all()
    assert {row.user_id for row in rows} == {"leader-a", "admin"}
    assert {row.text for row in rows} == {'Eli Employee completed the task: "Design homepage"'}


def test_due_date_change_notifies_assignees(client: TestClient, world: World, db_session: Session) -> None:
    headers = auth_headers(world.leader_a)
    task = client.get("/api/v1/tasks/task-a2", headers=headers).json()

    client.put("/api/v1/tasks/task-a2", headers=headers, json=_update_body(task, end_date="2026-03-20"))

    rows = db_session.scalars(select(Notification).where(Notification.task_id == "task-a2")).all()
    assert [(row.user_id, row.text) for row in rows] == [
        ("emp-a2", 'The due date of task "Signup flow" changed to 20.03.2026')
    ]


def test_update_without_baselines_keeps_stored_baselines(
    client: TestClient,
    world: World,
    db_session: Session,
) -> None:
    headers = auth_headers(world.leader_a)
    task = client.get("/api/v1/tasks/task-a1", headers=headers).json()
    planned = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(
            task,
            baseline_start_date="2026-03-01",
            baseline_end_date="2026-03-10",
            planned_cost="500",
        ),
    )
    assert planned.status_code == 200

    renamed = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(planned.json(), title="Design landing page"),
    )

    assert renamed.status_code == 200
    payload = renamed.json()
    assert payload["title"] == "Design landing page"
    assert payload["baseline_start_date"] == "2026-03-01"
    assert payload["baseline_end_date"] == "2026-03-10"
    db_session.expire_all()
    stored = db_session.get(Task, "task-a1")
    assert stored.baseline_start_date == date(2026, 3, 1)
    assert stored.baseline_end_date == date(2026, 3, 10)
    assert stored.planned_cost == Decimal("500")


def test_explicit_null_baselines_are_cleared(client: TestClient, world: World) -> None:
    headers = auth_headers(world.leader_a)
    task = client.get("/api/v1/tasks/task-a1", headers=headers).json()
    client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, baseline_start_date="2026-03-01", baseline_end_date="2026-03-10"),
    )

    cleared = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, baseline_start_date=None, baseline_end_date=None),
    )

    assert cleared.status_code == 200
    assert cleared.json()["baseline_start_date"] is None
    assert cleared.json()["baseline_end_date"] is None


def test_partial_baseline_update_is_checked_against_stored_value(client: TestClient, world: World) -> None:
    headers = auth_headers(world.leader_a)
    task = client.get("/api/v1/tasks/task-a1", headers=headers).json()
    client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, baseline_start_date="2026-03-05", baseline_end_date="2026-03-10"),
    )

    response = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, baseline_end_date="2026-03-02"),
    )

    assert response.status_code == 422


def test_failed_fanout_does_not_fail_the_update(
    client: TestClient,
    world: World,
    db_session: Session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken_deliver(self: NotificationService, candidates: object) -> list[Notification]:
        raise RuntimeError("mail relay down")

    monkeypatch.setattr(NotificationService, "deliver", broken_deliver)
    headers = auth_headers(world.leader_a)
    task = client.get("/api/v1/tasks/task-a1", headers=headers).json()

    response = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, title="Design homepage v2", column_id=COLUMN_DONE, end_date="2026-03-12"),
    )

    assert response.status_code == 200
    assert response.json()["title"] == "Design homepage v2"
    db_session.expire_all()
    stored = db_session.get(Task, "task-a1")
    assert stored.title == "Design homepage v2"
    assert stored.column_id == COLUMN_DONE
    assert db_session.scalar(select(func.count()).select_from(Notification)) == 0


def test_stuck_transition_alerts_leader_and_super_admins(
    client: TestClient,
    world: World,
    db_session: Session,
) -> None:
    response = client.patch(
        "/api/v1/tasks/task-a1/status",
        headers=auth_headers(world.employee_a1),
        json={"column_id": COLUMN_STUCK},
    )
    assert response.status_code == 200
    assert response.json()["column_id"] == COLUMN_STUCK

    rows = db_session.scalars(select(Notification).where(Notification.task_id == "task-a1")).all()
    assert sorted((row.user_id, row.text) for row in rows) == [
        ("admin", 'Task is stuck: "Design homepage". Please take a look.'),
        ("leader-a", 'Task is stuck: "Design homepage". Please take a look.'),
    ]


def test_update_notifies_only_new_assignees(client: TestClient, world: World, db_session: Session) -> None:
    headers = auth_headers(world.leader_a)
    task = client.get("/api/v1/tasks/task-a1", headers=headers).json()

    response = client.put(
        "/api/v1/tasks/task-a1",
        headers=headers,
        json=_update_body(task, assignee_ids=["emp-a1", "emp-a2"]),
    )

    assert response.status_code == 200
    rows = db_session.scalars(select(Notification).where(Notification.task_id == "task-a1")).all()
    assert [(row.user_id, row.text) for row in rows] == [
        ("emp-a2", 'A new task was assigned to you: "Design homepage"')
    ]


def test_created_task_notifies_its_assignees(client: TestClient, world: World, db_session: Session) -> None:
    response = client.post(
        "/api/v1/projects/proj-a1/tasks",
        headers=auth_headers(world.leader_a),
        json={
            "title": "Plan launch",
            "description": "",
            "start_date": "2026-04-01",
            "end_date": "2026-04-05",
            "assignee_ids": ["emp-a2"],
        },
    )

    assert response.status_code == 201
    rows = db_session.scalars(select(Notification).where(Notification.task_id == response.json()["id"])).all()
    assert [(row.user_id, row.text) for row in rows] == [("emp-a2", 'A new task was assigned to you: "Plan launch"')]


def test_bulk_update_reschedules_and_links(client: TestClient, world: World, db_session: Session) -> None:
    response = client.patch(
        "/api/v1/tasks",
        headers=auth_headers(world.leader_a),
        json={
            "tasks": [
                {"id": "task-a1-free", "start_date": "2026-03-11", "end_date": "2026-03-15", "dependencies": ["task-a1"]},
                {"id": "task-a1", "start_date": "2026-03-01", "end_date": "2026-03-10"},
            ]
        },
    )

    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["id"] for item in items] == ["task-a1-free", "task-a1"]
    assert items[0]["dependencies"] == ["task-a1"]
    assert items[0]["start_date"] == "2026-03-11"


def test_bulk_update_with_cycle_rolls_back_whole_batch(
    client: TestClient,
    world: World,
    db_session: Session,
) -> None:
    response = client.patch(
        "/api/v1/tasks",
        headers=auth_headers(world.admin),
        json={
            "tasks": [
                {"id": "task-a1", "start_date": "2026-05-01", "end_date": "2026-05-02", "dependencies": ["task-a1-free"]},
                {"id": "task-a1-free", "start_date": "2026-05-03", "end_date": "2026-05-04", "dependencies": ["task-a1"]},
            ]
        },
    )

    assert response.status_code == 422
    assert "cycle" in response.json()["detail"]
    db_session.expire_all()
    assert db_session.get(Task, "task-a1").start_date == date(2026, 3, 1)
    assert db_session.scalar(select(func.count()).select_from(TaskDependency)) == 0


def test_bulk_update_rejects_cross_project_dependency(client: TestClient, world: World) -> None:
    response = client.patch(
        "/api/v1/tasks",
        headers=auth_headers(world.admin),
        json={
            "tasks": [
                {"id": "task-a1", "start_date": "2026-03-01", "end_date": "2026-03-10", "dependencies": ["task-a2"]},
            ]
        },
    )

    assert response.status_code == 422


def test_bulk_update_denied_outside_own_team(client: TestClient, world: World) -> None:
    response = client.patch(
        "/api/v1/tasks",
        headers=auth_headers(world.leader_b),
        json={"tasks": [{"id": "task-a1", "start_date": "2026-03-02", "end_date": "2026-03-10"}]},
    )

    assert response.status_code == 403


def test_find_dependency_cycle() -> None:
    assert find_dependency_cycle([("b", "a"), ("c", "b")]) is None
    cycle = find_dependency_cycle([("b", "a"), ("c", "b"), ("a", "c")])
    assert cycle is not None
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}
