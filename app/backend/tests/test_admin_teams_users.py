from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.auth import hash_credential, verify_credential
from app.models.entities import RoleType, Team, User
from conftest import TEST_PASSWORD, World, add_user, auth_headers


def _team_count(db: Session) -> int:
    return db.scalar(select(func.count()).select_from(Team))


def test_employee_cannot_create_team(client: TestClient, world: World, db_session: Session) -> None:
    before = _team_count(db_session)

    response = client.post(
        "/api/v1/teams",
        headers=auth_headers(world.employee_a1),
        json={"name": "Rogue team", "leader_id": "leader-a"},
    )

    assert response.status_code == 403
    assert _team_count(db_session) == before


def test_create_team_moves_members(client: TestClient, world: World, db_session: Session) -> None:
    add_user(db_session, user_id="leader-c", name="Cleo Leader", role=RoleType.TEAM_LEADER)
    add_user(db_session, user_id="emp-free", name="Finn Free", role=RoleType.EMPLOYEE)

    response = client.post(
        "/api/v1/teams",
        headers=auth_headers(world.admin),
        json={"name": "Team C", "leader_id": "leader-c", "member_ids": ["emp-free"]},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["team"]["name"] == "Team C"
    assert {user["id"] for user in payload["updated_users"]} == {"leader-c", "emp-free"}
    assert all(user["team_id"] == payload["team"]["id"] for user in payload["updated_users"])


def test_update_team_reports_only_changed_users(client: TestClient, world: World) -> None:
    response = client.put(
        "/api/v1/teams/team-a",
        headers=auth_headers(world.admin),
        json={"name": "Team A+", "leader_id": "leader-a", "member_ids": ["emp-a1"]},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["team"]["name"] == "Team A+"
    assert [(user["id"], user["team_id"]) for user in payload["updated_users"]] == [("emp-a2", None)]


def test_team_leader_role_required_for_leader(client: TestClient, world: World) -> None:
    response = client.post(
        "/api/v1/teams",
        headers=auth_headers(world.admin),
        json={"name": "Bad", "leader_id": "emp-a1"},
    )

    assert response.status_code == 422


def test_delete_team_clears_members(client: TestClient, world: World, db_session: Session) -> None:
    add_user(db_session, user_id="leader-c", name="Cleo Leader", role=RoleType.TEAM_LEADER)
    add_user(db_session, user_id="emp-c", name="Cal Employee", role=RoleType.EMPLOYEE)
    headers = auth_headers(world.admin)
    created = client.post(
        "/api/v1/teams",
        headers=headers,
        json={"name": "Team C", "leader_id": "leader-c", "member_ids": ["emp-c"]},
    ).json()
    team_id = created["team"]["id"]

    response = client.delete(f"/api/v1/teams/{team_id}", headers=headers)

    assert response.status_code == 200
    assert {(user["id"], user["team_id"]) for user in response.json()["updated_users"]} == {
        ("leader-c", None),
        ("emp-c", None),
    }
    bootstrap = client.get("/api/v1/bootstrap", headers=headers).json()
    assert team_id not in {team["id"] for team in bootstrap["teams"]}


def test_delete_team_with_projects_is_a_conflict(client: TestClient, world: World) -> None:
    response = client.delete("/api/v1/teams/team-a", headers=auth_headers(world.admin))

    assert response.status_code == 409


def test_leader_adds_only_unassigned_users_to_own_team(
    client: TestClient,
    world: World,
    db_session: Session,
) -> None:
    add_user(db_session, user_id="emp-free", name="Finn Free", role=RoleType.EMPLOYEE)

    response = client.post(
        "/api/v1/teams/team-a/members",
        headers=auth_headers(world.leader_a),
        json={"user_ids": ["emp-free", "emp-b"]},
    )

    assert response.status_code == 200
    assert [user["id"] for user in response.json()["items"]] == ["emp-free"]
    db_session.expire_all()
    assert db_session.get(User, "emp-b").team_id == "team-b"

    denied = client.post(
        "/api/v1/teams/team-a/members",
        headers=auth_headers(world.leader_b),
        json={"user_ids": ["emp-free"]},
    )
    assert denied.status_code == 403


def test_remove_leader_from_team_clears_leader(client: TestClient, world: World, db_session: Session) -> None:
    response = client.delete("/api/v1/teams/team-b/members/leader-b", headers=auth_headers(world.admin))

    assert response.status_code == 200
    assert response.json()["team_id"] is None
    db_session.expire_all()
    assert db_session.get(Team, "team-b").leader_id is None


def test_create_user_rejects_duplicate_email(client: TestClient, world: World) -> None:
    response = client.post(
        "/api/v1/users",
        headers=auth_headers(world.admin),
        json={"name": "Copy", "email": "EMP-A1@test.local", "role": "employee"},
    )

    assert response.status_code == 409


def test_create_user_never_exposes_credentials(client: TestClient, world: World) -> None:
    response = client.post(
        "/api/v1/users",
        headers=auth_headers(world.admin),
        json={"name": "New Hire", "email": "new.hire@test.local", "role": "employee", "team_id": "team-b"},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["role"] == "Employee"
    assert payload["team_id"] == "team-b"
    assert "credential_hash" not in payload
    assert "password" not in payload


def test_guest_requires_project(client: TestClient, world: World) -> None:
    response = client.post(
        "/api/v1/users",
        headers=auth_headers(world.admin),
        json={"name": "Guest", "email": "guest@test.local", "role": "guest"},
    )

    assert response.status_code == 422


def test_only_super_admin_changes_roles(client: TestClient, world: World) -> None:
    headers = auth_headers(world.employee_a1)

    promoted = client.patch("/api/v1/users/emp-a1", headers=headers, json={"role": "super_admin"})
    assert promoted.status_code == 403

    renamed = client.patch("/api/v1/users/emp-a1", headers=headers, json={"name": "Eli E."})
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Eli E."
    assert renamed.json()["role"] == "Employee"

    other = client.patch("/api/v1/users/emp-a2", headers=headers, json={"name": "Nope"})
    assert other.status_code == 403


def test_delete_user_disables_account(client: TestClient, world: World) -> None:
    response = client.delete("/api/v1/users/emp-b", headers=auth_headers(world.admin))

    assert response.status_code == 200
    assert response.json()["disabled"] is True
    assert client.get("/api/v1/auth/me", headers=auth_headers(world.employee_b)).status_code == 401


def test_revoke_guest_removes_account(client: TestClient, world: World, db_session: Session) -> None:
    add_user(db_session, user_id="guest-1", name="Gina Guest", role=RoleType.GUEST, project_id="proj-b")

    denied = client.delete("/api/v1/guests/guest-1", headers=auth_headers(world.leader_a))
    assert denied.status_code == 403

    response = client.delete("/api/v1/guests/guest-1", headers=auth_headers(world.leader_b))
    assert response.status_code == 200
    assert response.json()["id"] == "guest-1"
    db_session.expire_all()
    assert db_session.get(User, "guest-1") is None


def test_list_users_requires_admin_role(client: TestClient, world: World) -> None:
    assert client.get("/api/v1/users", headers=auth_headers(world.employee_a1)).status_code == 403

    response = client.get("/api/v1/users", headers=auth_headers(world.leader_a))
    assert response.status_code == 200
    assert len(response.json()["items"]) == 6


def test_login_and_register(client: TestClient, world: World) -> None:
    ok = client.post("/api/v1/auth/login", json={"email": "emp-a1@test.local", "password": TEST_PASSWORD})
    assert ok.status_code == 200
    token = ok.json()["token"]
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["id"] == "emp-a1"

    wrong = client.post("/api/v1/auth/login", json={"email": "emp-a1@test.local", "password": "not-it"})
    assert wrong.status_code == 401

    registered = client.post(
        "/api/v1/auth/register",
        json={"name": "Olga Owner", "email": "owner@neworg.test", "password": "long-enough-secret"},
    )
    assert registered.status_code == 201
    assert registered.json()["user"]["role"] == "Super Admin"

    duplicate = client.post(
        "/api/v1/auth/register",
        json={"name": "Olga Again", "email": "owner@neworg.test", "password": "long-enough-secret"},
    )
    assert duplicate.status_code == 409


def test_credentials_are_stored_as_bcrypt_hashes(client: TestClient, world: World, db_session: Session) -> None:
    registered = client.post(
        "/api/v1/auth/register",
        json={"name": "Olga Owner", "email": "owner@neworg.test", "password": "long-enough-secret"},
    )
    assert registered.status_code == 201

    stored = db_session.scalar(select(User.credential_hash).where(User.email == "owner@neworg.test"))
    assert stored.startswith("$2")
    assert "long-enough-secret" not in stored
    assert verify_credential("long-enough-secret", stored)
    assert not verify_credential("long-enough-secreT", stored)


def test_verify_credential_rejects_unknown_hash_formats() -> None:
    hashed = hash_credential(TEST_PASSWORD)

    assert hashed != hash_credential(TEST_PASSWORD)
    assert verify_credential(TEST_PASSWORD, hashed)
    assert not verify_credential(TEST_PASSWORD, "")
    assert not verify_credential(TEST_PASSWORD, "pbkdf2_sha256$1$salt$digest")


def test_malformed_token_is_rejected(client: TestClient, world: World) -> None:
    response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_list_unassigned_employees(client: TestClient, world: World, db_session: Session) -> None:
    add_user(db_session, user_id="emp-free", name="Finn Free", role=RoleType.EMPLOYEE)
    add_user(db_session, user_id="leader-free", name="Lou Free", role=RoleType.TEAM_LEADER)

    response = client.get("/api/v1/users/unassigned", headers=auth_headers(world.leader_a))

    assert response.status_code == 200
    assert [user["id"] for user in response.json()["items"]] == ["emp-free"]


def test_disabled_user_cannot_log_in(client: TestClient, world: World, db_session: Session) -> None:
    world.employee_b.disabled = True
    db_session.commit()

    response = client.post("/api/v1/auth/login", json={"email": "emp-b@test.local", "password": TEST_PASSWORD})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password."
