from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import hash_credential, issue_token
from app.db.base import Base
from app.db.dependencies import get_db_session
import app.models.entities  # noqa: F401
from app.main import create_app
from app.models.entities import (
    COLUMN_NOT_STARTED,
    Comment,
    FinancialEntry,
    Notification,
    Project,
    RoleType,
    Task,
    TaskAssignee,
    TaskDependency,
    Team,
    User,
)

TEST_TABLES = [
    Team.__table__,
    Project.__table__,
    User.__table__,
    Task.__table__,
    TaskAssignee.__table__,
    TaskDependency.__table__,
    Comment.__table__,
    FinancialEntry.__table__,
    Notification.__table__,
]

TEST_PASSWORD = "correct-horse-battery"
# Hashed once per session to keep fixtures fast.
TEST_CREDENTIAL_HASH = hash_credential(TEST_PASSWORD)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user)}"}


def add_user(
    db: Session,
    *,
    user_id: str,
    name: str,
    role: RoleType,
    team_id: str | None = None,
    project_id: str | None = None,
) -> User:
    now = datetime.utcnow()
    user = User(
        id=user_id,
        full_name=name,
        email=f"{user_id}@test.local",
        credential_hash=TEST_CREDENTIAL_HASH,
        role=role,
        team_id=team_id,
        project_id=project_id,
        disabled=False,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    return user


def add_task(
    db: Session,
    *,
    task_id: str,
    project_id: str,
    title: str,
    assignee_ids: tuple[str, ...] = (),
    column_id: str = COLUMN_NOT_STARTED,
    start_date: date = date(2026, 3, 1),
    end_date: date = date(2026, 3, 10),
) -> Task:
    task = Task(
        id=task_id,
        project_id=project_id,
        title=title,
        description=f"{title} description",
        column_id=column_id,
        start_date=start_date,
        end_date=end_date,
        planned_cost=Decimal("0.00"),
        actual_cost=Decimal("0.00"),
        is_milestone=False,
        revision=1,
        created_at=datetime.utcnow(),
    )
    db.add(task)
    db.flush()
    for user_id in assignee_ids:
        db.add(TaskAssignee(task_id=task_id, user_id=user_id))
    db.commit()
    return task


@dataclass
class World:
    """Two teams, three projects and one task per assignee scenario."""

    admin: User
    leader_a: User
    employee_a1: User
    employee_a2: User
    leader_b: User
    employee_b: User
    team_a: Team
    team_b: Team
    project_a1: Project
    project_a2: Project
    project_b: Project
    task_a1: Task
    task_a1_unassigned: Task
    task_a2: Task
    task_b: Task


@pytest.fixture()
def world(db_session: Session) -> World:
    db = db_session
    now = datetime.utcnow()
    team_a = Team(id="team-a", name="Team A", leader_id="leader-a", created_at=now)
    team_b = Team(id="team-b", name="Team B", leader_id="leader-b", created_at=now)
    db.add_all([team_a, team_b])
    db.flush()

    projects = []
    for project_id, team_id, name in (
        ("proj-a1", "team-a", "Website relaunch"),
        ("proj-a2", "team-a", "Mobile onboarding"),
        ("proj-b", "team-b", "Warehouse audit"),
    ):
        projects.append(
            Project(
                id=project_id,
                team_id=team_id,
                name=name,
                description=f"{name} project",
                budget=Decimal("10000.00"),
                start_date=date(2026, 1, 1),
                end_date=date(2026, 12, 31),
                created_at=now,
            )
        )
    db.add_all(projects)
    db.commit()

    admin = add_user(db, user_id="admin", name="Ada Admin", role=RoleType.SUPER_ADMIN)
    leader_a = add_user(db, user_id="leader-a", name="Lena Leader", role=RoleType.TEAM_LEADER, team_id="team-a")
    employee_a1 = add_user(db, user_id="emp-a1", name="Eli Employee", role=RoleType.EMPLOYEE, team_id="team-a")
    employee_a2 = add_user(db, user_id="emp-a2", name="Erin Employee", role=RoleType.EMPLOYEE, team_id="team-a")
    leader_b = add_user(db, user_id="leader-b", name="Bo Leader", role=RoleType.TEAM_LEADER, team_id="team-b")
    employee_b = add_user(db, user_id="emp-b", name="Ben Employee", role=RoleType.EMPLOYEE, team_id="team-b")

    task_a1 = add_task(db, task_id="task-a1", project_id="proj-a1", title="Design homepage", assignee_ids=("emp-a1",))
    task_a1_unassigned = add_task(db, task_id="task-a1-free", project_id="proj-a1", title="Write copy")
    task_a2 = add_task(db, task_id="task-a2", project_id="proj-a2", title="Signup flow", assignee_ids=("emp-a2",))
    task_b = add_task(db, task_id="task-b", project_id="proj-b", title="Count pallets", assignee_ids=("emp-b",))

    return World(
        admin=admin,
        leader_a=leader_a,
        employee_a1=employee_a1,
        employee_a2=employee_a2,
        leader_b=leader_b,
        employee_b=employee_b,
        team_a=team_a,
        team_b=team_b,
        project_a1=projects[0],
        project_a2=projects[1],
        project_b=projects[2],
        task_a1=task_a1,
        task_a1_unassigned=task_a1_unassigned,
        task_a2=task_a2,
        task_b=task_b,
    )
