"""Shared fixtures and fakes for the board tests."""

from datetime import date
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from projecthub.config import BusinessLogicSettings, get_business_settings
from projecthub.database import Base, get_db
from projecthub.domain.boards.router import (
    board_creation_rate_limit,
    get_board_client,
    get_planning_client,
    get_repository_client,
)
from projecthub.domain.boards.schemas import (
    BoardStats,
    InvitedUser,
    ProjectTask,
    Sprint,
    SprintPlan,
)
from projecthub.errors import Ok
from projecthub.main import app
from projecthub.models import Project, Role, Student, StudentRole, seed_project_statuses
from projecthub.services.github_service import RepositoryProvisioning
from projecthub.services.trello_service import BoardCreation


def make_plan(sprint_count: int = 2, tasks_per_sprint=(3, 2)) -> SprintPlan:
    sprints = []
    for number in range(1, sprint_count + 1):
        task_count = tasks_per_sprint[number - 1] if number - 1 < len(tasks_per_sprint) else 1
        sprints.append(
            Sprint(
                sprintNumber=number,
                name=f"Sprint {number}",
                startDate=date(2025, 1, 6 + (number - 1) * 7),
                endDate=date(2025, 1, 12 + (number - 1) * 7),
                tasks=[
                    ProjectTask(
                        id=f"{number}-{i}",
                        title=f"Task {number}.{i}",
                        description=f"Work item {i} of sprint {number}",
                        roleId=1,
                        roleName="Backend Developer",
                        checklistItems=["[ ] write code", "[ ] open PR"],
                    )
                    for i in range(1, task_count + 1)
                ],
            )
        )
    return SprintPlan(
        sprints=sprints,
        totalSprints=sprint_count,
        totalTasks=sum(len(s.tasks) for s in sprints),
        estimatedWeeks=sprint_count,
    )


class FakePlanner:
    def __init__(self, result=None):
        self.result = result if result is not None else Ok(make_plan())
        self.calls = []

    async def generate_sprint_plan(self, **kwargs):
        self.calls.append(kwargs)
        return self.result


class FakeBoardClient:
    def __init__(self, result=None, stats=None):
        self.result = result if result is not None else Ok(
            BoardCreation(
                board_id="B1",
                board_url="https://x/B1",
                board_name="10_Apollo_202501060900",
                invited_users=[
                    InvitedUser(email=f"student{i}@uni.edu", name=f"Student {i}", status="Invited")
                    for i in (1, 2, 3)
                ],
            )
        )
        self.stats = stats if stats is not None else Ok(BoardStats(boardId="B1", totalCards=4, completedCards=1))
        self.calls = []

    async def create_project_board(self, **kwargs):
        self.calls.append(kwargs)
        return self.result

    async def get_board_stats(self, board_id):
        return self.stats


class FakeRepositoryClient:
    def __init__(self, enabled=False, result=None):
        self.enabled = enabled
        self.result = result
        self.calls = []

    async def create_repository(self, **kwargs):
        self.calls.append(kwargs)
        if self.result is not None:
            return self.result
        return Ok(
            RepositoryProvisioning(
                repository_name=kwargs["name"],
                repository_url=f"https://github.com/team/{kwargs['name']}",
                pages_url=f"https://team.github.io/{kwargs['name']}/",
                added_collaborators=list(kwargs["collaborators"]),
            )
        )


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_project_statuses(session)
    yield session
    session.close()


@pytest.fixture
def team(db):
    """Project 10 with three available students; student 2 is an admin"""
    backend = Role(id=1, name="Backend Developer")
    pm = Role(id=2, name="Product Manager")
    db.add_all([backend, pm])
    db.add(
        Project(
            id=10,
            title="Apollo Tracker",
            description="Track lunar missions",
            system_design="Module 1: Missions",
            is_available=True,
        )
    )
    for i in (1, 2, 3):
        db.add(
            Student(
                id=i,
                first_name=f"First{i}",
                last_name=f"Last{i}",
                email=f"student{i}@uni.edu",
                github_user=f"gh-student{i}" if i != 3 else None,
                is_available=True,
                is_admin=(i == 2),
            )
        )
    db.add(Student(id=4, first_name="Idle", last_name="Student", email="idle@uni.edu", is_available=False))
    db.add(Student(id=5, first_name="Spare", last_name="Student", email="spare@uni.edu", is_available=True))
    db.flush()
    db.add_all(
        [
            StudentRole(student_id=1, role_id=1),
            StudentRole(student_id=2, role_id=2),
            StudentRole(student_id=3, role_id=1),
        ]
    )
    db.commit()
    return SimpleNamespace(project_id=10, student_ids=[1, 2, 3])


@pytest.fixture
def settings():
    return BusinessLogicSettings(project_length_weeks=12, sprint_length_weeks=1)


@pytest.fixture
def fakes():
    return SimpleNamespace(
        planner=FakePlanner(), board=FakeBoardClient(), repository=FakeRepositoryClient()
    )


@pytest.fixture
def client(session_factory, db, fakes, settings):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_planning_client] = lambda: fakes.planner
    app.dependency_overrides[get_board_client] = lambda: fakes.board
    app.dependency_overrides[get_repository_client] = lambda: fakes.repository
    app.dependency_overrides[get_business_settings] = lambda: settings
    app.dependency_overrides[board_creation_rate_limit] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()
