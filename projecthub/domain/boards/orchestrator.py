"""
Board creation saga.

Validates the project and students, asks the planner for a sprint plan, builds
the Trello board from it and only then writes the board and student rows in a
single transaction. Nothing is written to the database before every essential
external call has succeeded.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from ...config import BusinessLogicSettings
from ...errors import (
    Err,
    NotFoundError,
    Ok,
    PersistenceError,
    Result,
    ServiceError,
    UpstreamServiceError,
    ValidationError,
)
from ...models import STATUS_NEW, Project, ProjectBoard, Student
from ...services.github_service import GitHubRepositoryClient, RepositoryProvisioning
from ...services.planning_client import SprintPlanningClient
from ...services.trello_service import TrelloBoardClient
from ...shared.validators import normalize_board_description
from .repository import BoardRepository
from .schemas import CreateBoardRequest, CreateBoardResponse
from .translation import (
    build_student_infos,
    build_team_members,
    build_team_roles,
    translate_sprint_plan,
)

logger = logging.getLogger(__name__)


class SagaState(Enum):
    VALIDATING = "validating"
    PLANNING = "planning"
    TRANSLATING_PLAN = "translating_plan"
    CREATING_BOARD = "creating_board"
    PROVISIONING_REPOSITORY = "provisioning_repository"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    FAILED = "failed"


TRANSITIONS = {
    SagaState.VALIDATING: {SagaState.PLANNING, SagaState.FAILED},
    SagaState.PLANNING: {SagaState.TRANSLATING_PLAN, SagaState.FAILED},
    SagaState.TRANSLATING_PLAN: {SagaState.CREATING_BOARD, SagaState.FAILED},
    SagaState.CREATING_BOARD: {SagaState.PROVISIONING_REPOSITORY, SagaState.FAILED},
    # Repository provisioning is best effort and cannot fail the saga
    SagaState.PROVISIONING_REPOSITORY: {SagaState.PERSISTING},
    SagaState.PERSISTING: {SagaState.COMMITTED, SagaState.FAILED},
    SagaState.COMMITTED: set(),
    SagaState.FAILED: set(),
}

TERMINAL_STATES = {SagaState.COMMITTED, SagaState.FAILED}

BOARD_AND_REPOSITORY_CREATED = "Board and repository created successfully!"
BOARD_CREATED_WITHOUT_REPOSITORY = "Board created successfully! (GitHub repository creation was skipped or failed)"


def can_transition(from_state: SagaState, to_state: SagaState) -> bool:
    return to_state in TRANSITIONS.get(from_state, set())


def compute_due_date(start_date: datetime, project_length_weeks: int) -> datetime:
    return start_date + timedelta(days=7 * project_length_weeks)


def select_admin(students: list[Student]) -> Optional[Student]:
    """First admin-flagged student in request order, if any"""
    return next((s for s in students if s.is_admin), None)


class BoardCreationSaga:
    """Runs one board creation from validation to commit"""

    def __init__(
        self,
        db: Session,
        planner: SprintPlanningClient,
        board_client: TrelloBoardClient,
        settings: BusinessLogicSettings,
        repository_client: Optional[GitHubRepositoryClient] = None,
    ):
        self.db = db
        self.planner = planner
        self.board_client = board_client
        self.settings = settings
        self.repository_client = repository_client
        self.repo = BoardRepository()
        self.state = SagaState.VALIDATING
        self.history = [SagaState.VALIDATING]
        self.project_id: Optional[int] = None

    def _transition(self, to_state: SagaState):
        if not can_transition(self.state, to_state):
            raise RuntimeError(f"Invalid saga transition {self.state.value} -> {to_state.value}")
        logger.info(f"🔀 Board saga for project {self.project_id}: {self.state.value} -> {to_state.value}")
        self.state = to_state
        self.history.append(to_state)

    def _fail(self, error: ServiceError) -> Err:
        logger.error(
            f"❌ Board saga for project {self.project_id} failed in {self.state.value}: {error.message}"
        )
        self._transition(SagaState.FAILED)
        return Err(error)

    async def run(self, request: CreateBoardRequest) -> Result[CreateBoardResponse]:
        self.project_id = request.projectId
        now = datetime.now(timezone.utc)
        start_date = request.startDate or now

        # Validating
        project = self.repo.get_project(self.db, request.projectId)
        if project is None:
            return self._fail(NotFoundError(f"Project with ID {request.projectId} not found"))
        if not request.studentIds:
            return self._fail(ValidationError("At least one student is required"))

        students = self.repo.get_available_students(self.db, request.studentIds)
        if len(students) != len(request.studentIds):
            return self._fail(ValidationError("One or more students not found or not available"))

        # Planning
        self._transition(SagaState.PLANNING)
        plan_result = await self.planner.generate_sprint_plan(
            project_id=project.id,
            project_length_weeks=self.settings.project_length_weeks,
            sprint_length_weeks=self.settings.sprint_length_weeks,
            start_date=start_date.date(),
            students=build_student_infos(students),
            team_roles=build_team_roles(students),
            system_design=project.system_design,
        )
        if isinstance(plan_result, Err):
            return self._fail(plan_result.error)
        plan = plan_result.value
        if plan is None:
            return self._fail(UpstreamServiceError("Sprint planner returned no sprint plan"))

        # TranslatingPlan
        self._transition(SagaState.TRANSLATING_PLAN)
        board_plan = translate_sprint_plan(plan)
        team_members = build_team_members(students)

        # CreatingBoard
        self._transition(SagaState.CREATING_BOARD)
        board_result = await self.board_client.create_project_board(
            project_id=project.id,
            project_title=project.title,
            project_description=project.description,
            team_members=team_members,
            plan=board_plan,
        )
        if isinstance(board_result, Err):
            return self._fail(board_result.error)
        creation = board_result.value
        if creation is None or not creation.board_id:
            return self._fail(UpstreamServiceError("Board provider returned no board"))

        # ProvisioningRepository
        self._transition(SagaState.PROVISIONING_REPOSITORY)
        provisioning = await self._provision_repository(creation.board_id, project, students)

        # Persisting
        self._transition(SagaState.PERSISTING)
        admin = select_admin(students)
        board = ProjectBoard(
            id=creation.board_id,
            project_id=project.id,
            start_date=start_date,
            due_date=compute_due_date(start_date, self.settings.project_length_weeks),
            status_id=STATUS_NEW,
            admin_id=admin.id if admin else None,
            sprint_plan=plan.model_dump(mode="json"),
            board_url=creation.board_url,
            github_url=provisioning.repository_url if provisioning else None,
            publish_url=provisioning.pages_url if provisioning else None,
            created_at=now,
            updated_at=now,
        )
        student_count = len(students)
        try:
            board = self.repo.save_board_and_assign_students(self.db, board, students, now)
        except PersistenceError as e:
            logger.error(
                f"🧟 Trello board {creation.board_id} ({creation.board_url}) was created but not saved; "
                f"it is orphaned"
            )
            return self._fail(e)

        self._transition(SagaState.COMMITTED)
        logger.info(
            f"✅ Board {board.id} committed for project {project.id} with {student_count} students"
            f"{f', admin {admin.id}' if admin else ''}"
        )

        return Ok(
            CreateBoardResponse(
                message=BOARD_AND_REPOSITORY_CREATED if board.github_url else BOARD_CREATED_WITHOUT_REPOSITORY,
                boardId=board.id,
                boardUrl=board.board_url,
                projectId=project.id,
                studentCount=student_count,
                invitedUsers=creation.invited_users,
                repositoryUrl=board.github_url,
                publishUrl=board.publish_url,
                addedCollaborators=provisioning.added_collaborators if provisioning else [],
                failedCollaborators=provisioning.failed_collaborators if provisioning else [],
            )
        )

    async def _provision_repository(
        self, board_id: str, project: Project, students: list[Student]
    ) -> Optional[RepositoryProvisioning]:
        if self.repository_client is None or not self.repository_client.enabled:
            logger.info("ℹ️ GitHub provisioning not configured, skipping repository creation")
            return None

        collaborators = [s.github_user for s in students if s.github_user]
        if not collaborators:
            logger.info(f"ℹ️ No GitHub usernames for board {board_id}, skipping repository creation")
            return None

        try:
            result = await self.repository_client.create_repository(
                name=board_id,
                description=normalize_board_description(project.description),
                collaborators=collaborators,
            )
        except Exception as e:
            logger.error(f"❌ Repository provisioning for board {board_id} crashed: {e}", exc_info=True)
            return None
        if isinstance(result, Err):
            logger.warning(f"⚠️ Repository for board {board_id} not created: {result.message}")
            return None
        return result.value
