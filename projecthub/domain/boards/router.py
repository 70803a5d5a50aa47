"""Board router - FastAPI endpoints for project boards"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...config import (
    BOARD_CREATION_RATE_LIMIT,
    BOARD_CREATION_RATE_WINDOW_SECONDS,
    BusinessLogicSettings,
    get_business_settings,
    get_github_settings,
    get_planning_settings,
    get_trello_settings,
)
from ...database import get_db
from ...errors import Err
from ...rate_limiter import create_rate_limiter
from ...services.github_service import GitHubRepositoryClient
from ...services.planning_client import SprintPlanningClient
from ...services.trello_service import TrelloBoardClient
from .orchestrator import BoardCreationSaga
from .schemas import (
    BoardCountResponse,
    BoardInfoResponse,
    BoardStats,
    BoardSummary,
    ChatMessageRequest,
    ChatResponse,
    CreateBoardRequest,
    CreateBoardResponse,
    MediaUpdate,
    MemberCountResponse,
    SetAdminRequest,
    SetAdminResponse,
)
from .service import BoardService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/boards", tags=["Boards"])

board_creation_rate_limit = create_rate_limiter(
    limit=BOARD_CREATION_RATE_LIMIT,
    window_seconds=BOARD_CREATION_RATE_WINDOW_SECONDS,
    key_prefix="board_creation",
)


def get_board_service(db: Session = Depends(get_db)) -> BoardService:
    """Dependency injection for BoardService"""
    return BoardService(db)


def get_planning_client() -> SprintPlanningClient:
    return SprintPlanningClient(get_planning_settings())


def get_board_client() -> TrelloBoardClient:
    return TrelloBoardClient(get_trello_settings())


def get_repository_client() -> GitHubRepositoryClient:
    return GitHubRepositoryClient(get_github_settings())


# ============================================================================
# BOARD CREATION
# ============================================================================


@router.post("", response_model=CreateBoardResponse)
async def create_board(
    data: CreateBoardRequest,
    db: Session = Depends(get_db),
    planner: SprintPlanningClient = Depends(get_planning_client),
    board_client: TrelloBoardClient = Depends(get_board_client),
    repository_client: GitHubRepositoryClient = Depends(get_repository_client),
    settings: BusinessLogicSettings = Depends(get_business_settings),
    _: None = Depends(board_creation_rate_limit),
):
    """Plan sprints, create the Trello board and assign the students to it"""
    logger.info(f"📥 Board creation requested for project {data.projectId} ({len(data.studentIds)} students)")

    saga = BoardCreationSaga(db, planner, board_client, settings, repository_client)
    result = await saga.run(data)
    if isinstance(result, Err):
        raise result.error
    return result.value


# ============================================================================
# PROJECT-LEVEL QUERIES
# ============================================================================


@router.get("", response_model=list[BoardSummary])
async def list_project_boards(
    project_id: int = Query(..., alias="projectId"),
    service: BoardService = Depends(get_board_service),
):
    """Boards of an available project"""
    return service.list_project_boards(project_id)


@router.get("/count/{project_id}", response_model=BoardCountResponse)
async def count_project_boards(
    project_id: int,
    service: BoardService = Depends(get_board_service),
):
    """Boards of a project that are still New, Planning or In Progress"""
    return BoardCountResponse(projectId=project_id, boardCount=service.count_project_boards(project_id))


# ============================================================================
# SINGLE BOARD
# ============================================================================


@router.get("/{board_id}", response_model=BoardInfoResponse)
async def get_board(board_id: str, service: BoardService = Depends(get_board_service)):
    return service.get_board_info(board_id)


@router.post("/{board_id}/admin", response_model=SetAdminResponse)
async def set_board_admin(
    board_id: str,
    data: SetAdminRequest,
    service: BoardService = Depends(get_board_service),
):
    """Set (or re-set) the board admin"""
    return service.set_admin(board_id, data.studentId)


@router.get("/{board_id}/stats", response_model=BoardStats)
async def get_board_stats(
    board_id: str,
    service: BoardService = Depends(get_board_service),
    board_client: TrelloBoardClient = Depends(get_board_client),
):
    return await service.get_board_stats(board_id, board_client)


@router.get("/{board_id}/member-count", response_model=MemberCountResponse)
async def get_member_count(board_id: str, service: BoardService = Depends(get_board_service)):
    return MemberCountResponse(boardId=board_id, memberCount=service.get_member_count(board_id))


@router.patch("/{board_id}/media", response_model=BoardInfoResponse)
async def update_board_media(
    board_id: str,
    data: MediaUpdate,
    service: BoardService = Depends(get_board_service),
):
    """Update the published site and demo video links"""
    service.update_media(board_id, data)
    return service.get_board_info(board_id)


@router.post("/{board_id}/chat", response_model=ChatResponse)
async def add_chat_message(
    board_id: str,
    data: ChatMessageRequest,
    service: BoardService = Depends(get_board_service),
):
    return service.add_chat_message(board_id, data.email, data.message)


@router.get("/{board_id}/chat", response_model=ChatResponse)
async def get_chat(board_id: str, service: BoardService = Depends(get_board_service)):
    return service.get_chat(board_id)
