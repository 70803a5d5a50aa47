"""Board service - Business logic for board administration, reads and group chat"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import Err, NotFoundError, ValidationError
from ...models import ProjectBoard
from ...services.trello_service import TrelloBoardClient
from .repository import BoardRepository
from .schemas import (
    BoardInfoResponse,
    BoardStats,
    BoardSummary,
    ChatResponse,
    MediaUpdate,
    SetAdminResponse,
)

logger = logging.getLogger(__name__)


class BoardService:
    """Service layer for board business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BoardRepository()

    def get_board(self, board_id: str) -> ProjectBoard:
        board = self.repo.get_board(self.db, board_id)
        if not board:
            raise NotFoundError(f"Board with ID {board_id} not found")
        return board

    def set_admin(self, board_id: str, student_id: int) -> SetAdminResponse:
        """
        Make a student the board admin.

        Idempotent: repeating the call leaves the same admin in place. The student
        only has to exist and be available; membership of the board is not checked.
        """
        board = self.get_board(board_id)

        student = self.repo.get_student(self.db, student_id)
        if not student:
            raise NotFoundError(f"Student with ID {student_id} not found")
        if not student.is_available:
            raise ValidationError(f"Student with ID {student_id} is not available")

        self.repo.update_board(
            self.db, board, admin_id=student.id, updated_at=datetime.now(timezone.utc)
        )
        logger.info(f"👑 Student {student_id} set as admin of board {board_id}")

        return SetAdminResponse(
            message="Admin set successfully!", boardId=board.id, studentId=student.id
        )

    def get_board_info(self, board_id: str) -> BoardInfoResponse:
        board = self.get_board(board_id)
        admin = board.admin
        return BoardInfoResponse(
            boardId=board.id,
            projectId=board.project_id,
            projectTitle=board.project.title if board.project else None,
            projectDescription=board.project.description if board.project else None,
            startDate=board.start_date,
            endDate=board.end_date,
            dueDate=board.due_date,
            statusId=board.status_id,
            adminId=board.admin_id,
            adminName=admin.full_name if admin else None,
            adminEmail=admin.email if admin else None,
            sprintPlan=board.sprint_plan,
            boardUrl=board.board_url,
            githubUrl=board.github_url,
            publishUrl=board.publish_url,
            movieUrl=board.movie_url,
            createdAt=board.created_at,
            updatedAt=board.updated_at,
        )

    async def get_board_stats(self, board_id: str, board_client: TrelloBoardClient) -> BoardStats:
        board = self.get_board(board_id)
        result = await board_client.get_board_stats(board.id)
        if isinstance(result, Err):
            raise result.error
        return result.value

    def get_member_count(self, board_id: str) -> int:
        return self.repo.count_members(self.db, board_id)

    def list_project_boards(self, project_id: int) -> list[BoardSummary]:
        project = self.repo.get_project(self.db, project_id)
        if not project or not project.is_available:
            raise NotFoundError(f"Project with ID {project_id} not found or not available")

        boards = self.repo.list_project_boards(self.db, project_id)
        if not boards:
            raise NotFoundError(f"No boards found for project {project_id}")

        return [
            BoardSummary(
                boardId=b.id,
                projectId=b.project_id,
                startDate=b.start_date,
                endDate=b.end_date,
                dueDate=b.due_date,
                statusId=b.status_id,
                githubUrl=b.github_url,
                publishUrl=b.publish_url,
                movieUrl=b.movie_url,
                createdAt=b.created_at,
                updatedAt=b.updated_at,
            )
            for b in boards
        ]

    def count_project_boards(self, project_id: int) -> int:
        return self.repo.count_active_boards(self.db, project_id)

    def update_media(self, board_id: str, data: MediaUpdate) -> ProjectBoard:
        board = self.get_board(board_id)
        updates = {"updated_at": datetime.now(timezone.utc)}
        if data.publishUrl is not None:
            updates["publish_url"] = data.publishUrl
        if data.movieUrl is not None:
            updates["movie_url"] = data.movieUrl
        return self.repo.update_board(self.db, board, **updates)

    def add_chat_message(
        self, board_id: str, email: str, message: str, now: Optional[datetime] = None
    ) -> ChatResponse:
        board = self.get_board(board_id)
        timestamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{timestamp}] {email}: {message}\n"

        self.repo.update_board(
            self.db,
            board,
            group_chat=(board.group_chat or "") + line,
            updated_at=datetime.now(timezone.utc),
        )
        return self._chat_response(board)

    def get_chat(self, board_id: str) -> ChatResponse:
        return self._chat_response(self.get_board(board_id))

    @staticmethod
    def _chat_response(board: ProjectBoard) -> ChatResponse:
        return ChatResponse(
            boardId=board.id,
            groupChat=board.group_chat or "",
            projectTitle=board.project.title if board.project else None,
            adminName=board.admin.full_name if board.admin else None,
        )
