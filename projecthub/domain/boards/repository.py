"""Board repository - Database operations for project boards and their students"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy.orm.exc import StaleDataError

from ...errors import ConflictError, PersistenceError
from ...models import STATUS_IN_PROGRESS, STATUS_ON_HOLD, Project, ProjectBoard, Student, StudentRole

logger = logging.getLogger(__name__)


class BoardRepository:
    """Repository for board database operations"""

    @staticmethod
    def get_project(db: Session, project_id: int) -> Optional[Project]:
        return db.query(Project).filter(Project.id == project_id).first()

    @staticmethod
    def get_available_students(db: Session, student_ids: list[int]) -> list[Student]:
        """
        Available students among ``student_ids`` with their roles loaded.

        Returned in request order with duplicates collapsed, so callers can compare
        the length against the request to detect missing or unavailable ids.
        """
        if not student_ids:
            return []

        students = (
            db.query(Student)
            .options(selectinload(Student.student_roles).joinedload(StudentRole.role))
            .filter(Student.id.in_(student_ids), Student.is_available.is_(True))
            .all()
        )
        by_id = {s.id: s for s in students}
        return [by_id[sid] for sid in dict.fromkeys(student_ids) if sid in by_id]

    @staticmethod
    def save_board_and_assign_students(
        db: Session, board: ProjectBoard, students: list[Student], now: datetime
    ) -> ProjectBoard:
        """
        Insert the board and point every student at it in one transaction.

        Either all rows are written or none are. A student row modified by another
        transaction since it was read surfaces as ``ConflictError``.
        """
        try:
            db.add(board)
            for student in students:
                student.board_id = board.id
                student.status = STATUS_IN_PROGRESS
                student.updated_at = now
            db.commit()
        except StaleDataError as e:
            db.rollback()
            logger.error(f"❌ Concurrent update detected while saving board {board.id}: {e}")
            raise ConflictError(
                "One or more students were modified by another request; nothing was saved"
            ) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to save board {board.id}: {e}")
            raise PersistenceError("Failed to save the project board") from e

        return BoardRepository._refresh_committed(db, board)

    @staticmethod
    def _refresh_committed(db: Session, board: ProjectBoard) -> ProjectBoard:
        """Reload a committed board; the rows are saved even if the reload fails"""
        try:
            db.refresh(board)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Board {board.id} was committed but could not be reloaded: {e}")
        return board

    @staticmethod
    def get_board(db: Session, board_id: str) -> Optional[ProjectBoard]:
        return (
            db.query(ProjectBoard)
            .options(joinedload(ProjectBoard.project), joinedload(ProjectBoard.admin))
            .filter(ProjectBoard.id == board_id)
            .first()
        )

    @staticmethod
    def get_student(db: Session, student_id: int) -> Optional[Student]:
        return db.query(Student).filter(Student.id == student_id).first()

    @staticmethod
    def update_board(db: Session, board: ProjectBoard, **updates) -> ProjectBoard:
        """Apply column updates to a board and commit"""
        for key, value in updates.items():
            if hasattr(board, key):
                setattr(board, key, value)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to update board {board.id}: {e}")
            raise PersistenceError("Failed to update the project board") from e
        return BoardRepository._refresh_committed(db, board)

    @staticmethod
    def count_members(db: Session, board_id: str) -> int:
        return db.query(Student).filter(Student.board_id == board_id).count()

    @staticmethod
    def list_project_boards(db: Session, project_id: int) -> list[ProjectBoard]:
        return (
            db.query(ProjectBoard)
            .join(Project, ProjectBoard.project_id == Project.id)
            .filter(ProjectBoard.project_id == project_id, Project.is_available.is_(True))
            .order_by(ProjectBoard.created_at.desc())
            .all()
        )

    @staticmethod
    def count_active_boards(db: Session, project_id: int) -> int:
        """Boards of an available project that are not on hold, completed or cancelled"""
        return (
            db.query(ProjectBoard)
            .join(Project, ProjectBoard.project_id == Project.id)
            .filter(
                ProjectBoard.project_id == project_id,
                ProjectBoard.status_id < STATUS_ON_HOLD,
                Project.is_available.is_(True),
            )
            .count()
        )
