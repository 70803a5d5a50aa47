from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# ProjectStatus ids referenced by the board workflow
STATUS_NEW = 1
STATUS_PLANNING = 2
STATUS_IN_PROGRESS = 3
STATUS_ON_HOLD = 4
STATUS_COMPLETED = 5
STATUS_CANCELLED = 6

PROJECT_STATUS_SEED = [
    (STATUS_NEW, "New", "Project board created, work not started"),
    (STATUS_PLANNING, "Planning", "Sprint planning in progress"),
    (STATUS_IN_PROGRESS, "In Progress", "Team is actively working"),
    (STATUS_ON_HOLD, "On Hold", "Work paused"),
    (STATUS_COMPLETED, "Completed", "All sprints delivered"),
    (STATUS_CANCELLED, "Cancelled", "Project abandoned"),
]


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    website = Column(String(500), nullable=True)
    contact_email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    type = Column(String(100), nullable=True)  # university, company, nonprofit
    address = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    projects = relationship("Project", back_populates="organization")
    students = relationship("Student", back_populates="organization")


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    system_design = Column(Text, nullable=True)  # Fed to the sprint planner
    is_available = Column(Boolean, default=True, nullable=False)
    priority = Column(String(50), nullable=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    organization = relationship("Organization", back_populates="projects")
    boards = relationship("ProjectBoard", back_populates="project")


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class StudentRole(Base):
    __tablename__ = "student_roles"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    assigned_date = Column(DateTime(timezone=True), server_default=func.now())
    is_active = Column(Boolean, default=True, nullable=False)

    student = relationship("Student", back_populates="student_roles")
    role = relationship("Role")


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    github_user = Column(String(100), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    status = Column(Integer, ForeignKey("project_statuses.id"), nullable=True)
    board_id = Column(String(255), ForeignKey("project_boards.id"), nullable=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    # Bumped on every UPDATE; a stale write raises StaleDataError
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    organization = relationship("Organization", back_populates="students")
    student_roles = relationship("StudentRole", back_populates="student")
    board = relationship("ProjectBoard", back_populates="students", foreign_keys=[board_id])

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def active_roles(self) -> list:
        return [sr.role for sr in self.student_roles if sr.is_active and sr.role is not None]


class ProjectStatus(Base):
    __tablename__ = "project_statuses"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False)
    description = Column(String(255), nullable=True)


class ProjectBoard(Base):
    __tablename__ = "project_boards"

    id = Column(String(255), primary_key=True)  # Trello board id
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    status_id = Column(Integer, ForeignKey("project_statuses.id"), nullable=True)
    admin_id = Column(
        Integer,
        ForeignKey("students.id", use_alter=True, name="fk_project_boards_admin_id"),
        nullable=True,
    )
    sprint_plan = Column(JSON, nullable=True)  # Sprint plan document from the planner
    board_url = Column(String(500), nullable=True)
    github_url = Column(String(500), nullable=True)
    publish_url = Column(String(500), nullable=True)
    movie_url = Column(String(500), nullable=True)
    group_chat = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    project = relationship("Project", back_populates="boards")
    status = relationship("ProjectStatus")
    admin = relationship("Student", foreign_keys=[admin_id], post_update=True)
    students = relationship("Student", back_populates="board", foreign_keys=[Student.board_id])


def seed_project_statuses(db) -> int:
    """Insert missing ProjectStatus lookup rows, returns how many were added"""
    existing = {row.id for row in db.query(ProjectStatus.id).all()}
    added = 0
    for status_id, name, description in PROJECT_STATUS_SEED:
        if status_id not in existing:
            db.add(ProjectStatus(id=status_id, name=name, description=description))
            added += 1
    if added:
        db.commit()
    return added
