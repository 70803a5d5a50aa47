"""Board domain schemas - Pydantic models for requests, responses and sprint plans"""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email

# ============================================================================
# SPRINT PLAN (planner output)
# ============================================================================


class ProjectTask(BaseModel):
    id: Optional[str] = None
    title: str = ""
    description: str = ""
    roleId: int = 0
    roleName: str = ""
    estimatedHours: Optional[float] = None
    priority: Optional[Union[int, str]] = None
    dependencies: list[str] = Field(default_factory=list)
    checklistItems: list[str] = Field(default_factory=list)


class Sprint(BaseModel):
    sprintNumber: int
    name: str = ""
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    tasks: list[ProjectTask] = Field(default_factory=list)

    @field_validator("tasks", mode="before")
    @classmethod
    def null_tasks_to_empty(cls, v):
        return v or []


class SprintPlan(BaseModel):
    sprints: list[Sprint] = Field(default_factory=list)
    totalSprints: int = 0
    totalTasks: int = 0
    estimatedWeeks: int = 0

    @field_validator("sprints", mode="before")
    @classmethod
    def null_sprints_to_empty(cls, v):
        return v or []


class StudentInfo(BaseModel):
    """Student as described to the planner"""

    id: int
    name: str
    email: str
    roles: list[str] = Field(default_factory=list)


class RoleInfo(BaseModel):
    roleId: int
    roleName: str
    studentCount: int


# ============================================================================
# BOARD STRUCTURE (translated plan sent to Trello)
# ============================================================================


class TeamMember(BaseModel):
    email: str
    firstName: str
    lastName: str
    roleId: int = 0
    roleName: str = "Team Member"


class BoardList(BaseModel):
    name: str
    position: int


class BoardCard(BaseModel):
    name: str
    description: str = ""
    listName: str
    roleName: str = ""
    dueDate: Optional[date] = None
    priority: Optional[Union[int, str]] = None
    checklistItems: list[str] = Field(default_factory=list)


class BoardPlan(BaseModel):
    lists: list[BoardList] = Field(default_factory=list)
    cards: list[BoardCard] = Field(default_factory=list)
    totalSprints: int = 0
    totalTasks: int = 0
    estimatedWeeks: int = 0


class InvitedUser(BaseModel):
    email: str
    name: str
    status: str  # Invited, Failed


# ============================================================================
# REQUESTS / RESPONSES
# ============================================================================


class CreateBoardRequest(BaseModel):
    """Schema for starting the board-creation workflow"""

    projectId: int
    studentIds: list[int]
    startDate: Optional[datetime] = None


class CreateBoardResponse(BaseModel):
    success: bool = True
    message: str
    boardId: str
    boardUrl: Optional[str] = None
    projectId: int
    studentCount: int
    invitedUsers: list[InvitedUser] = Field(default_factory=list)
    repositoryUrl: Optional[str] = None
    publishUrl: Optional[str] = None
    addedCollaborators: list[str] = Field(default_factory=list)
    failedCollaborators: list[str] = Field(default_factory=list)


class SetAdminRequest(BaseModel):
    studentId: int


class SetAdminResponse(BaseModel):
    success: bool = True
    message: str
    boardId: str
    studentId: int


class BoardInfoResponse(BaseModel):
    boardId: str
    projectId: int
    projectTitle: Optional[str] = None
    projectDescription: Optional[str] = None
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    dueDate: Optional[datetime] = None
    statusId: Optional[int] = None
    adminId: Optional[int] = None
    adminName: Optional[str] = None
    adminEmail: Optional[str] = None
    sprintPlan: Optional[dict] = None
    boardUrl: Optional[str] = None
    githubUrl: Optional[str] = None
    publishUrl: Optional[str] = None
    movieUrl: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class BoardSummary(BaseModel):
    """Board listing entry, without plan, URL or admin"""

    boardId: str
    projectId: int
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    dueDate: Optional[datetime] = None
    statusId: Optional[int] = None
    githubUrl: Optional[str] = None
    publishUrl: Optional[str] = None
    movieUrl: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class MemberCountResponse(BaseModel):
    boardId: str
    memberCount: int


class BoardCountResponse(BaseModel):
    projectId: int
    boardCount: int


class MediaUpdate(BaseModel):
    publishUrl: Optional[str] = None
    movieUrl: Optional[str] = None


class ChatMessageRequest(BaseModel):
    email: str
    message: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        if not validate_email(v):
            raise ValueError("Invalid email address")
        return v.strip()


class ChatResponse(BaseModel):
    boardId: str
    groupChat: str = ""
    projectTitle: Optional[str] = None
    adminName: Optional[str] = None


class BoardStats(BaseModel):
    boardId: str
    boardName: Optional[str] = None
    boardUrl: Optional[str] = None
    totalMembers: int = 0
    totalLists: int = 0
    totalCards: int = 0
    completedCards: int = 0
    overdueCards: int = 0
    inProgressCards: int = 0
    notStartedCards: int = 0
    assignedCards: int = 0
    unassignedCards: int = 0
    dueCompleteCards: int = 0
    dueIncompleteCards: int = 0
    completionPercentage: float = 0.0
