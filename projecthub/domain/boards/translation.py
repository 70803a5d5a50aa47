"""
Sprint plan -> board structure mapping.

Pure functions, no I/O. Each sprint becomes one list positioned by its sprint
number and each task becomes one card in its sprint's list, due at the sprint's
end date.
"""

from ...models import Student
from .schemas import BoardCard, BoardList, BoardPlan, RoleInfo, SprintPlan, StudentInfo, TeamMember

DEFAULT_ROLE_NAME = "Team Member"
DEFAULT_ROLE_ID = 0


def build_student_infos(students: list[Student]) -> list[StudentInfo]:
    return [
        StudentInfo(
            id=s.id,
            name=s.full_name,
            email=s.email,
            roles=[role.name for role in s.active_roles],
        )
        for s in students
    ]


def build_team_roles(students: list[Student]) -> list[RoleInfo]:
    """Distinct roles across the team with how many students hold each, in first-seen order"""
    counts: dict[int, RoleInfo] = {}
    for student in students:
        for role in student.active_roles:
            if role.id in counts:
                counts[role.id].studentCount += 1
            else:
                counts[role.id] = RoleInfo(roleId=role.id, roleName=role.name, studentCount=1)
    return list(counts.values())


def build_team_members(students: list[Student]) -> list[TeamMember]:
    """Board members; a student without a role gets the generic team-member label"""
    members = []
    for student in students:
        roles = student.active_roles
        first_role = roles[0] if roles else None
        members.append(
            TeamMember(
                email=student.email,
                firstName=student.first_name,
                lastName=student.last_name,
                roleId=first_role.id if first_role else DEFAULT_ROLE_ID,
                roleName=first_role.name if first_role else DEFAULT_ROLE_NAME,
            )
        )
    return members


def translate_sprint_plan(plan: SprintPlan) -> BoardPlan:
    lists = []
    cards = []

    for sprint in plan.sprints:
        lists.append(BoardList(name=sprint.name, position=sprint.sprintNumber))
        for task in sprint.tasks:
            cards.append(
                BoardCard(
                    name=task.title,
                    description=task.description,
                    listName=sprint.name,
                    roleName=task.roleName,
                    dueDate=sprint.endDate,
                    priority=task.priority,
                    checklistItems=list(task.checklistItems),
                )
            )

    return BoardPlan(
        lists=lists,
        cards=cards,
        totalSprints=plan.totalSprints,
        totalTasks=plan.totalTasks,
        estimatedWeeks=plan.estimatedWeeks,
    )
