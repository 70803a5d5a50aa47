"""
Sprint planning client.

Asks an OpenAI-compatible chat completions endpoint for a sprint plan and parses
the reply into a ``SprintPlan``. Every failure comes back as ``Err`` wrapping an
``UpstreamServiceError``; nothing is raised to the caller.
"""

import calendar
import json
import logging
import re
from datetime import date, timedelta
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..config import PlanningSettings
from ..domain.boards.schemas import ProjectTask, RoleInfo, Sprint, SprintPlan, StudentInfo
from ..errors import Err, Ok, Result, UpstreamServiceError

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")

# Lower-cased, underscore-free key -> field name, so PascalCase or snake_case replies parse too
_CANONICAL_KEYS = {
    name.replace("_", "").lower(): name
    for model in (SprintPlan, Sprint, ProjectTask)
    for name in model.model_fields
}


def extract_json_object(content: str) -> Optional[str]:
    """Text between the first '{' and the last '}', dropping prose and code fences"""
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end <= start:
        return None
    return content[start : end + 1]


def fix_invalid_dates(text: str) -> str:
    """
    Clamp impossible calendar dates to the last valid day of their month.

    Models happily emit 2025-02-29 or 2025-04-31; those would fail date parsing
    for the whole plan.
    """

    def clamp(match: re.Match) -> str:
        year, month, day = (int(part) for part in match.groups())
        if year < 1 or not 1 <= month <= 12 or day < 1:
            return match.group(0)
        last_day = calendar.monthrange(year, month)[1]
        if day <= last_day:
            return match.group(0)
        logger.warning(f"⚠️ Fixed invalid date {match.group(0)} -> {year:04d}-{month:02d}-{last_day:02d}")
        return f"{year:04d}-{month:02d}-{last_day:02d}"

    return DATE_PATTERN.sub(clamp, text)


def normalize_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            _CANONICAL_KEYS.get(str(k).replace("_", "").lower(), k): normalize_keys(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [normalize_keys(item) for item in value]
    return value


def parse_sprint_plan(content: str) -> Result[SprintPlan]:
    json_text = extract_json_object(content)
    if json_text is None:
        return Err(UpstreamServiceError("Sprint planner returned no JSON object"))

    try:
        document = json.loads(fix_invalid_dates(json_text))
    except ValueError as e:
        logger.error(f"❌ Sprint plan JSON could not be decoded: {e}")
        return Err(UpstreamServiceError("Sprint planner returned malformed JSON"))

    if not isinstance(document, dict):
        return Err(UpstreamServiceError("Sprint planner returned no sprint plan"))

    document = normalize_keys(document)
    # Some models wrap the plan in an envelope object
    if "sprints" not in document and isinstance(document.get("sprintPlan"), dict):
        document = normalize_keys(document["sprintPlan"])

    try:
        plan = SprintPlan.model_validate(document)
    except PydanticValidationError as e:
        logger.error(f"❌ Sprint plan did not match the expected shape: {e}")
        return Err(UpstreamServiceError("Sprint planner returned an invalid sprint plan"))

    return Ok(plan)


def sprint_plan_warnings(
    plan: SprintPlan, project_length_weeks: int, sprint_length_weeks: int, team_roles: list[RoleInfo]
) -> list[str]:
    """Quality issues worth logging; none of them reject the plan"""
    warnings = []
    expected_sprints = project_length_weeks // sprint_length_weeks

    if len(plan.sprints) != expected_sprints:
        warnings.append(f"Expected {expected_sprints} sprints, got {len(plan.sprints)}")

    if plan.totalSprints and plan.totalSprints != len(plan.sprints):
        warnings.append(f"totalSprints={plan.totalSprints} but {len(plan.sprints)} sprints listed")

    role_names = {role.roleName for role in team_roles}
    for sprint in plan.sprints:
        covered = {task.roleName for task in sprint.tasks}
        missing = sorted(role_names - covered)
        if missing:
            warnings.append(f"Sprint {sprint.sprintNumber} has no tasks for: {', '.join(missing)}")

    return warnings


def build_sprint_planning_prompt(
    project_length_weeks: int,
    sprint_length_weeks: int,
    start_date: date,
    team_roles: list[RoleInfo],
    students: list[StudentInfo],
    system_design: Optional[str],
) -> str:
    total_sprints = project_length_weeks // sprint_length_weeks
    team_roles_text = ", ".join(f"{r.roleName} ({r.studentCount} students)" for r in team_roles)
    role_list = ", ".join(f"{r.roleName} (roleId {r.roleId})" for r in team_roles)
    team_text = "\n".join(
        f"- {s.name} <{s.email}>: {', '.join(s.roles) or 'no role'}" for s in students
    )
    first_sprint_end = start_date + timedelta(days=sprint_length_weeks * 7 - 1)

    return f"""Generate a detailed sprint plan for a {project_length_weeks}-week project with {sprint_length_weeks}-week sprints.

Team roles: {team_roles_text or "none"}
Team:
{team_text}

Project start date: {start_date.isoformat()} (sprint 1 ends {first_sprint_end.isoformat()})
Total sprints: {total_sprints}

System design:
{system_design or "No system design available"}

Rules:
- Create exactly {total_sprints} sprints, numbered from 1, each {sprint_length_weeks} week(s) long and back to back.
- Only create tasks for these roles: {role_list or "none"}.
- Every sprint must contain at least one task for each role.
- Sprint 1 is setup and onboarding only; business features start in sprint 2.
- Task titles and descriptions must reference concrete modules from the system design.
- Dates use the YYYY-MM-DD format and must be real calendar dates.

Respond with JSON only, in this shape:
{{
  "sprints": [
    {{
      "sprintNumber": 1,
      "name": "Sprint 1",
      "startDate": "YYYY-MM-DD",
      "endDate": "YYYY-MM-DD",
      "tasks": [
        {{
          "id": "1-B",
          "title": "...",
          "description": "...",
          "roleId": 0,
          "roleName": "...",
          "estimatedHours": 8,
          "priority": 1,
          "dependencies": [],
          "checklistItems": ["..."]
        }}
      ]
    }}
  ],
  "totalSprints": {total_sprints},
  "totalTasks": 0,
  "estimatedWeeks": {project_length_weeks}
}}"""


class SprintPlanningClient:
    """Client for the chat completions API that drafts sprint plans"""

    def __init__(
        self, settings: PlanningSettings, transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings
        self.transport = transport

    async def generate_sprint_plan(
        self,
        project_id: int,
        project_length_weeks: int,
        sprint_length_weeks: int,
        start_date: date,
        students: list[StudentInfo],
        team_roles: list[RoleInfo],
        system_design: Optional[str] = None,
    ) -> Result[SprintPlan]:
        if not self.settings.api_key:
            logger.error("❌ OPENAI_API_KEY not configured - cannot generate sprint plan")
            return Err(UpstreamServiceError("Sprint planning service is not configured"))

        prompt = build_sprint_planning_prompt(
            project_length_weeks, sprint_length_weeks, start_date, team_roles, students, system_design
        )
        payload = {
            "model": self.settings.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }

        logger.info(
            f"🤖 Requesting sprint plan for project {project_id} "
            f"({len(students)} students, {len(team_roles)} roles, model={self.settings.model})"
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(
                    f"{self.settings.base_url.rstrip('/')}/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.settings.api_key}"},
                )
        except httpx.TimeoutException:
            logger.error(
                f"❌ Sprint planning timed out after {self.settings.timeout_seconds}s for project {project_id}"
            )
            return Err(UpstreamServiceError("Sprint planning service timed out"))
        except httpx.HTTPError as e:
            logger.error(f"❌ Sprint planning service unreachable: {e}")
            return Err(UpstreamServiceError("Sprint planning service is unreachable"))

        if response.status_code != 200:
            logger.error(f"❌ Sprint planning failed: {response.status_code}")
            logger.error(f"❌ Error response: {response.text[:500]}")
            return Err(
                UpstreamServiceError(f"Sprint planning service returned HTTP {response.status_code}")
            )

        try:
            data = response.json()
        except ValueError:
            return Err(UpstreamServiceError("Sprint planning service returned a non-JSON response"))

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            logger.error("❌ Sprint planning response contained no choices")
            return Err(UpstreamServiceError("Sprint planning service returned no choices"))

        content = (choices[0].get("message") or {}).get("content")
        if not content or not content.strip():
            logger.error("❌ Sprint planning response content was empty")
            return Err(UpstreamServiceError("Sprint planning service returned empty content"))

        result = parse_sprint_plan(content)
        if isinstance(result, Err):
            return result

        plan = result.value
        for warning in sprint_plan_warnings(plan, project_length_weeks, sprint_length_weeks, team_roles):
            logger.warning(f"⚠️ Sprint plan for project {project_id}: {warning}")

        logger.info(
            f"✅ Sprint plan received for project {project_id}: "
            f"{len(plan.sprints)} sprints, {sum(len(s.tasks) for s in plan.sprints)} tasks"
        )
        return Ok(plan)
