import asyncio
import json
from datetime import date

import httpx
import pytest

from projecthub.config import PlanningSettings
from projecthub.domain.boards.schemas import RoleInfo, StudentInfo
from projecthub.errors import Err, Ok, UpstreamServiceError
from projecthub.services.planning_client import (
    SprintPlanningClient,
    extract_json_object,
    fix_invalid_dates,
    parse_sprint_plan,
    sprint_plan_warnings,
)

PLAN = {
    "sprints": [
        {
            "sprintNumber": 1,
            "name": "Sprint 1",
            "startDate": "2025-01-06",
            "endDate": "2025-01-12",
            "tasks": [
                {"id": "1-B", "title": "Set up repo", "roleId": 1, "roleName": "Backend Developer"},
            ],
        },
        {"sprintNumber": 2, "name": "Sprint 2", "startDate": "2025-01-13", "endDate": "2025-01-19", "tasks": []},
    ],
    "totalSprints": 2,
    "totalTasks": 1,
    "estimatedWeeks": 2,
}

STUDENTS = [StudentInfo(id=1, name="Ada Lovelace", email="ada@uni.edu", roles=["Backend Developer"])]
ROLES = [RoleInfo(roleId=1, roleName="Backend Developer", studentCount=1)]


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_client(handler, api_key="sk-test"):
    settings = PlanningSettings(api_key=api_key, base_url="https://llm.test/v1", timeout_seconds=5)
    return SprintPlanningClient(settings, transport=httpx.MockTransport(handler))


def generate(client):
    return asyncio.run(
        client.generate_sprint_plan(
            project_id=10,
            project_length_weeks=2,
            sprint_length_weeks=1,
            start_date=date(2025, 1, 6),
            students=STUDENTS,
            team_roles=ROLES,
            system_design="Module 1: Missions",
        )
    )


def test_parses_plan_from_chat_completion():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion("Here you go:\n```json\n" + json.dumps(PLAN) + "\n```"))

    result = generate(make_client(handler))

    assert isinstance(result, Ok)
    assert [s.sprintNumber for s in result.value.sprints] == [1, 2]
    assert result.value.sprints[0].tasks[0].title == "Set up repo"
    assert result.value.sprints[1].endDate == date(2025, 1, 19)
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["messages"][0]["role"] == "user"
    assert "2-week project" in seen["body"]["messages"][0]["content"]
    assert "Module 1: Missions" in seen["body"]["messages"][0]["content"]


def test_timeout_is_upstream_error():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    result = generate(make_client(handler))

    assert isinstance(result, Err)
    assert isinstance(result.error, UpstreamServiceError)
    assert "timed out" in result.message


def test_connection_error_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    result = generate(make_client(handler))

    assert isinstance(result, Err)
    assert result.error.status_code == 502


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="overloaded"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json=completion("")),
        httpx.Response(200, json=completion("I cannot help with that")),
        httpx.Response(200, json=completion("null")),
        httpx.Response(200, text="<html>oops</html>"),
    ],
)
def test_unusable_responses_are_upstream_errors(response):
    result = generate(make_client(lambda request: response))

    assert isinstance(result, Err)
    assert isinstance(result.error, UpstreamServiceError)


def test_missing_api_key_fails_without_calling_out():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=completion(json.dumps(PLAN)))

    result = generate(make_client(handler, api_key=None))

    assert isinstance(result, Err)
    assert calls == []


def test_empty_sprint_list_is_a_valid_plan():
    result = parse_sprint_plan('{"sprints": [], "totalSprints": 0}')

    assert isinstance(result, Ok)
    assert result.value.sprints == []


def test_keys_are_matched_case_insensitively():
    content = json.dumps(
        {
            "Sprints": [
                {
                    "SprintNumber": 1,
                    "Name": "Sprint 1",
                    "EndDate": "2025-01-12",
                    "Tasks": [{"Title": "Kickoff", "RoleName": "PM", "checklist_items": ["agenda"]}],
                }
            ],
            "TotalSprints": 1,
        }
    )

    result = parse_sprint_plan(content)

    assert isinstance(result, Ok)
    task = result.value.sprints[0].tasks[0]
    assert (task.title, task.roleName, task.checklistItems) == ("Kickoff", "PM", ["agenda"])
    assert result.value.totalSprints == 1


def test_wrong_shape_is_rejected():
    result = parse_sprint_plan('{"sprints": [{"name": "no number"}]}')

    assert isinstance(result, Err)


def test_extract_json_object_strips_prose():
    assert extract_json_object('Sure! {"a": {"b": 1}} Hope this helps') == '{"a": {"b": 1}}'
    assert extract_json_object("no json here") is None


@pytest.mark.parametrize(
    "raw, fixed",
    [
        ("2025-02-29", "2025-02-28"),
        ("2024-02-29", "2024-02-29"),
        ("2025-04-31", "2025-04-30"),
        ("2025-02-30", "2025-02-28"),
        ("2025-12-31", "2025-12-31"),
        ("2025-13-01", "2025-13-01"),
    ],
)
def test_fix_invalid_dates(raw, fixed):
    assert fix_invalid_dates(f'{{"endDate": "{raw}"}}') == f'{{"endDate": "{fixed}"}}'


def test_invalid_calendar_dates_do_not_sink_the_plan():
    content = '{"sprints": [{"sprintNumber": 1, "name": "S1", "endDate": "2025-02-29"}]}'

    result = parse_sprint_plan(content)

    assert isinstance(result, Ok)
    assert result.value.sprints[0].endDate == date(2025, 2, 28)


def test_quality_warnings_do_not_reject_plan():
    result = parse_sprint_plan(json.dumps(PLAN))
    warnings = sprint_plan_warnings(result.value, 3, 1, ROLES)

    assert "Expected 3 sprints, got 2" in warnings
    assert "Sprint 2 has no tasks for: Backend Developer" in warnings
