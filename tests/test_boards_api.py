from fastapi.testclient import TestClient

from conftest import FakeBoardClient, FakePlanner
from projecthub.domain.boards.router import board_creation_rate_limit
from projecthub.domain.boards.schemas import BoardStats
from projecthub.errors import Err, Ok, RateLimitError, UpstreamServiceError
from projecthub.main import app
from projecthub.models import STATUS_NEW, ProjectBoard, Student


def create_board(client, student_ids=(1, 2, 3), project_id=10, **extra):
    payload = {"projectId": project_id, "studentIds": list(student_ids), **extra}
    return client.post("/boards", json=payload)


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


class TestCreateBoard:
    def test_success(self, client, team, session_factory):
        response = create_board(client, startDate="2025-01-06T09:00:00")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Board created successfully! (GitHub repository creation was skipped or failed)"
        assert data["publishUrl"] is None
        assert data["boardId"] == "B1"
        assert data["boardUrl"] == "https://x/B1"
        assert data["projectId"] == 10
        assert data["studentCount"] == 3
        assert [u["email"] for u in data["invitedUsers"]] == [
            "student1@uni.edu",
            "student2@uni.edu",
            "student3@uni.edu",
        ]

        check = session_factory()
        assert sorted(s.id for s in check.query(Student).filter(Student.board_id == "B1")) == [1, 2, 3]
        check.close()

    def test_unavailable_student_is_rejected(self, client, team, fakes, session_factory):
        response = create_board(client, student_ids=[1, 4])

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "One or more students not found or not available",
        }
        assert fakes.planner.calls == []

    def test_missing_project_is_not_found(self, client, team):
        response = create_board(client, project_id=999)

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_planner_failure_is_bad_gateway(self, client, team, fakes, session_factory):
        fakes.planner = FakePlanner(Err(UpstreamServiceError("Sprint planning service timed out")))

        response = create_board(client)

        assert response.status_code == 502
        assert "timed out" in response.json()["message"]
        check = session_factory()
        assert check.query(ProjectBoard).count() == 0
        check.close()

    def test_board_provider_failure_is_bad_gateway(self, client, team, fakes):
        fakes.board = FakeBoardClient(Err(UpstreamServiceError("Board provider returned HTTP 401")))

        response = create_board(client)

        assert response.status_code == 502
        assert response.json()["message"] == "Board provider returned HTTP 401"

    def test_persistence_failure_is_server_error(self, client, team, session_factory):
        other = session_factory()
        other.add(ProjectBoard(id="B1", project_id=10, status_id=STATUS_NEW))
        other.commit()
        other.close()

        response = create_board(client)

        assert response.status_code == 500
        assert response.json()["success"] is False
        check = session_factory()
        assert all(s.board_id is None for s in check.query(Student).all())
        check.close()

    def test_malformed_body_is_bad_request(self, client, team):
        response = client.post("/boards", json={"projectId": "abc"})

        assert response.status_code == 400
        data = response.json()
        assert data["message"] == "Invalid request"
        assert {tuple(e["loc"]) for e in data["errors"]} >= {("body", "projectId"), ("body", "studentIds")}

    def test_unexpected_crash_is_structured_server_error(self, client, team, fakes):
        class CrashingPlanner(FakePlanner):
            async def generate_sprint_plan(self, **kwargs):
                raise RuntimeError("planner exploded")

        fakes.planner = CrashingPlanner()
        crash_client = TestClient(app, raise_server_exceptions=False)

        response = create_board(crash_client)

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Internal server error"}

    def test_rate_limited_request_is_structured(self, client, team):
        def exhausted():
            raise RateLimitError("Rate limit exceeded. Maximum 10 requests per 3600 seconds.", retry_after=120)

        app.dependency_overrides[board_creation_rate_limit] = exhausted

        response = create_board(client)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "120"
        assert response.json() == {
            "success": False,
            "message": "Rate limit exceeded. Maximum 10 requests per 3600 seconds.",
        }


class TestSetAdmin:
    def test_set_admin_on_new_board(self, client, team, session_factory):
        create_board(client)

        response = client.post("/boards/B1/admin", json={"studentId": 5})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Admin set successfully!",
            "boardId": "B1",
            "studentId": 5,
        }
        check = session_factory()
        assert check.get(ProjectBoard, "B1").admin_id == 5
        check.close()

    def test_repeating_set_admin_is_idempotent(self, client, team, session_factory):
        create_board(client)

        first = client.post("/boards/B1/admin", json={"studentId": 3})
        second = client.post("/boards/B1/admin", json={"studentId": 3})

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()
        check = session_factory()
        assert check.get(ProjectBoard, "B1").admin_id == 3
        check.close()

    def test_unknown_board(self, client, team):
        response = client.post("/boards/NOPE/admin", json={"studentId": 1})

        assert response.status_code == 404

    def test_unknown_student(self, client, team):
        create_board(client)

        response = client.post("/boards/B1/admin", json={"studentId": 99})

        assert response.status_code == 404

    def test_unavailable_student(self, client, team, session_factory):
        create_board(client)

        response = client.post("/boards/B1/admin", json={"studentId": 4})

        assert response.status_code == 400
        check = session_factory()
        assert check.get(ProjectBoard, "B1").admin_id == 2
        check.close()


class TestBoardReads:
    def test_board_info(self, client, team):
        create_board(client)

        data = client.get("/boards/B1").json()

        assert data["boardId"] == "B1"
        assert data["projectTitle"] == "Apollo Tracker"
        assert data["statusId"] == STATUS_NEW
        assert data["adminId"] == 2
        assert data["adminName"] == "First2 Last2"
        assert len(data["sprintPlan"]["sprints"]) == 2

    def test_missing_board_is_not_found(self, client, team):
        response = client.get("/boards/NOPE")

        assert response.status_code == 404
        assert response.json()["message"] == "Board with ID NOPE not found"

    def test_member_count(self, client, team):
        create_board(client)

        assert client.get("/boards/B1/member-count").json() == {"boardId": "B1", "memberCount": 3}

    def test_list_project_boards(self, client, team):
        create_board(client)

        response = client.get("/boards", params={"projectId": 10})

        assert response.status_code == 200
        assert [b["boardId"] for b in response.json()] == ["B1"]
        assert "sprintPlan" not in response.json()[0]

    def test_list_boards_of_unknown_project(self, client, team):
        assert client.get("/boards", params={"projectId": 99}).status_code == 404

    def test_list_boards_of_project_without_boards(self, client, team):
        assert client.get("/boards", params={"projectId": 10}).status_code == 404

    def test_count_active_boards(self, client, team):
        assert client.get("/boards/count/10").json() == {"projectId": 10, "boardCount": 0}

        create_board(client)

        assert client.get("/boards/count/10").json() == {"projectId": 10, "boardCount": 1}

    def test_board_stats(self, client, team, fakes):
        create_board(client)
        fakes.board.stats = Ok(BoardStats(boardId="B1", totalCards=4, completedCards=1, completionPercentage=25.0))

        response = client.get("/boards/B1/stats")

        assert response.status_code == 200
        assert response.json()["completionPercentage"] == 25.0

    def test_stats_for_unknown_board(self, client, team):
        assert client.get("/boards/NOPE/stats").status_code == 404


class TestMediaAndChat:
    def test_update_media(self, client, team):
        create_board(client)

        response = client.patch("/boards/B1/media", json={"publishUrl": "https://apollo.example.com"})

        assert response.status_code == 200
        data = response.json()
        assert data["publishUrl"] == "https://apollo.example.com"
        assert data["movieUrl"] is None

    def test_chat_messages_are_appended(self, client, team):
        create_board(client)

        client.post("/boards/B1/chat", json={"email": "student1@uni.edu", "message": "hello"})
        response = client.post("/boards/B1/chat", json={"email": "student2@uni.edu", "message": "hi there"})

        assert response.status_code == 200
        lines = response.json()["groupChat"].splitlines()
        assert len(lines) == 2
        assert lines[0].endswith("student1@uni.edu: hello")
        assert lines[1].endswith("student2@uni.edu: hi there")

        chat = client.get("/boards/B1/chat").json()
        assert chat["groupChat"] == response.json()["groupChat"]
        assert chat["projectTitle"] == "Apollo Tracker"

    def test_chat_rejects_bad_email(self, client, team):
        create_board(client)

        response = client.post("/boards/B1/chat", json={"email": "not-an-email", "message": "hello"})

        assert response.status_code == 400

    def test_chat_on_unknown_board(self, client, team):
        response = client.post("/boards/NOPE/chat", json={"email": "a@b.co", "message": "hello"})

        assert response.status_code == 404
