import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./projecthub.db")

# Project timeline defaults used by the board-creation workflow
PROJECT_LENGTH_WEEKS = int(os.getenv("PROJECT_LENGTH_WEEKS", "12"))
SPRINT_LENGTH_WEEKS = int(os.getenv("SPRINT_LENGTH_WEEKS", "1"))

# OpenAI-compatible sprint planning service
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_MAX_TOKENS = int(os.getenv("OPENAI_MAX_TOKENS", "16000"))
OPENAI_TEMPERATURE = float(os.getenv("OPENAI_TEMPERATURE", "0.3"))
# Sprint plans for large teams take minutes to generate
PLANNING_TIMEOUT_SECONDS = float(os.getenv("PLANNING_TIMEOUT_SECONDS", "600"))

# Trello board provider
TRELLO_API_KEY = os.getenv("TRELLO_API_KEY")
TRELLO_API_TOKEN = os.getenv("TRELLO_API_TOKEN")
TRELLO_BASE_URL = os.getenv("TRELLO_BASE_URL", "https://api.trello.com/1")
# Only product managers get a board invitation when true
TRELLO_INVITE_PM_ONLY = os.getenv("TRELLO_INVITE_PM_ONLY", "true").lower() == "true"
TRELLO_TIMEOUT_SECONDS = float(os.getenv("TRELLO_TIMEOUT_SECONDS", "60"))

# GitHub repository provisioning (optional)
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")
GITHUB_ORG = os.getenv("GITHUB_ORG")  # None creates repos under the token owner
GITHUB_BASE_URL = os.getenv("GITHUB_BASE_URL", "https://api.github.com")
GITHUB_TIMEOUT_SECONDS = float(os.getenv("GITHUB_TIMEOUT_SECONDS", "30"))

# Board creation spends paid AI and Trello calls, keep it throttled
BOARD_CREATION_RATE_LIMIT = int(os.getenv("BOARD_CREATION_RATE_LIMIT", "10"))
BOARD_CREATION_RATE_WINDOW_SECONDS = int(os.getenv("BOARD_CREATION_RATE_WINDOW_SECONDS", "3600"))

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")


class BusinessLogicSettings(BaseModel):
    """Timeline parameters handed to the board-creation saga"""

    project_length_weeks: int = Field(default=12, ge=1)
    sprint_length_weeks: int = Field(default=1, ge=1)


class PlanningSettings(BaseModel):
    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    max_tokens: int = 16000
    temperature: float = 0.3
    timeout_seconds: float = 600.0


class TrelloSettings(BaseModel):
    api_key: Optional[str] = None
    api_token: Optional[str] = None
    base_url: str = "https://api.trello.com/1"
    invite_pm_only: bool = True
    timeout_seconds: float = 60.0


class GitHubSettings(BaseModel):
    token: Optional[str] = None
    org: Optional[str] = None
    base_url: str = "https://api.github.com"
    timeout_seconds: float = 30.0

    @property
    def enabled(self) -> bool:
        return bool(self.token)


def get_business_settings() -> BusinessLogicSettings:
    return BusinessLogicSettings(
        project_length_weeks=PROJECT_LENGTH_WEEKS,
        sprint_length_weeks=SPRINT_LENGTH_WEEKS,
    )


def get_planning_settings() -> PlanningSettings:
    return PlanningSettings(
        api_key=OPENAI_API_KEY,
        base_url=OPENAI_BASE_URL,
        model=OPENAI_MODEL,
        max_tokens=OPENAI_MAX_TOKENS,
        temperature=OPENAI_TEMPERATURE,
        timeout_seconds=PLANNING_TIMEOUT_SECONDS,
    )


def get_trello_settings() -> TrelloSettings:
    return TrelloSettings(
        api_key=TRELLO_API_KEY,
        api_token=TRELLO_API_TOKEN,
        base_url=TRELLO_BASE_URL,
        invite_pm_only=TRELLO_INVITE_PM_ONLY,
        timeout_seconds=TRELLO_TIMEOUT_SECONDS,
    )


def get_github_settings() -> GitHubSettings:
    return GitHubSettings(
        token=GITHUB_TOKEN,
        org=GITHUB_ORG,
        base_url=GITHUB_BASE_URL,
        timeout_seconds=GITHUB_TIMEOUT_SECONDS,
    )
