import logging
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from ..config import GitHubSettings
from ..errors import Err, Ok, Result, UpstreamServiceError
from ..shared.validators import sanitize_repo_description

logger = logging.getLogger(__name__)


class RepositoryProvisioning(BaseModel):
    repository_name: str
    repository_url: Optional[str] = None
    pages_url: Optional[str] = None
    added_collaborators: list[str] = Field(default_factory=list)
    failed_collaborators: list[str] = Field(default_factory=list)


def default_pages_url(owner: str, repository_name: str) -> str:
    return f"https://{owner.lower()}.github.io/{repository_name}/"


class GitHubRepositoryClient:
    """Creates a team repository, publishes it with GitHub Pages and adds students as collaborators"""

    def __init__(self, settings: GitHubSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.token}",
            "Accept": "application/vnd.github+json",
        }

    async def create_repository(
        self, name: str, description: Optional[str], collaborators: list[str]
    ) -> Result[RepositoryProvisioning]:
        if not self.enabled:
            return Err(UpstreamServiceError("GitHub token is not configured"))

        payload = {
            "name": name,
            "description": sanitize_repo_description(description),
            "private": False,
            "auto_init": True,
        }
        path = f"/orgs/{self.settings.org}/repos" if self.settings.org else "/user/repos"

        async with httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout_seconds,
            transport=self.transport,
            headers=self._headers(),
        ) as client:
            try:
                response = await client.post(path, json=payload)
            except httpx.HTTPError as e:
                logger.error(f"❌ GitHub repository creation failed for {name}: {e}")
                return Err(UpstreamServiceError("GitHub is unreachable"))

            if response.status_code not in (200, 201):
                logger.error(
                    f"❌ GitHub repository creation failed: {response.status_code} {response.text[:300]}"
                )
                return Err(UpstreamServiceError(f"GitHub returned HTTP {response.status_code}"))

            try:
                repository = response.json()
            except ValueError:
                return Err(UpstreamServiceError("GitHub returned a non-JSON response"))
            if not isinstance(repository, dict):
                logger.error(f"❌ GitHub repository creation for {name} returned {type(repository).__name__}")
                return Err(UpstreamServiceError("GitHub returned an unexpected repository payload"))

            owner_info = repository.get("owner")
            owner = (owner_info.get("login") if isinstance(owner_info, dict) else None) or self.settings.org
            result = RepositoryProvisioning(
                repository_name=repository.get("name") or name,
                repository_url=repository.get("html_url"),
            )
            logger.info(f"✅ Created GitHub repository {result.repository_url}")

            if owner:
                result.pages_url = await self._enable_pages(client, owner, result.repository_name)

            for username in collaborators:
                try:
                    collab_response = await client.put(
                        f"/repos/{owner}/{result.repository_name}/collaborators/{username}",
                        json={"permission": "push"},
                    )
                    added = collab_response.status_code in (201, 204)
                except httpx.HTTPError as e:
                    logger.warning(f"⚠️ Adding collaborator {username} failed: {e}")
                    added = False

                if added:
                    result.added_collaborators.append(username)
                else:
                    result.failed_collaborators.append(username)

        logger.info(
            f"👥 Collaborators for {result.repository_name}: "
            f"{len(result.added_collaborators)} added, {len(result.failed_collaborators)} failed"
        )
        return Ok(result)

    async def _enable_pages(self, client: httpx.AsyncClient, owner: str, repository_name: str) -> Optional[str]:
        """
        Publish the default branch with GitHub Pages.

        409 means Pages is already enabled. Returns the site URL, or None when
        Pages could not be enabled.
        """
        try:
            response = await client.post(
                f"/repos/{owner}/{repository_name}/pages",
                json={"source": {"branch": "main", "path": "/"}},
            )
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Enabling GitHub Pages for {owner}/{repository_name} failed: {e}")
            return None

        if response.status_code == 409:
            logger.info(f"ℹ️ GitHub Pages already enabled for {owner}/{repository_name}")
            return default_pages_url(owner, repository_name)
        if response.status_code not in (200, 201):
            logger.warning(
                f"⚠️ Enabling GitHub Pages for {owner}/{repository_name} failed: "
                f"{response.status_code} {response.text[:300]}"
            )
            return None

        try:
            pages = response.json()
        except ValueError:
            pages = None
        pages_url = pages.get("html_url") if isinstance(pages, dict) else None
        pages_url = pages_url or default_pages_url(owner, repository_name)
        logger.info(f"🌐 GitHub Pages enabled at {pages_url}")
        return pages_url
