import logging
from typing import Any

import httpx
from pydantic import BaseModel

from jira_sync.config import GitHubSettings
from jira_sync.errors import GitHubApiError
from jira_sync.tools.http import RETRY_BASE_DELAY, request_with_retry

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class GitHubCommit(BaseModel):
    """A commit."""
    sha: str
    message: str
    author: str | None = None
    date: str | None = None
    html_url: str | None = None


def _to_commit(data: dict) -> GitHubCommit:
    commit = data.get("commit") or {}
    author = commit.get("author") or {}
    return GitHubCommit(
        sha=data["sha"],
        message=commit.get("message", ""),
        author=author.get("name"),
        date=author.get("date"),
        html_url=data.get("html_url"),
    )


class GitHubClient:
    """Read-only access to a repository's commit history."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.owner = owner
        self.repo = repo
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self._transport = transport
        self.retry_base_delay = retry_base_delay

    @classmethod
    def from_settings(cls, settings: GitHubSettings, **kwargs: Any) -> "GitHubClient":
        return cls(token=settings.token, owner=settings.owner, repo=settings.repo, **kwargs)

    async def request(self, endpoint: str, params: dict[str, Any] | None = None) -> httpx.Response:
        return await request_with_retry(
            "GET",
            f"{GITHUB_API_URL}{endpoint}",
            endpoint=endpoint,
            error_cls=GitHubApiError,
            headers=self._headers,
            params=params,
            transport=self._transport,
            retry_base_delay=self.retry_base_delay,
        )

    async def get_latest_commit(self, branch: str) -> GitHubCommit:
        """The commit at the tip of a branch."""
        response = await self.request(f"/repos/{self.owner}/{self.repo}/commits/{branch}")
        return _to_commit(response.json())

    async def list_commits(self, branch: str, page: int = 1, per_page: int = 100) -> list[GitHubCommit]:
        """One page of a branch's history, newest first."""
        response = await self.request(
            f"/repos/{self.owner}/{self.repo}/commits",
            params={"sha": branch, "per_page": per_page, "page": page},
        )
        return [_to_commit(commit) for commit in response.json()]
