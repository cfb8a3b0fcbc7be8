"""
Configuration for jira-sync.

Credentials and tuning knobs come from the environment (a local .env is
loaded by the entry points). Branch policies live in BRANCH_STATUS_CONFIG
below and describe what a deployment to each branch means in Jira.
"""

import os
from typing import Any

from pydantic import BaseModel

from jira_sync.errors import ConfigurationError
from jira_sync.fields import FieldValue, LateBoundValue, OptionRef, to_field_map, utc_now
from jira_sync.issue_keys import parse_repository


DEFAULT_EXCLUDED_STATES = ("Blocked", "Rejected")

STAGING_RELEASE_ENV_ID = "11942"
PROD_RELEASE_ENV_ID = "11943"

# Custom fields stamped after a deployment
RELEASE_ENVIRONMENT_FIELD = "customfield_11473"
STAGING_TIMESTAMP_FIELD = "customfield_11474"
PRODUCTION_TIMESTAMP_FIELD = "customfield_11475"

_PRODUCTION_POLICY = {
    "status": "Done",
    "transition_fields": {"resolution": "Done"},
    "custom_fields": {
        PRODUCTION_TIMESTAMP_FIELD: LateBoundValue(factory=utc_now),
        RELEASE_ENVIRONMENT_FIELD: OptionRef(id=PROD_RELEASE_ENV_ID),
    },
}

BRANCH_STATUS_CONFIG: dict[str, dict[str, Any]] = {
    "master": _PRODUCTION_POLICY,
    "main": _PRODUCTION_POLICY,
    "staging": {
        "status": "Deployed to Staging",
        "transition_fields": {"resolution": "Done"},
        "custom_fields": {
            STAGING_TIMESTAMP_FIELD: LateBoundValue(factory=utc_now),
            RELEASE_ENVIRONMENT_FIELD: OptionRef(id=STAGING_RELEASE_ENV_ID),
        },
    },
    "dev": {
        "status": "Deployed to Dev",
        "transition_fields": {"resolution": "Done"},
        "custom_fields": {},
    },
}

PRODUCTION_BRANCHES = ("master", "main")
STAGING_BRANCHES = ("staging",)


class BranchPolicy(BaseModel):
    """What a merge or push to a branch means for the issues it carries."""
    branch: str
    status: str
    transition_fields: dict[str, FieldValue] = {}
    custom_fields: dict[str, FieldValue] = {}


class JiraSettings(BaseModel):
    base_url: str
    email: str
    api_token: str
    project_key: str | None = None

    @classmethod
    def from_env(cls) -> "JiraSettings":
        base_url = os.getenv("JIRA_BASE_URL")
        email = os.getenv("JIRA_EMAIL")
        token = os.getenv("JIRA_API_TOKEN")
        _require({"JIRA_BASE_URL": base_url, "JIRA_EMAIL": email, "JIRA_API_TOKEN": token}, "Jira")
        return cls(
            base_url=base_url.rstrip("/"),
            email=email,
            api_token=token,
            project_key=os.getenv("JIRA_PROJECT_KEY") or None,
        )


class GitHubSettings(BaseModel):
    token: str
    owner: str
    repo: str

    @classmethod
    def from_env(cls) -> "GitHubSettings":
        token = os.getenv("GITHUB_TOKEN")
        repository = os.getenv("GITHUB_REPOSITORY")
        if repository:
            _require({"GITHUB_TOKEN": token}, "GitHub")
            owner, repo = parse_repository(repository)
        else:
            owner = os.getenv("GITHUB_OWNER")
            repo = os.getenv("GITHUB_REPO")
            _require({"GITHUB_TOKEN": token, "GITHUB_OWNER": owner, "GITHUB_REPO": repo}, "GitHub")
        return cls(token=token, owner=owner, repo=repo)


class SyncSettings(BaseModel):
    """Tuning for bulk updates and commit-history scans."""
    excluded_states: tuple[str, ...] = DEFAULT_EXCLUDED_STATES
    consecutive_done_threshold: int = 5
    commit_page_size: int = 100
    max_commits: int = 1000

    @classmethod
    def from_env(cls) -> "SyncSettings":
        defaults = cls()
        return cls(
            consecutive_done_threshold=_int_env(
                "JIRA_SYNC_CONSECUTIVE_DONE_THRESHOLD", defaults.consecutive_done_threshold
            ),
            commit_page_size=_int_env("JIRA_SYNC_COMMIT_PAGE_SIZE", defaults.commit_page_size),
            max_commits=_int_env("JIRA_SYNC_MAX_COMMITS", defaults.max_commits),
        )


def get_branch_policy(branch: str) -> BranchPolicy | None:
    """Look up the policy for a branch, or None if the branch is not tracked."""
    config = BRANCH_STATUS_CONFIG.get(branch)
    if config is None:
        return None
    return BranchPolicy(
        branch=branch,
        status=config["status"],
        transition_fields=to_field_map(config.get("transition_fields")),
        custom_fields=to_field_map(config.get("custom_fields")),
    )


def _require(values: dict[str, str | None], service: str) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ConfigurationError(
            f"{service} is not configured. Set {', '.join(missing)}.",
            missing=missing,
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", missing=[name])
