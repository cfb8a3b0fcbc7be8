"""Wiring shared by the webhook server and the GitHub Actions entry point."""

import logging
import os

from jira_sync.config import GitHubSettings, JiraSettings, SyncSettings
from jira_sync.tools.github import GitHubClient
from jira_sync.tools.jira import JiraClient
from jira_sync.workflows.bulk import BulkUpdater
from jira_sync.workflows.executor import TransitionExecutor
from jira_sync.workflows.graph import WorkflowGraphCache

logger = logging.getLogger(__name__)


class SyncContext:
    """Clients, executor and bulk updater for one process."""

    def __init__(
        self,
        jira: JiraClient,
        github: GitHubClient | None = None,
        settings: SyncSettings | None = None,
        cache: WorkflowGraphCache | None = None,
    ):
        self.jira = jira
        self.github = github
        self.settings = settings or SyncSettings()
        self.executor = TransitionExecutor(jira, cache)
        self.bulk = BulkUpdater(self.executor)

    @classmethod
    def from_env(cls, cache: WorkflowGraphCache | None = None) -> "SyncContext":
        """
        Build a context from environment variables.

        Jira credentials are required. GitHub is optional and only needed
        for push events; without GITHUB_TOKEN the context has no GitHub client.
        """
        jira = JiraClient.from_settings(JiraSettings.from_env())
        github = None
        if os.getenv("GITHUB_TOKEN"):
            github = GitHubClient.from_settings(GitHubSettings.from_env())
        else:
            logger.warning("GITHUB_TOKEN not set; push events cannot be processed")
        return cls(jira, github, SyncSettings.from_env(), cache)
