"""Backend clients for Jira and GitHub."""

from jira_sync.tools.github import GitHubClient, GitHubCommit
from jira_sync.tools.jira import JiraClient

__all__ = [
    "JiraClient",
    "GitHubClient",
    "GitHubCommit",
]
