"""Error types raised by jira-sync."""


class SyncError(Exception):
    """Base class for expected failures while syncing issues."""


class ValidationError(SyncError):
    """Malformed input: bad issue key, unknown status name, unsupported field."""


class ConfigurationError(SyncError):
    """Required configuration is missing or malformed."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class ApiError(SyncError):
    """Non-2xx response from a backend after retries were exhausted."""

    service = "API"

    def __init__(self, status_code: int, endpoint: str, response_body: str = ""):
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        super().__init__(f"{self.service} error {status_code} on {endpoint}: {response_body}")


class JiraApiError(ApiError):
    service = "Jira API"


class GitHubApiError(ApiError):
    service = "GitHub API"


class WorkflowError(SyncError):
    """A workflow or workflow scheme could not be found."""


class TransitionError(SyncError):
    """An issue could not be moved to its target status."""

    def __init__(self, message: str, issue_key: str | None = None):
        super().__init__(message)
        self.issue_key = issue_key
