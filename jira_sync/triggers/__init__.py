"""GitHub event handling: PR activity and deployment pushes."""

from jira_sync.triggers.context import SyncContext
from jira_sync.triggers.models import PullRequestEvent, PushEvent
from jira_sync.triggers.webhooks import detect_environment, handle_pull_request_event, handle_push_event

__all__ = [
    "SyncContext",
    "PullRequestEvent",
    "PushEvent",
    "detect_environment",
    "handle_pull_request_event",
    "handle_push_event",
]
