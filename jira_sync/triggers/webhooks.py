"""
Handlers for GitHub events.

Pull request activity moves the issues named in the PR; pushes to
deployment branches move the issues found in the branch history or
referencing the merged PR, according to the branch policy.
"""

import logging
import os
from typing import Optional

from jira_sync.config import PRODUCTION_BRANCHES, STAGING_BRANCHES, get_branch_policy
from jira_sync.errors import ConfigurationError, SyncError
from jira_sync.fields import to_field_map
from jira_sync.issue_keys import construct_pr_url, extract_issue_keys_from_pull_request, extract_pr_number
from jira_sync.triggers.context import SyncContext
from jira_sync.triggers.models import PullRequestEvent
from jira_sync.workflows.bulk import scan_commit_history
from jira_sync.workflows.models import BulkUpdateResult

logger = logging.getLogger(__name__)

REVIEW_STATUS = "Code Review"
DRAFT_STATUS = "In Development"
DEFAULT_MERGED_STATUS = "Done"


def detect_environment() -> str:
    """Where we are running: "github" (Actions), "ci" (other CI) or "local"."""
    if os.getenv("GITHUB_ACTIONS") == "true":
        return "github"
    if os.getenv("CI"):
        return "ci"
    return "local"


async def handle_pull_request_event(
    event: PullRequestEvent,
    sync: SyncContext,
) -> Optional[BulkUpdateResult]:
    """
    Move the issues named in a PR according to what happened to it.

    Returns None when the event does not call for an update.
    """
    issue_keys = extract_issue_keys_from_pull_request(event)
    if not issue_keys:
        logger.info(f"No Jira issue keys found in PR #{event.number}")
        return None

    logger.info(f"PR #{event.number} {event.action}: found issues {', '.join(issue_keys)}")

    target_status = None
    transition_fields: dict = {}
    custom_fields: dict = {}

    if event.action in ("opened", "reopened", "ready_for_review"):
        target_status = REVIEW_STATUS
    elif event.action == "converted_to_draft":
        target_status = DRAFT_STATUS
    elif event.action == "synchronize":
        if not event.draft:
            target_status = REVIEW_STATUS
    elif event.action == "closed":
        if not event.merged:
            logger.info(f"PR #{event.number} closed without merging, skipping status update")
            return None
        policy = get_branch_policy(event.base_ref or "")
        if policy is not None:
            target_status = policy.status
            transition_fields = policy.transition_fields
            custom_fields = policy.custom_fields
        else:
            target_status = DEFAULT_MERGED_STATUS
            transition_fields = to_field_map({"resolution": "Done"})

    if target_status is None:
        logger.info(f"No status update for PR action: {event.action}")
        return None

    return await sync.bulk.update_many(
        issue_keys,
        target_status,
        sync.settings.excluded_states,
        transition_fields,
        custom_fields,
    )


async def handle_push_event(branch: str, sync: SyncContext) -> Optional[BulkUpdateResult]:
    """
    Apply the branch policy after a push (deployment) to branch.

    Production and staging branches scan their commit history for issues
    not yet in the policy status. Production and other policy branches
    also update issues that reference the PR merged by the latest commit;
    staging falls back to that update only when its history scan fails.
    """
    policy = get_branch_policy(branch)
    if policy is None:
        logger.info(f"No status mapping for branch: {branch}")
        return None
    if sync.github is None:
        raise ConfigurationError("GitHub credentials are required to process push events", ["GITHUB_TOKEN"])

    github = sync.github
    settings = sync.settings
    result = BulkUpdateResult()

    if branch in PRODUCTION_BRANCHES or branch in STAGING_BRANCHES:
        logger.info(f"Deployment to {branch}: scanning commit history")
        try:
            scan = await scan_commit_history(
                github,
                sync.jira,
                branch,
                policy.status,
                threshold=settings.consecutive_done_threshold,
                max_commits=settings.max_commits,
                per_page=settings.commit_page_size,
            )
            if scan.issue_keys:
                logger.info(f"Found {len(scan.issue_keys)} issue(s) in {branch} commit history")
                result = result.merge(await sync.bulk.update_many(
                    scan.issue_keys,
                    policy.status,
                    settings.excluded_states,
                    policy.transition_fields,
                    policy.custom_fields,
                ))
            else:
                logger.info(f"No Jira issues to update in {branch} commit history")
        except SyncError as e:
            # The merged PR's issues are still updated below
            logger.error(f"Error processing {branch} commit history: {e}")
        else:
            if branch in STAGING_BRANCHES:
                return result

    latest = await github.get_latest_commit(branch)
    pr_number = extract_pr_number(latest.message)
    if pr_number:
        pr_url = construct_pr_url(github.repo, pr_number)
        logger.info(f'Updating issues mentioning PR {pr_url} to status "{policy.status}"')
        result = result.merge(await sync.bulk.update_by_pr(
            pr_url,
            policy.status,
            settings.excluded_states,
            policy.transition_fields,
            policy.custom_fields,
        ))
    return result
