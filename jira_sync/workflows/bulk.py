"""
Bulk updates across many issues.

Every issue is transitioned independently and concurrently; one issue
failing never stops the others. Commit-history scanning lives here too,
since its only purpose is to produce the key list for a bulk update.
"""

import asyncio
import logging
from typing import Any, Iterable, Mapping

from jira_sync.config import DEFAULT_EXCLUDED_STATES
from jira_sync.errors import SyncError
from jira_sync.issue_keys import extract_issue_keys
from jira_sync.tools.github import GitHubClient
from jira_sync.tools.jira import JiraClient
from jira_sync.workflows.executor import TransitionExecutor
from jira_sync.workflows.models import BulkUpdateResult, CommitScanResult, IssueFailure

logger = logging.getLogger(__name__)

# Only this many failure messages are kept on a result; counts stay exact
MAX_REPORTED_ERRORS = 50

STATUS_SEARCH_LIMIT = 100
PR_SEARCH_LIMIT = 50

CONSECUTIVE_DONE_THRESHOLD = 5
MAX_COMMITS_TO_CHECK = 1000
COMMIT_PAGE_SIZE = 100
PAGE_DELAY = 1.0
ISSUE_DELAY = 0.15


class BulkUpdater:
    """Applies one target status (plus fields) to a set of issues."""

    def __init__(self, executor: TransitionExecutor):
        self.executor = executor

    @property
    def jira(self) -> JiraClient:
        return self.executor.jira

    async def update_many(
        self,
        issue_keys: Iterable[str],
        target_status: str,
        exclude_states: Iterable[str] = DEFAULT_EXCLUDED_STATES,
        transition_fields: Mapping[str, Any] | None = None,
        custom_fields: Mapping[str, Any] | None = None,
    ) -> BulkUpdateResult:
        """
        Transition every issue to target_status.

        Duplicate keys are processed once. All issues are attempted even if
        some fail; SyncError failures are reported on the result. Anything
        else is a bug and is re-raised once every issue has settled.
        """
        keys = list(dict.fromkeys(issue_keys))
        if not keys:
            logger.info("No issue keys provided for update")
            return BulkUpdateResult()

        exclude_states = tuple(exclude_states)
        logger.info(f'Updating {len(keys)} issue(s) to status "{target_status}"')

        outcomes = await asyncio.gather(
            *(
                self.executor.update_issue_with_custom_fields(
                    key, target_status, exclude_states, transition_fields, custom_fields
                )
                for key in keys
            ),
            return_exceptions=True,
        )

        result = BulkUpdateResult()
        unexpected: BaseException | None = None
        for key, outcome in zip(keys, outcomes):
            if isinstance(outcome, SyncError):
                result.failure_count += 1
                logger.error(f"Failed to update {key}: {outcome}")
                if len(result.errors) < MAX_REPORTED_ERRORS:
                    result.errors.append(IssueFailure(issue_key=key, message=str(outcome)))
            elif isinstance(outcome, BaseException):
                result.failure_count += 1
                logger.error(f"Unexpected error updating {key}: {outcome!r}")
                if unexpected is None:
                    unexpected = outcome
            else:
                result.success_count += 1

        logger.info(f"Update summary: {result.success_count} successful, {result.failure_count} failed")
        if unexpected is not None:
            raise unexpected
        return result

    async def update_by_status(
        self,
        current_status: str,
        new_status: str,
        exclude_states: Iterable[str] = DEFAULT_EXCLUDED_STATES,
        transition_fields: Mapping[str, Any] | None = None,
        custom_fields: Mapping[str, Any] | None = None,
    ) -> BulkUpdateResult:
        """Move every issue currently in current_status to new_status."""
        issues = await self.jira.find_by_status(current_status, max_results=STATUS_SEARCH_LIMIT)
        logger.info(f'Found {len(issues)} issue(s) in status "{current_status}"')
        return await self.update_many(
            [issue.key for issue in issues],
            new_status,
            exclude_states,
            transition_fields,
            custom_fields,
        )

    async def update_by_pr(
        self,
        pr_url: str,
        new_status: str,
        exclude_states: Iterable[str] = DEFAULT_EXCLUDED_STATES,
        transition_fields: Mapping[str, Any] | None = None,
        custom_fields: Mapping[str, Any] | None = None,
    ) -> BulkUpdateResult:
        """Move every issue whose text mentions pr_url to new_status."""
        issues = await self.jira.find_by_text(pr_url, max_results=PR_SEARCH_LIMIT)
        logger.info(f"Found {len(issues)} issue(s) mentioning PR {pr_url}")
        return await self.update_many(
            [issue.key for issue in issues],
            new_status,
            exclude_states,
            transition_fields,
            custom_fields,
        )


async def scan_commit_history(
    github: GitHubClient,
    jira: JiraClient,
    branch: str,
    target_status: str,
    *,
    threshold: int = CONSECUTIVE_DONE_THRESHOLD,
    max_commits: int = MAX_COMMITS_TO_CHECK,
    per_page: int = COMMIT_PAGE_SIZE,
    page_delay: float = PAGE_DELAY,
    issue_delay: float = ISSUE_DELAY,
) -> CommitScanResult:
    """
    Walk a branch's history newest-first and collect issues that still
    need to reach target_status.

    Each issue key is checked once per scan. Seeing threshold issues in a
    row already in target_status means the rest of the history was handled
    by an earlier deployment, so the scan stops there. An issue that cannot
    be fetched is skipped without touching that count.
    """
    result = CommitScanResult()
    seen: set[str] = set()
    consecutive = 0
    page = 1

    while result.commits_checked < max_commits:
        commits = await github.list_commits(branch, page=page, per_page=per_page)
        if not commits:
            break
        logger.info(f"Scanning {len(commits)} commit(s) from page {page} of {branch}")

        for commit in commits:
            if result.commits_checked >= max_commits:
                break
            result.commits_checked += 1

            for key in extract_issue_keys(commit.message):
                if key in seen:
                    continue
                seen.add(key)
                if result.issues_checked:
                    await asyncio.sleep(issue_delay)
                result.issues_checked += 1

                try:
                    issue = await jira.get_issue_status(key)
                except SyncError as e:
                    logger.warning(f"Skipping {key}: {e}")
                    continue

                if issue.status == target_status:
                    consecutive += 1
                    logger.debug(f'{key} already in "{target_status}" ({consecutive}/{threshold})')
                    if consecutive >= threshold:
                        logger.info(
                            f'Found {consecutive} consecutive issues in "{target_status}"; stopping scan'
                        )
                        result.consecutive_done = consecutive
                        result.stopped_early = True
                        return result
                else:
                    consecutive = 0
                    result.issue_keys.append(key)

        if len(commits) < per_page or result.commits_checked >= max_commits:
            break
        page += 1
        await asyncio.sleep(page_delay)

    result.consecutive_done = consecutive
    logger.info(
        f"Commit scan of {branch}: {result.commits_checked} commits, "
        f"{result.issues_checked} issues checked, {len(result.issue_keys)} to update"
    )
    return result
