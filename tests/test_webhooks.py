"""Tests for pull request and push event handling."""

from unittest.mock import patch

import pytest

from jira_sync.config import SyncSettings
from jira_sync.errors import ConfigurationError
from jira_sync.triggers import (
    PullRequestEvent,
    PushEvent,
    SyncContext,
    detect_environment,
    handle_pull_request_event,
    handle_push_event,
)


def pr_event(action: str, title: str = "DEX-1: Add login", **pr_fields) -> PullRequestEvent:
    return PullRequestEvent.from_payload({
        "action": action,
        "pull_request": {
            "number": 12,
            "title": title,
            "body": pr_fields.pop("body", None),
            "draft": pr_fields.pop("draft", False),
            "merged": pr_fields.pop("merged", False),
            "base": {"ref": pr_fields.pop("base", "dev")},
            "html_url": "https://github.com/acme/api/pull/12",
        },
    })


def test_pull_request_event_from_payload():
    event = pr_event("closed", merged=True, base="staging", body="Fixes DEX-2")

    assert event.number == 12
    assert event.merged
    assert event.base_ref == "staging"
    assert event.body == "Fixes DEX-2"


def test_push_event_branch():
    event = PushEvent.from_payload({"ref": "refs/heads/staging", "head_commit": {"message": "DEX-1"}})

    assert event.branch == "staging"
    assert event.head_commit_message == "DEX-1"


@pytest.fixture(autouse=True)
def _no_sleep(no_sleep):
    return no_sleep


@pytest.mark.asyncio
@pytest.mark.parametrize("action", ["opened", "reopened", "ready_for_review"])
async def test_review_actions_move_to_code_review(action, sync, fake_jira):
    result = await handle_pull_request_event(pr_event(action), sync)

    assert result.success_count == 1
    assert fake_jira.issues["DEX-1"] == "Code Review"


@pytest.mark.asyncio
async def test_keys_from_body_are_included(sync, fake_jira):
    fake_jira.issues["DEX-5"] = "In Development"

    result = await handle_pull_request_event(pr_event("opened", body="Also DEX-5"), sync)

    assert result.success_count == 2
    assert fake_jira.issues["DEX-5"] == "Code Review"


@pytest.mark.asyncio
async def test_converted_to_draft(sync, fake_jira):
    await handle_pull_request_event(pr_event("converted_to_draft", title="DEX-2 wip"), sync)

    assert fake_jira.issues["DEX-2"] == "In Development"


@pytest.mark.asyncio
async def test_synchronize_draft_is_ignored(sync, fake_jira):
    assert await handle_pull_request_event(pr_event("synchronize", draft=True), sync) is None
    assert fake_jira.requests == []


@pytest.mark.asyncio
async def test_synchronize_ready_pr(sync, fake_jira):
    await handle_pull_request_event(pr_event("synchronize"), sync)

    assert fake_jira.issues["DEX-1"] == "Code Review"


@pytest.mark.asyncio
async def test_closed_without_merge_is_ignored(sync, fake_jira):
    assert await handle_pull_request_event(pr_event("closed"), sync) is None
    assert fake_jira.requests == []


@pytest.mark.asyncio
async def test_other_actions_are_ignored(sync, fake_jira):
    assert await handle_pull_request_event(pr_event("labeled"), sync) is None
    assert fake_jira.requests == []


@pytest.mark.asyncio
async def test_pr_without_keys_is_ignored(sync, fake_jira):
    assert await handle_pull_request_event(pr_event("opened", title="Bump deps"), sync) is None
    assert fake_jira.requests == []


@pytest.mark.asyncio
async def test_merge_into_policy_branch(sync, fake_jira):
    event = pr_event("closed", title="DEX-2 feature", merged=True, base="staging")

    result = await handle_pull_request_event(event, sync)

    assert result.success_count == 1
    assert fake_jira.issues["DEX-2"] == "Deployed to Staging"
    assert fake_jira.field_updates[0][1]["customfield_11473"] == {"id": "11942"}


@pytest.mark.asyncio
async def test_merge_into_other_branch_resolves_done(sync, fake_jira):
    fake_jira.screens["51"] = {
        "resolution": {"required": True, "allowedValues": [{"id": "10001", "name": "Won't Do"}]},
    }
    event = pr_event("closed", title="DEX-3 hotfix", merged=True, base="release/1.2")

    await handle_pull_request_event(event, sync)

    assert fake_jira.issues["DEX-3"] == "Done"
    # the caller's resolution (looked up by name) beats the auto-filled default
    assert fake_jira.transition_posts == [
        ("DEX-3", {"transition": {"id": "51"}, "fields": {"resolution": {"id": "10000"}}}),
    ]
    assert fake_jira.field_updates == []


@pytest.mark.asyncio
async def test_push_to_untracked_branch(sync, fake_github):
    assert await handle_push_event("feature/login", sync) is None
    assert fake_github.requests == []


@pytest.mark.asyncio
async def test_push_requires_github(jira):
    sync = SyncContext(jira, None, SyncSettings())

    with pytest.raises(ConfigurationError):
        await handle_push_event("main", sync)


@pytest.mark.asyncio
async def test_push_to_staging_updates_history(sync, fake_github, fake_jira):
    fake_github.commits["staging"] = ["Merge pull request #12 from acme/DEX-1-login", "DEX-2 fix"]

    result = await handle_push_event("staging", sync)

    assert result.success_count == 2
    assert fake_jira.issues["DEX-1"] == "Deployed to Staging"
    assert fake_jira.issues["DEX-2"] == "Deployed to Staging"
    assert sorted(key for key, _ in fake_jira.field_updates) == ["DEX-1", "DEX-2"]
    # staging does not look up the merged PR
    assert all(not r.url.path.endswith("/commits/staging") for r in fake_github.requests)


@pytest.mark.asyncio
async def test_push_to_main_updates_history_and_pr(sync, fake_github, fake_jira):
    fake_github.commits["main"] = ["Merge pull request #12 from acme/DEX-2-login", "DEX-3 older"]
    fake_jira.text_matches["api/pull/12"] = ["DEX-1"]

    result = await handle_push_event("main", sync)

    assert result.success_count == 3
    assert result.failure_count == 0
    for key in ("DEX-1", "DEX-2", "DEX-3"):
        assert fake_jira.issues[key] == "Done"
    assert {fields["customfield_11473"]["id"] for _, fields in fake_jira.field_updates} == {"11943"}


@pytest.mark.asyncio
async def test_push_to_dev_updates_pr_issues(sync, fake_github, fake_jira):
    fake_github.commits["dev"] = ["Merge pull request #7 from acme/feature"]
    fake_jira.text_matches["api/pull/7"] = ["DEX-2"]

    result = await handle_push_event("dev", sync)

    assert result.success_count == 1
    assert fake_jira.issues["DEX-2"] == "Deployed to Dev"
    assert fake_jira.field_updates == []
    assert [r.url.path for r in fake_github.requests] == ["/repos/acme/api/commits/dev"]


@pytest.mark.asyncio
async def test_push_to_main_history_error_still_updates_pr(sync, fake_github, fake_jira):
    fake_github.commits["main"] = ["Merge pull request #12 from acme/feature"]
    fake_github.list_error = 500
    fake_jira.text_matches["api/pull/12"] = ["DEX-2"]

    result = await handle_push_event("main", sync)

    assert result.success_count == 1
    assert fake_jira.issues["DEX-2"] == "Done"
    # three attempts at the history listing before giving up
    assert sum(r.url.path == "/repos/acme/api/commits" for r in fake_github.requests) == 3


@pytest.mark.asyncio
async def test_push_to_staging_history_error_falls_back_to_pr(sync, fake_github, fake_jira):
    fake_github.commits["staging"] = ["Merge pull request #12 from acme/feature"]
    fake_github.list_error = 503
    fake_jira.text_matches["api/pull/12"] = ["DEX-1"]

    result = await handle_push_event("staging", sync)

    assert result.success_count == 1
    assert fake_jira.issues["DEX-1"] == "Deployed to Staging"
    assert fake_github.requests[-1].url.path == "/repos/acme/api/commits/staging"


@pytest.mark.asyncio
async def test_push_without_pr_reference(sync, fake_github, fake_jira):
    fake_github.commits["dev"] = ["direct push"]

    result = await handle_push_event("dev", sync)

    assert result.total == 0
    assert fake_jira.requests == []


@patch.dict("os.environ", {"GITHUB_ACTIONS": "true", "CI": "true"}, clear=True)
def test_detect_github_actions():
    assert detect_environment() == "github"


@patch.dict("os.environ", {"CI": "1"}, clear=True)
def test_detect_other_ci():
    assert detect_environment() == "ci"


@patch.dict("os.environ", {}, clear=True)
def test_detect_local():
    assert detect_environment() == "local"
