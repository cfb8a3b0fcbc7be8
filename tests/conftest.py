"""Shared test fixtures for jira-sync tests.

Provides in-memory Jira and GitHub backends served through
httpx.MockTransport, so the real clients run end to end without a network.
"""

import json
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from jira_sync.config import SyncSettings
from jira_sync.tools.github import GitHubClient
from jira_sync.tools.jira import JiraClient
from jira_sync.triggers.context import SyncContext

JIRA_URL = "https://example.atlassian.net"
WORKFLOW_NAME = "DEX Software Workflow"

RESOLUTIONS = [
    {"id": "10001", "name": "Won't Do"},
    {"id": "10000", "name": "Done"},
]
PRIORITIES = [
    {"id": "1", "name": "Highest"},
    {"id": "3", "name": "Medium"},
]


def _status(status_id: str, name: str, category: str = "In Progress") -> dict:
    return {"id": status_id, "name": name, "statusCategory": {"name": category}}


def _transition(transition_id: str, name: str, from_ids: list[str], to_id: str, **extra: Any) -> dict:
    return {
        "id": transition_id,
        "name": name,
        "from": from_ids,
        "to": to_id,
        "type": "global" if not from_ids else "directed",
        **extra,
    }


def make_workflow() -> dict:
    """A realistic development workflow, in Jira's workflow search format."""
    return {
        "id": {"name": WORKFLOW_NAME},
        "statuses": [
            _status("1", "To Do", "To Do"),
            _status("2", "In Development"),
            _status("3", "Code Review"),
            _status("4", "Deployed to Dev"),
            _status("5", "Deployed to Staging"),
            _status("6", "Done", "Done"),
            _status("7", "Blocked"),
            _status("8", "Rejected", "Done"),
        ],
        "transitions": [
            {"id": "1", "name": "Create", "from": [], "to": "1", "type": "initial"},
            _transition("11", "Start Development", ["1"], "2"),
            _transition("21", "Submit for Review", ["2"], "3"),
            _transition("22", "Request Changes", ["3"], "2"),
            _transition("31", "Deploy to Dev", ["3"], "4"),
            _transition("41", "Deploy to Staging", ["3", "4"], "5"),
            _transition("51", "Release", ["5"], "6", screen={"id": "10100"}),
            _transition("61", "Reject", ["2", "3"], "8"),
            _transition("71", "Block", [], "7"),
            _transition("72", "Unblock", ["7"], "2"),
        ],
    }


class FakeJira:
    """In-memory Jira: one project, one workflow, a handful of issues.

    Transitions really move issues, so multi-step paths can be observed.
    """

    def __init__(self, workflow: dict, issues: dict[str, str], project_key: str = "DEX"):
        self.workflow = workflow
        self.issues = dict(issues)
        self.project_key = project_key
        self.requests: list[httpx.Request] = []
        self.screens: dict[str, dict[str, Any]] = {}
        self.failing_issues: dict[str, int] = {}
        self.text_matches: dict[str, list[str]] = {}
        self.transition_posts: list[tuple[str, dict]] = []
        self.field_updates: list[tuple[str, dict]] = []
        self.scheme_values: list[dict] = [
            {"projectIds": ["10000"], "workflowScheme": {"id": 1, "defaultWorkflow": WORKFLOW_NAME}},
        ]

    # -- helpers --------------------------------------------------------

    def _status_by_name(self, name: str) -> dict:
        return next(s for s in self.workflow["statuses"] if s["name"] == name)

    def _status_by_id(self, status_id: str) -> dict:
        return next(s for s in self.workflow["statuses"] if s["id"] == status_id)

    def available_transitions(self, issue_key: str) -> list[dict]:
        current = self._status_by_name(self.issues[issue_key])["id"]
        result = []
        for t in self.workflow["transitions"]:
            if t.get("type") == "initial" or t["to"] == current:
                continue
            if t["from"] and current not in t["from"]:
                continue
            result.append({"id": t["id"], "name": t["name"], "to": self._status_by_id(t["to"])})
        return result

    def count(self, method: str, path_suffix: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and r.url.path.endswith(path_suffix)
        )

    # -- request routing ------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/rest/api/3")
        params = request.url.params
        method = request.method

        if path == "/workflow/search":
            name = params.get("workflowName")
            values = [self.workflow] if name in (None, WORKFLOW_NAME) else []
            return httpx.Response(200, json={"values": values})
        if path == f"/project/{self.project_key}":
            return httpx.Response(200, json={"id": "10000", "key": self.project_key})
        if path == "/workflowscheme/project":
            return httpx.Response(200, json={"values": self.scheme_values})
        if path == "/resolution":
            return httpx.Response(200, json=RESOLUTIONS)
        if path == "/priority":
            return httpx.Response(200, json=PRIORITIES)
        if path == "/search/jql" and method == "POST":
            return self._search(json.loads(request.content))
        if path.startswith("/issue/"):
            return self._issue(request, path, params)
        return httpx.Response(404, json={"errorMessages": [f"No route for {path}"]})

    def _issue(self, request: httpx.Request, path: str, params: httpx.QueryParams) -> httpx.Response:
        parts = path.split("/")
        issue_key = parts[2]
        if issue_key in self.failing_issues:
            return httpx.Response(self.failing_issues[issue_key], json={"errorMessages": ["Backend failure"]})
        if issue_key not in self.issues:
            return httpx.Response(404, json={"errorMessages": ["Issue does not exist or you do not have permission to see it."]})

        if len(parts) == 3:
            if request.method == "PUT":
                body = json.loads(request.content)
                self.field_updates.append((issue_key, body["fields"]))
                return httpx.Response(204)
            return httpx.Response(200, json={
                "key": issue_key,
                "fields": {
                    "status": {"name": self.issues[issue_key]},
                    "project": {"key": self.project_key},
                },
            })

        if request.method == "GET":
            transitions = self.available_transitions(issue_key)
            transition_id = params.get("transitionId")
            if transition_id:
                transitions = [
                    {**t, "fields": self.screens.get(t["id"], {})}
                    for t in transitions if t["id"] == transition_id
                ]
            return httpx.Response(200, json={"transitions": transitions})

        body = json.loads(request.content)
        transition_id = body["transition"]["id"]
        match = next((t for t in self.available_transitions(issue_key) if t["id"] == transition_id), None)
        if match is None:
            return httpx.Response(400, json={"errorMessages": ["Transition is not valid"]})
        sent = body.get("fields", {})
        for field_id, meta in self.screens.get(transition_id, {}).items():
            if meta.get("required") and field_id not in sent:
                return httpx.Response(400, json={"errors": {field_id: "Field is required"}})
        self.transition_posts.append((issue_key, body))
        self.issues[issue_key] = match["to"]["name"]
        return httpx.Response(204)

    def _search(self, body: dict) -> httpx.Response:
        jql = body["jql"]
        keys: list[str] = []
        if 'status = "' in jql:
            status = jql.split('status = "', 1)[1].split('"', 1)[0]
            keys = [key for key, current in self.issues.items() if current == status]
        elif 'text ~ "' in jql:
            text = jql.split('text ~ "', 1)[1].split('"', 1)[0]
            keys = self.text_matches.get(text, [])
        keys = keys[: body.get("maxResults", 50)]
        return httpx.Response(200, json={"issues": [
            {"key": key, "fields": {"summary": f"Issue {key}", "status": {"name": self.issues.get(key)}}}
            for key in keys
        ]})


class FakeGitHub:
    """Serves a branch history, newest commit first."""

    def __init__(self, owner: str = "acme", repo: str = "api"):
        self.owner = owner
        self.repo = repo
        self.commits: dict[str, list[str]] = {}
        self.requests: list[httpx.Request] = []
        self.list_error: int | None = None

    def _commit(self, branch: str, index: int, message: str) -> dict:
        return {
            "sha": f"{branch}-{index:04d}",
            "commit": {"message": message, "author": {"name": "Dev", "date": "2024-01-01T00:00:00Z"}},
            "html_url": f"https://github.com/{self.owner}/{self.repo}/commit/{branch}-{index:04d}",
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        prefix = f"/repos/{self.owner}/{self.repo}/commits"
        path = request.url.path
        if path == prefix:
            if self.list_error:
                return httpx.Response(self.list_error, json={"message": "Server Error"})
            branch = request.url.params["sha"]
            page = int(request.url.params.get("page", 1))
            per_page = int(request.url.params.get("per_page", 30))
            messages = self.commits.get(branch, [])
            start = (page - 1) * per_page
            return httpx.Response(200, json=[
                self._commit(branch, start + i, message)
                for i, message in enumerate(messages[start:start + per_page])
            ])
        if path.startswith(prefix + "/"):
            branch = path[len(prefix) + 1:]
            messages = self.commits.get(branch)
            if not messages:
                return httpx.Response(404, json={"message": "No commit found"})
            return httpx.Response(200, json=self._commit(branch, 0, messages[0]))
        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def no_sleep():
    """Make every asyncio.sleep return immediately; yields the mock."""
    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def workflow() -> dict:
    return make_workflow()


@pytest.fixture
def fake_jira(workflow) -> FakeJira:
    return FakeJira(workflow, {
        "DEX-1": "To Do",
        "DEX-2": "Code Review",
        "DEX-3": "Deployed to Staging",
        "DEX-4": "Done",
    })


@pytest.fixture
def jira(fake_jira) -> JiraClient:
    return JiraClient(
        base_url=JIRA_URL,
        email="bot@example.com",
        api_token="token",
        transport=httpx.MockTransport(fake_jira.handler),
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def github(fake_github) -> GitHubClient:
    return GitHubClient(
        token="gh-token",
        owner=fake_github.owner,
        repo=fake_github.repo,
        transport=httpx.MockTransport(fake_github.handler),
    )


@pytest.fixture
def sync(jira, github) -> SyncContext:
    return SyncContext(jira, github, SyncSettings())
