import logging
from typing import Any

import httpx
from pydantic import BaseModel

from jira_sync.config import JiraSettings
from jira_sync.errors import JiraApiError, ValidationError
from jira_sync.fields import resolve_fields
from jira_sync.issue_keys import validate_issue_key
from jira_sync.tools.http import RETRY_BASE_DELAY, request_with_retry

logger = logging.getLogger(__name__)


class JiraIssue(BaseModel):
    """Represents a Jira issue returned by a search."""
    key: str
    summary: str | None = None
    status: str | None = None


class IssueRef(BaseModel):
    """An issue's live status, fetched right before it is acted on."""
    key: str
    status: str
    project_key: str | None = None


class AvailableTransition(BaseModel):
    """A transition the issue can take right now, according to Jira."""
    id: str
    name: str
    to_name: str


class TransitionField(BaseModel):
    """A field on a transition's screen."""
    field_id: str
    name: str | None = None
    required: bool = False
    allowed_values: list[dict[str, Any]] = []


class FieldOption(BaseModel):
    """An option of a select-like field (resolution, priority, ...)."""
    id: str
    name: str


def _project_endpoint(suffix: str):
    def endpoint(project_key: str | None) -> str:
        if not project_key:
            raise ValidationError(f"A project key is required to list {suffix}")
        return f"/project/{project_key}/{suffix}"
    return endpoint


_FIELD_OPTION_ENDPOINTS = {
    "resolution": lambda project_key: "/resolution",
    "priority": lambda project_key: "/priority",
    "issuetype": lambda project_key: "/issuetype",
    "component": _project_endpoint("components"),
    "version": _project_endpoint("versions"),
}


class JiraClient:
    """
    Jira Cloud REST v3 client.

    Every call goes through request(), which authenticates with the account
    email + API token and retries rate limits and server errors.
    """

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        project_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/rest/api/3"
        self.email = email
        self.project_key = project_key
        self._auth = httpx.BasicAuth(email, api_token)
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        self._transport = transport
        self.retry_base_delay = retry_base_delay

    @classmethod
    def from_settings(cls, settings: JiraSettings, **kwargs: Any) -> "JiraClient":
        return cls(
            base_url=settings.base_url,
            email=settings.email,
            api_token=settings.api_token,
            project_key=settings.project_key,
            **kwargs,
        )

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an authenticated request to the Jira API."""
        return await request_with_retry(
            method,
            f"{self.api_url}{endpoint}",
            endpoint=endpoint,
            error_cls=JiraApiError,
            auth=self._auth,
            headers={**self._headers, **(headers or {})},
            json=json,
            params=params,
            transport=self._transport,
            retry_base_delay=self.retry_base_delay,
        )

    async def _get_json(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        response = await self.request(endpoint, params=params)
        return response.json()

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    async def get_issue(self, issue_key: str, fields: list[str] | None = None) -> dict:
        validate_issue_key(issue_key)
        params = {"fields": ",".join(fields)} if fields else None
        return await self._get_json(f"/issue/{issue_key}", params=params)

    async def get_issue_status(self, issue_key: str) -> IssueRef:
        """Fetch the issue's current status and project. Never cached."""
        issue = await self.get_issue(issue_key, fields=["status", "project"])
        fields = issue.get("fields") or {}
        return IssueRef(
            key=issue.get("key", issue_key),
            status=(fields.get("status") or {}).get("name", ""),
            project_key=(fields.get("project") or {}).get("key"),
        )

    async def get_custom_field(self, issue_key: str, field_id: str) -> Any:
        issue = await self.get_issue(issue_key, fields=[field_id])
        return (issue.get("fields") or {}).get(field_id)

    async def update_issue_fields(self, issue_key: str, fields: dict[str, Any]) -> None:
        """Overwrite fields on an issue. Values may be plain or typed field values."""
        validate_issue_key(issue_key)
        await self.request(
            f"/issue/{issue_key}",
            method="PUT",
            json={"fields": resolve_fields(fields)},
        )
        logger.info(f"Updated fields {', '.join(fields)} on {issue_key}")

    async def update_custom_field(self, issue_key: str, field_id: str, value: Any) -> None:
        await self.update_issue_fields(issue_key, {field_id: value})

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def get_transitions(self, issue_key: str) -> list[AvailableTransition]:
        """Transitions currently available on the issue (authoritative)."""
        validate_issue_key(issue_key)
        data = await self._get_json(f"/issue/{issue_key}/transitions")
        return [
            AvailableTransition(
                id=str(t["id"]),
                name=t.get("name", ""),
                to_name=(t.get("to") or {}).get("name", ""),
            )
            for t in data.get("transitions", [])
        ]

    async def get_transition_details(self, issue_key: str, transition_id: str) -> dict[str, TransitionField]:
        """Field requirements of one transition, keyed by field id."""
        validate_issue_key(issue_key)
        data = await self._get_json(
            f"/issue/{issue_key}/transitions",
            params={"transitionId": transition_id, "expand": "transitions.fields"},
        )
        transitions = data.get("transitions", [])
        detail = next((t for t in transitions if str(t.get("id")) == str(transition_id)), None)
        if detail is None:
            detail = transitions[0] if transitions else {}
        return {
            field_id: TransitionField(
                field_id=field_id,
                name=meta.get("name"),
                required=bool(meta.get("required", False)),
                allowed_values=meta.get("allowedValues") or [],
            )
            for field_id, meta in (detail.get("fields") or {}).items()
        }

    async def transition_issue(
        self,
        issue_key: str,
        transition_id: str,
        fields: dict[str, Any] | None = None,
    ) -> None:
        """Submit a single transition."""
        validate_issue_key(issue_key)
        body: dict[str, Any] = {"transition": {"id": transition_id}}
        if fields:
            body["fields"] = resolve_fields(fields)
        await self.request(f"/issue/{issue_key}/transitions", method="POST", json=body)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_issues(
        self,
        jql: str,
        fields: list[str] | None = None,
        max_results: int = 50,
    ) -> list[JiraIssue]:
        """Run a JQL search."""
        response = await self.request(
            "/search/jql",
            method="POST",
            json={
                "jql": jql,
                "fields": fields or ["key", "summary", "status"],
                "maxResults": max_results,
            },
        )
        result = []
        for issue in response.json().get("issues", []):
            issue_key = issue.get("key")
            if not issue_key:
                continue
            fields_data = issue.get("fields") or {}
            status = fields_data.get("status")
            result.append(JiraIssue(
                key=issue_key,
                summary=fields_data.get("summary"),
                status=status.get("name") if isinstance(status, dict) else status,
            ))
        return result

    def _scoped_jql(self, jql: str) -> str:
        if self.project_key:
            return f"project = {self.project_key} AND {jql}"
        return jql

    async def find_by_status(self, status: str, max_results: int = 100) -> list[JiraIssue]:
        return await self.search_issues(
            self._scoped_jql(f'status = "{status}"'),
            max_results=max_results,
        )

    async def find_by_text(self, text: str, max_results: int = 50) -> list[JiraIssue]:
        """Issues whose text (description, comments) mentions the given string."""
        return await self.search_issues(
            self._scoped_jql(f'text ~ "{text}"'),
            fields=["key", "summary", "status", "description"],
            max_results=max_results,
        )

    # ------------------------------------------------------------------
    # Field options
    # ------------------------------------------------------------------

    async def get_field_options(self, field: str, project_key: str | None = None) -> list[FieldOption]:
        """Options for resolution, priority, issuetype, component or version."""
        endpoint_for = _FIELD_OPTION_ENDPOINTS.get(field)
        if endpoint_for is None:
            raise ValidationError(
                f"Unsupported field for options: {field!r}. "
                f"Supported: {', '.join(_FIELD_OPTION_ENDPOINTS)}"
            )
        data = await self._get_json(endpoint_for(project_key or self.project_key))
        if isinstance(data, dict):
            data = data.get("values", [])
        return [FieldOption(id=str(option["id"]), name=option.get("name", "")) for option in data]

    # ------------------------------------------------------------------
    # Projects, schemes, workflows
    # ------------------------------------------------------------------

    async def get_project(self, project_key: str) -> dict:
        return await self._get_json(f"/project/{project_key}")

    async def get_workflow_scheme(self, project_id: str) -> dict | None:
        """The workflow scheme assigned to a project, or None."""
        data = await self._get_json("/workflowscheme/project", params={"projectId": project_id})
        values = data.get("values", [])
        if not values:
            return None
        return values[0].get("workflowScheme") or values[0]

    async def get_workflow(self, workflow_name: str) -> list[dict]:
        """Workflows matching a name, with statuses and transitions expanded."""
        data = await self._get_json(
            "/workflow/search",
            params={"workflowName": workflow_name, "expand": "statuses,transitions"},
        )
        return data.get("values", [])

    async def get_all_workflows(self) -> list[dict]:
        data = await self._get_json("/workflow/search")
        return data.get("values", [])

    async def get_all_statuses(self) -> list[dict]:
        return await self._get_json("/status")
