"""
Transition executor: moves one issue to a target status.

The planned path comes from the cached workflow graph, but every step is
re-checked against the transitions Jira offers on the live issue right
before it is submitted. Required screen fields are filled with defaults
where a sensible one exists; caller-supplied fields go on the final step
only. Deployment metadata is written by a separate update call after the
transition, never inside a transition payload.
"""

import asyncio
import logging
from typing import Any, Iterable, Mapping

from jira_sync.config import DEFAULT_EXCLUDED_STATES
from jira_sync.errors import TransitionError, ValidationError
from jira_sync.fields import FieldValue, JsonValue, OptionRef, StringValue, to_field_map
from jira_sync.issue_keys import validate_issue_key
from jira_sync.tools.jira import AvailableTransition, IssueRef, JiraClient, TransitionField
from jira_sync.workflows.graph import WorkflowGraphBuilder, WorkflowGraphCache
from jira_sync.workflows.models import TransitionPath, TransitionStep
from jira_sync.workflows.paths import shortest_path

logger = logging.getLogger(__name__)

# Pause between consecutive steps so Jira finishes applying the previous one
DEFAULT_STEP_DELAY = 0.5

# Preferred option per auto-populated field; first option is the fallback
FIELD_DEFAULTS = {
    "resolution": "Done",
    "priority": "Medium",
}


def _default_kind(field_id: str, field: TransitionField) -> str | None:
    if field_id in FIELD_DEFAULTS:
        return field_id
    name = (field.name or "").strip().lower()
    return name if name in FIELD_DEFAULTS else None


def _describe_available(available: list[AvailableTransition]) -> str:
    if not available:
        return "none"
    return ", ".join(f'"{t.name}" -> "{t.to_name}" ({t.id})' for t in available)


class TransitionExecutor:
    """Drives a single issue through its workflow."""

    def __init__(
        self,
        jira: JiraClient,
        cache: WorkflowGraphCache | None = None,
        step_delay: float = DEFAULT_STEP_DELAY,
    ):
        self.jira = jira
        self.graphs = WorkflowGraphBuilder(jira, cache)
        self.step_delay = step_delay

    @property
    def cache(self) -> WorkflowGraphCache:
        return self.graphs.cache

    async def plan(
        self,
        issue: IssueRef,
        target_status: str,
        exclude_states: Iterable[str] = DEFAULT_EXCLUDED_STATES,
    ) -> TransitionPath | None:
        """Shortest path for an issue whose live status is already known."""
        if not issue.project_key:
            raise TransitionError(f"Could not determine the project of {issue.key}", issue.key)
        workflow_name = await self.graphs.get_workflow_name_for_project(issue.project_key)
        graph = await self.graphs.get_workflow_graph(workflow_name)
        return shortest_path(graph, issue.status, target_status, exclude_states)

    async def transition(
        self,
        issue_key: str,
        target_status: str,
        exclude_states: Iterable[str] = DEFAULT_EXCLUDED_STATES,
        extra_fields: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Move an issue to target_status, walking intermediate statuses if needed.

        Args:
            issue_key: Issue key, e.g. "DEX-36".
            target_status: Name of the status the issue should end up in.
            exclude_states: Statuses the path may not pass through.
            extra_fields: Fields sent with the final transition only.

        Returns:
            True once the issue is in target_status (including when it already was).

        Raises:
            TransitionError: no path exists, a planned step is not available
                on the issue, or a required field cannot be filled.
            ValidationError: malformed key or status name.
        """
        validate_issue_key(issue_key)
        if not target_status:
            raise ValidationError("Target status must not be empty")

        issue = await self.jira.get_issue_status(issue_key)
        if issue.status == target_status:
            logger.info(f'{issue_key} is already in "{target_status}"')
            return True

        exclude_states = tuple(exclude_states)
        path = await self.plan(issue, target_status, exclude_states)
        if path is None:
            raise TransitionError(
                f'No transition path for {issue_key} from "{issue.status}" to "{target_status}" '
                f"(excluding {', '.join(exclude_states) or 'nothing'})",
                issue_key,
            )

        logger.info(f"Transitioning {issue_key}: {path.describe()}")
        caller_fields = to_field_map(extra_fields)
        populated: dict[str, FieldValue] = {}

        for position, step in enumerate(path.steps, start=1):
            is_final = position == len(path)
            await self._execute_step(
                issue,
                step,
                caller_fields if is_final else {},
                populated,
            )
            if not is_final:
                await asyncio.sleep(self.step_delay)

        logger.info(f'{issue_key} transitioned to "{target_status}" in {len(path)} step(s)')
        return True

    async def _execute_step(
        self,
        issue: IssueRef,
        step: TransitionStep,
        caller_fields: dict[str, FieldValue],
        populated: dict[str, FieldValue],
    ) -> None:
        available = await self.jira.get_transitions(issue.key)
        match = next((t for t in available if t.id == step.transition_id), None)
        if match is None:
            match = next(
                (
                    t for t in available
                    if t.to_name == step.to_status_name and t.name == step.transition_name
                ),
                None,
            )
        if match is None:
            raise TransitionError(
                f'Transition "{step.transition_name}" ({step.transition_id}) to '
                f'"{step.to_status_name}" is not available on {issue.key}. '
                f"Available: {_describe_available(available)}",
                issue.key,
            )

        screen = await self.jira.get_transition_details(issue.key, match.id)
        payload = await self._build_fields(issue, match, screen, caller_fields, populated)

        logger.info(
            f'{issue.key}: "{step.from_status_name}" -> "{step.to_status_name}" '
            f'via "{match.name}" ({match.id})'
        )
        await self.jira.transition_issue(issue.key, match.id, payload)

    async def _build_fields(
        self,
        issue: IssueRef,
        transition: AvailableTransition,
        screen: dict[str, TransitionField],
        caller_fields: dict[str, FieldValue],
        populated: dict[str, FieldValue],
    ) -> dict[str, FieldValue]:
        fields: dict[str, FieldValue] = {}

        for field_id, value in caller_fields.items():
            if field_id in screen:
                fields[field_id] = value
            else:
                logger.warning(
                    f'Field {field_id} is not on the screen of "{transition.name}" for {issue.key}; not sending it'
                )

        missing = []
        for field_id, field in screen.items():
            if not field.required or field_id in fields:
                continue
            if field_id in populated:
                fields[field_id] = populated[field_id]
                continue
            value = await self._default_value(field_id, field, issue.project_key)
            if value is None:
                missing.append(field.name or field_id)
                continue
            populated[field_id] = value
            fields[field_id] = value

        if missing:
            raise TransitionError(
                f'Transition "{transition.name}" on {issue.key} requires fields with no default: '
                f"{', '.join(missing)}",
                issue.key,
            )
        return fields

    async def _default_value(
        self,
        field_id: str,
        field: TransitionField,
        project_key: str | None,
    ) -> FieldValue | None:
        """Pick a default option for a required field, or None if there is none."""
        kind = _default_kind(field_id, field)
        if kind is None:
            return None

        options = [
            (str(option["id"]), option.get("name", ""))
            for option in field.allowed_values
            if "id" in option
        ]
        if not options:
            options = [
                (option.id, option.name)
                for option in await self.jira.get_field_options(kind, project_key)
            ]
        if not options:
            return None

        preferred = FIELD_DEFAULTS[kind]
        option_id, option_name = next(
            ((oid, name) for oid, name in options if name == preferred),
            options[0],
        )
        logger.info(f'Auto-populating required field {field_id} with "{option_name}" ({option_id})')
        return OptionRef(id=option_id)

    async def prepare_transition_fields(
        self,
        fields: Mapping[str, Any] | None,
        project_key: str | None = None,
    ) -> dict[str, FieldValue]:
        """
        Turn human-friendly transition fields into what Jira accepts.

        Resolution and priority given by name are looked up and sent as an
        option reference (an unknown name is dropped with a warning); an
        assignee given as a string becomes {"name": ...}. Everything else
        passes through.
        """
        prepared: dict[str, FieldValue] = {}
        for field_id, value in to_field_map(fields).items():
            if field_id in ("resolution", "priority") and isinstance(value, StringValue):
                options = await self.jira.get_field_options(field_id, project_key)
                option = next((o for o in options if o.name == value.value), None)
                if option is None:
                    logger.warning(f'{field_id.capitalize()} "{value.value}" not found')
                    continue
                prepared[field_id] = OptionRef(id=option.id)
            elif field_id == "assignee" and isinstance(value, StringValue):
                prepared[field_id] = JsonValue(value={"name": value.value})
            else:
                prepared[field_id] = value
        return prepared

    async def update_fields(self, issue_key: str, field_map: Mapping[str, Any]) -> bool:
        """
        Overwrite fields on an issue without transitioning it.

        Always a separate request: fields that are not on a transition's
        screen make Jira reject the whole transition.
        """
        validate_issue_key(issue_key)
        if not field_map:
            return True
        await self.jira.update_issue_fields(issue_key, to_field_map(field_map))
        return True

    async def update_issue_with_custom_fields(
        self,
        issue_key: str,
        target_status: str,
        exclude_states: Iterable[str] = DEFAULT_EXCLUDED_STATES,
        transition_fields: Mapping[str, Any] | None = None,
        custom_fields: Mapping[str, Any] | None = None,
    ) -> bool:
        """Transition an issue, then stamp deployment metadata on it."""
        prepared = await self.prepare_transition_fields(transition_fields, self.jira.project_key)
        await self.transition(issue_key, target_status, exclude_states, prepared)
        if custom_fields:
            await self.update_fields(issue_key, custom_fields)
        return True
