"""
Workflow graph construction and caching.

A workflow is fetched once per name (statuses and transitions in a single
expanded call), turned into a WorkflowGraph and kept for the life of the
process. The cache has no lock: two concurrent first requests for the same
name may both fetch, and the later write replaces the earlier one. Both
values describe the same workflow, so either is fine.
"""

import logging
from typing import Any

from jira_sync.errors import WorkflowError
from jira_sync.tools.jira import JiraClient
from jira_sync.workflows.models import Status, Transition, WorkflowGraph

logger = logging.getLogger(__name__)


class WorkflowGraphCache:
    """In-memory map of workflow name -> WorkflowGraph."""

    def __init__(self):
        self._graphs: dict[str, WorkflowGraph] = {}

    def get(self, workflow_name: str) -> WorkflowGraph | None:
        return self._graphs.get(workflow_name)

    def put(self, graph: WorkflowGraph) -> None:
        self._graphs[graph.name] = graph

    def clear(self) -> None:
        self._graphs.clear()

    def __contains__(self, workflow_name: str) -> bool:
        return workflow_name in self._graphs

    def __len__(self) -> int:
        return len(self._graphs)


def _status_category(raw: dict[str, Any]) -> str | None:
    category = raw.get("statusCategory")
    if isinstance(category, dict):
        return category.get("name") or category.get("key")
    return category


def _from_ids(raw: dict[str, Any]) -> frozenset[str]:
    ids = []
    for entry in raw.get("from") or []:
        ids.append(str(entry.get("id")) if isinstance(entry, dict) else str(entry))
    return frozenset(ids)


def _to_id(raw: dict[str, Any]) -> str:
    to = raw.get("to")
    return str(to.get("id")) if isinstance(to, dict) else str(to)


def build_workflow_graph(name: str, workflow: dict[str, Any]) -> WorkflowGraph:
    """
    Build a graph from one entry of Jira's workflow search response.

    Transitions without source statuses are global and are expanded to
    start from every known status. The creation ("initial") transition is
    not a move between statuses and is left out. When several transitions
    connect the same pair of statuses, the first one in backend order is
    kept in the index.
    """
    statuses = {
        str(raw["id"]): Status(id=str(raw["id"]), name=raw.get("name", ""), category=_status_category(raw))
        for raw in workflow.get("statuses", [])
    }

    transitions = []
    for raw in workflow.get("transitions", []):
        if raw.get("type") == "initial":
            continue
        transitions.append(Transition(
            id=str(raw["id"]),
            name=raw.get("name", ""),
            from_status_ids=_from_ids(raw),
            to_status_id=_to_id(raw),
            has_screen=bool(raw.get("screen") or raw.get("hasScreen")),
        ))

    index: dict[str, dict[str, Transition]] = {status_id: {} for status_id in statuses}
    for transition in transitions:
        sources = statuses.keys() if transition.is_global else transition.from_status_ids
        for from_id in sources:
            if from_id == transition.to_status_id:
                continue
            index.setdefault(from_id, {}).setdefault(transition.to_status_id, transition)

    return WorkflowGraph(name=name, statuses=statuses, transitions=tuple(transitions), index=index)


class WorkflowGraphBuilder:
    """Fetches workflows from Jira and serves them from a WorkflowGraphCache."""

    def __init__(self, jira: JiraClient, cache: WorkflowGraphCache | None = None):
        self.jira = jira
        self.cache = cache if cache is not None else WorkflowGraphCache()

    async def get_workflow_graph(self, workflow_name: str) -> WorkflowGraph:
        """Return the graph for a workflow, fetching it on first use."""
        cached = self.cache.get(workflow_name)
        if cached is not None:
            return cached

        logger.info(f'Fetching workflow "{workflow_name}"')
        workflows = await self.jira.get_workflow(workflow_name)
        if not workflows:
            raise WorkflowError(f'Workflow "{workflow_name}" not found')

        graph = build_workflow_graph(workflow_name, workflows[0])
        logger.info(
            f'Built workflow graph "{workflow_name}": '
            f"{len(graph.statuses)} statuses, {len(graph.transitions)} transitions"
        )
        self.cache.put(graph)
        return graph

    async def get_workflow_name_for_project(self, project_key: str) -> str:
        """Resolve project -> workflow scheme -> default workflow name."""
        project = await self.jira.get_project(project_key)
        scheme = await self.jira.get_workflow_scheme(str(project["id"]))
        if not scheme:
            raise WorkflowError(f"No workflow scheme found for project {project_key}")
        workflow_name = scheme.get("defaultWorkflow")
        if not workflow_name:
            raise WorkflowError(f"Workflow scheme for project {project_key} has no default workflow")
        return workflow_name
