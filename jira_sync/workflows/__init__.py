"""Workflow graphs, path finding and transition execution."""

from jira_sync.workflows.bulk import BulkUpdater, scan_commit_history
from jira_sync.workflows.executor import TransitionExecutor
from jira_sync.workflows.graph import WorkflowGraphBuilder, WorkflowGraphCache, build_workflow_graph
from jira_sync.workflows.models import (
    BulkUpdateResult,
    CommitScanResult,
    TransitionPath,
    WorkflowGraph,
)
from jira_sync.workflows.paths import all_paths, shortest_path

__all__ = [
    "BulkUpdater",
    "scan_commit_history",
    "TransitionExecutor",
    "WorkflowGraphBuilder",
    "WorkflowGraphCache",
    "build_workflow_graph",
    "BulkUpdateResult",
    "CommitScanResult",
    "TransitionPath",
    "WorkflowGraph",
    "all_paths",
    "shortest_path",
]
