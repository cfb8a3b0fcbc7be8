"""
Transition path search over a WorkflowGraph.

shortest_path() is the hot path used by the executor: breadth-first, so
the first path found is the shortest by number of transitions, with ties
going to whichever transition Jira listed first. all_paths() enumerates
every simple path and is only used for diagnostics.
"""

import logging
from collections import deque
from typing import Iterable

from jira_sync.workflows.models import Transition, TransitionPath, TransitionStep, WorkflowGraph

logger = logging.getLogger(__name__)

# Independent of the visited set: no branch is explored past this many steps
MAX_PATH_LENGTH = 10


def _status_name(graph: WorkflowGraph, status_id: str) -> str:
    status = graph.statuses.get(status_id)
    return status.name if status else status_id


def _step(graph: WorkflowGraph, from_id: str, to_id: str, transition: Transition) -> TransitionStep:
    return TransitionStep(
        transition_id=transition.id,
        transition_name=transition.name,
        from_status_id=from_id,
        to_status_id=to_id,
        from_status_name=_status_name(graph, from_id),
        to_status_name=_status_name(graph, to_id),
    )


def shortest_path(
    graph: WorkflowGraph,
    from_status: str,
    to_status: str,
    exclude: Iterable[str] = (),
) -> TransitionPath | None:
    """
    Shortest legal path between two statuses, by name.

    Args:
        graph: Workflow graph.
        from_status: Current status name.
        to_status: Target status name.
        exclude: Status names the path may not pass through.

    Returns:
        An empty path when from_status == to_status, None when the target is
        excluded or unreachable, otherwise the shortest path.

    Raises:
        ValidationError: if either status name is not in the graph.
    """
    source = graph.status_by_name(from_status)
    target = graph.status_by_name(to_status)

    if source.id == target.id:
        return TransitionPath()

    excluded = set(exclude)
    if target.name in excluded:
        logger.warning(
            f'Target status "{target.name}" is in the exclusion list {sorted(excluded)}; '
            f"not computing a path"
        )
        return None

    excluded_ids = {status.id for status in graph.statuses.values() if status.name in excluded}

    queue: deque[tuple[str, list[TransitionStep]]] = deque([(source.id, [])])
    visited = {source.id}
    while queue:
        status_id, steps = queue.popleft()
        if len(steps) >= MAX_PATH_LENGTH:
            logger.debug(f"Abandoning branch at {_status_name(graph, status_id)}: depth limit reached")
            continue
        for to_id, transition in graph.transitions_from(status_id).items():
            if to_id in visited or to_id in excluded_ids:
                continue
            path = steps + [_step(graph, status_id, to_id, transition)]
            if to_id == target.id:
                return TransitionPath(steps=tuple(path))
            visited.add(to_id)
            queue.append((to_id, path))

    logger.info(f'No path from "{source.name}" to "{target.name}" in workflow "{graph.name}"')
    return None


def all_paths(
    graph: WorkflowGraph,
    from_status: str,
    to_status: str,
    max_depth: int = MAX_PATH_LENGTH,
) -> list[TransitionPath]:
    """
    Every simple path between two statuses, up to max_depth steps.

    A status may appear on several paths but never twice on the same one.
    """
    source = graph.status_by_name(from_status)
    target = graph.status_by_name(to_status)

    if source.id == target.id:
        return [TransitionPath()]

    paths: list[TransitionPath] = []

    def visit(status_id: str, steps: list[TransitionStep], on_path: frozenset[str]) -> None:
        if len(steps) >= max_depth:
            return
        for to_id, transition in graph.transitions_from(status_id).items():
            if to_id in on_path:
                continue
            path = steps + [_step(graph, status_id, to_id, transition)]
            if to_id == target.id:
                paths.append(TransitionPath(steps=tuple(path)))
                continue
            visit(to_id, path, on_path | {to_id})

    visit(source.id, [], frozenset([source.id]))
    return paths
