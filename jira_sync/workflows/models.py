"""Data models for workflow graphs, transition paths and bulk results."""

from pydantic import BaseModel, ConfigDict

from jira_sync.errors import ValidationError


class Status(BaseModel):
    """A node in a workflow graph."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str | None = None  # informational only


class Transition(BaseModel):
    """A directed edge. Empty from_status_ids means "from any status"."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    from_status_ids: frozenset[str] = frozenset()
    to_status_id: str
    has_screen: bool = False

    @property
    def is_global(self) -> bool:
        return not self.from_status_ids


class WorkflowGraph(BaseModel):
    """
    Statuses and transitions of one workflow.

    index maps from_status_id -> {to_status_id -> Transition}, with global
    transitions already expanded across every status. Never mutated after
    construction; a re-fetch produces a new graph.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    statuses: dict[str, Status]
    transitions: tuple[Transition, ...] = ()
    index: dict[str, dict[str, Transition]] = {}

    def status_by_name(self, name: str) -> Status:
        """
        Resolve a status name.

        Names are assumed unique within a workflow; if they are not, the
        last status with that name wins.
        """
        found = None
        for status in self.statuses.values():
            if status.name == name:
                found = status
        if found is None:
            raise ValidationError(
                f'Status "{name}" not found in workflow "{self.name}". '
                f"Known statuses: {', '.join(sorted(s.name for s in self.statuses.values()))}"
            )
        return found

    def has_status(self, name: str) -> bool:
        return any(status.name == name for status in self.statuses.values())

    def transitions_from(self, status_id: str) -> dict[str, Transition]:
        return self.index.get(status_id, {})


class TransitionStep(BaseModel):
    """One planned transition in a path."""
    model_config = ConfigDict(frozen=True)

    transition_id: str
    transition_name: str
    from_status_id: str
    to_status_id: str
    from_status_name: str
    to_status_name: str


class TransitionPath(BaseModel):
    """Ordered steps from a source status to a target. Empty means already there."""
    model_config = ConfigDict(frozen=True)

    steps: tuple[TransitionStep, ...] = ()

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def describe(self) -> str:
        if not self.steps:
            return "(no transitions needed)"
        names = [self.steps[0].from_status_name] + [step.to_status_name for step in self.steps]
        return " -> ".join(names)


class IssueFailure(BaseModel):
    issue_key: str
    message: str


class BulkUpdateResult(BaseModel):
    """Report of a bulk transition. Counts are exact; errors may be capped."""
    success_count: int = 0
    failure_count: int = 0
    errors: list[IssueFailure] = []

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    def merge(self, other: "BulkUpdateResult", max_errors: int = 50) -> "BulkUpdateResult":
        return BulkUpdateResult(
            success_count=self.success_count + other.success_count,
            failure_count=self.failure_count + other.failure_count,
            errors=(self.errors + other.errors)[:max_errors],
        )


class CommitScanResult(BaseModel):
    """Outcome of walking a branch's commit history for issue keys."""
    issue_keys: list[str] = []
    commits_checked: int = 0
    issues_checked: int = 0
    consecutive_done: int = 0
    stopped_early: bool = False
