"""Exception hierarchy for treeflow."""

from __future__ import annotations

from treeflow.core.models import WorkflowError


class TreeflowError(Exception):
    """Base class for all treeflow errors."""

    pass


class StructuralError(TreeflowError):
    """Attach/detach precondition violated or tree integrity broken."""

    pass


class CircularRelationshipError(StructuralError):
    """A node was revisited while walking a parent chain."""

    pass


class IllegalTransitionError(TreeflowError):
    """Workflow status transition not allowed by the state machine."""

    pass


class SerializationError(TreeflowError):
    """Value cannot be canonicalized for cache key derivation."""

    pass


class ConfigError(TreeflowError):
    """Configuration file is unreadable or invalid."""

    pass


class WorkflowExecutionError(TreeflowError):
    """A unit of work failed; carries the enriched `WorkflowError`."""

    def __init__(self, error: WorkflowError):
        super().__init__(error.message)
        self.error = error

    @property
    def workflow_id(self) -> str:
        return self.error.workflow_id


class AggregateExecutionError(WorkflowExecutionError):
    """Several concurrently executed children failed.

    `error` is the merged payload; every constituent failure is kept in
    `error.errors`.
    """

    def __init__(
        self,
        error: WorkflowError,
        failed_workflow_ids: list[str],
        total_children: int,
    ):
        super().__init__(error)
        self.failed_workflow_ids = failed_workflow_ids
        self.total_children = total_children

    @property
    def errors(self) -> list[WorkflowError]:
        return self.error.errors
