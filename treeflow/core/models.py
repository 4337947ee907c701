"""Data models for the treeflow execution tree.

Uses Pydantic so node records, log entries and errors serialize cleanly for
observers, debuggers and the event store.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from treeflow.core.utils import generate_id, utc_now

if TYPE_CHECKING:
    from treeflow.core.events import WorkflowEvent


class WorkflowStatus(str, Enum):
    """Lifecycle status of a workflow."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}
)


class LogLevel(str, Enum):
    """Severity of a workflow log entry."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogEntry(BaseModel):
    """A single log entry recorded on a workflow node."""

    id: str = Field(default_factory=generate_id)
    workflow_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    level: LogLevel
    message: str
    data: Any = None
    parent_log_id: str | None = None  # Set by child loggers


class StateField(BaseModel):
    """Snapshot options for one observed attribute of a workflow."""

    hidden: bool = False  # Never included in snapshots
    redact: bool = False  # Included, but the value is replaced by "***"


class WorkflowError(BaseModel):
    """Rich error payload carrying the workflow context of a failure.

    Produced at the instrumentation boundary (steps, concurrent tasks) and
    carried in `error` events. Merged errors additionally list the failed
    children and keep every constituent error in `errors`.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    message: str
    workflow_id: str
    error_type: str = "Exception"
    stack: str | None = None
    state: dict[str, Any] = Field(default_factory=dict)
    logs: list[LogEntry] = Field(default_factory=list)

    # Aggregation details (merged concurrent failures only)
    failed_workflow_ids: list[str] = Field(default_factory=list)
    total_children: int | None = None
    errors: list[WorkflowError] = Field(default_factory=list)

    # Original exception, never serialized
    original: BaseException | None = Field(default=None, exclude=True, repr=False)

    @property
    def is_aggregate(self) -> bool:
        return bool(self.errors)


class NodeRecord(BaseModel):
    """Serializable shadow of a workflow controller.

    The record tree always mirrors the controller tree: same ids, same
    parent/child links, same child order. Only `Workflow` mutates it.
    """

    id: str
    name: str
    status: WorkflowStatus = WorkflowStatus.IDLE
    parent_id: str | None = None
    children: list[NodeRecord] = Field(default_factory=list)
    logs: list[LogEntry] = Field(default_factory=list)
    events: list[WorkflowEvent] = Field(default_factory=list)
    state_snapshot: dict[str, Any] | None = None

    def iter_subtree(self):
        """Yield this record and every descendant, depth-first, pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def child_ids(self) -> list[str]:
        return [child.id for child in self.children]
