"""Workflow lifecycle events.

Events are immutable, tagged records appended to the originating node's
event log and fanned out to every observer registered at the root.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from treeflow.core.models import NodeRecord, WorkflowError
from treeflow.core.utils import utc_now


class EventType(str, Enum):
    """Types of events emitted by workflows."""

    # Structural events (change tree topology)
    CHILD_ATTACHED = "child_attached"
    CHILD_DETACHED = "child_detached"
    TREE_UPDATED = "tree_updated"

    # Execution boundaries
    STEP_START = "step_start"
    STEP_END = "step_end"
    TASK_START = "task_start"
    TASK_END = "task_end"
    ERROR = "error"

    # State
    STATE_SNAPSHOT = "state_snapshot"

    # Cache lookups made through a workflow context
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"

    CUSTOM = "custom"

    @property
    def is_structural(self) -> bool:
        return self in STRUCTURAL_EVENT_TYPES


STRUCTURAL_EVENT_TYPES = frozenset(
    {EventType.CHILD_ATTACHED, EventType.CHILD_DETACHED, EventType.TREE_UPDATED}
)


class WorkflowEvent(BaseModel):
    """Immutable event in a workflow's event log.

    Only the fields relevant to `type` are set:
    - child_attached / child_detached: parent_id, child_id
    - step_start / step_end: step (and duration_ms on step_end)
    - task_start / task_end: task
    - error: error (plus step or task when raised at that boundary)
    - cache_hit / cache_miss: key
    - custom: name, payload
    """

    model_config = ConfigDict(frozen=True)

    type: EventType
    workflow_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    parent_id: str | None = None
    child_id: str | None = None
    step: str | None = None
    task: str | None = None
    duration_ms: float | None = None
    error: WorkflowError | None = None
    key: str | None = None
    name: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_structural(self) -> bool:
        return self.type.is_structural


# NodeRecord.events refers to WorkflowEvent, which is only defined here
NodeRecord.model_rebuild()
