"""Queryable event tree built from a workflow record tree.

Every workflow record becomes a `workflow` node. Its notable events become
leaf nodes placed before its child workflows:

    pipeline (workflow, metrics.duration_ms = sum of step durations)
    ├── fetch (step_complete)
    ├── 2 of 3 concurrent children failed ... (error)
    └── transform (workflow)

Event node ids are deterministic: "<workflow_id>:<event type>:<index>",
where index is the event's position in the workflow's event log.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from treeflow.core.errors import CircularRelationshipError
from treeflow.core.events import EventType, WorkflowEvent
from treeflow.core.models import NodeRecord
from treeflow.core.utils import utc_now


class EventMetrics(BaseModel):
    duration_ms: float | None = None


class EventNode(BaseModel):
    """One node of the event tree."""

    id: str
    type: str
    name: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)
    parent_id: str | None = None
    payload: Any = None
    metrics: EventMetrics | None = None
    children: list[EventNode] = Field(default_factory=list)


def _event_to_node(event: WorkflowEvent, index: int, parent_id: str) -> EventNode | None:
    node_id = f"{parent_id}:{event.type.value}:{index}"
    base = {"id": node_id, "timestamp": event.timestamp, "parent_id": parent_id}

    if event.type is EventType.STEP_END:
        return EventNode(
            **base,
            type="step_complete",
            name=event.step,
            metrics=EventMetrics(duration_ms=event.duration_ms),
        )
    if event.type is EventType.TASK_START:
        return EventNode(**base, type="task", name=event.task)
    if event.type is EventType.ERROR and event.error is not None:
        return EventNode(
            **base,
            type="error",
            name=event.error.message,
            payload=event.error.model_dump(mode="json"),
        )
    if event.type in (EventType.CACHE_HIT, EventType.CACHE_MISS):
        return EventNode(**base, type=event.type.value, name=event.key)
    return None


def _workflow_metrics(record: NodeRecord) -> EventMetrics | None:
    durations = [
        e.duration_ms or 0.0 for e in record.events if e.type is EventType.STEP_END
    ]
    if not durations:
        return None
    return EventMetrics(duration_ms=sum(durations))


class EventTree:
    """Read-only query surface over a record tree."""

    def __init__(self, record: NodeRecord):
        self.root: EventNode
        self._index: dict[str, EventNode] = {}
        self.rebuild(record)

    def _build(self, record: NodeRecord, parent_id: str | None, seen: set[str]) -> EventNode:
        if record.id in seen:
            raise CircularRelationshipError(
                f"Circular relationship detected: record '{record.id}' reached twice"
            )
        seen.add(record.id)

        node = EventNode(
            id=record.id,
            type="workflow",
            name=record.name,
            parent_id=parent_id,
            payload={"status": record.status.value},
            metrics=_workflow_metrics(record),
        )
        for index, event in enumerate(record.events):
            event_node = _event_to_node(event, index, record.id)
            if event_node is not None:
                node.children.append(event_node)
        for child in record.children:
            node.children.append(self._build(child, record.id, seen))
        return node

    def _index_subtree(self, node: EventNode) -> None:
        stack = [node]
        while stack:
            current = stack.pop()
            self._index[current.id] = current
            stack.extend(current.children)

    def rebuild(self, record: NodeRecord) -> None:
        """Rebuild the whole tree from an updated record."""
        self.root = self._build(record, None, set())
        self._index = {}
        self._index_subtree(self.root)

    def get_node(self, node_id: str) -> EventNode | None:
        return self._index.get(node_id)

    def get_children(self, node_id: str) -> list[EventNode]:
        node = self._index.get(node_id)
        return list(node.children) if node is not None else []

    def get_ancestors(self, node_id: str) -> list[EventNode]:
        """Ancestors of a node, nearest first. Unknown ids yield []."""
        node = self._index.get(node_id)
        if node is None:
            return []
        ancestors: list[EventNode] = []
        visited = {node.id}
        parent_id = node.parent_id
        while parent_id is not None:
            if parent_id in visited:
                raise CircularRelationshipError(
                    f"Circular relationship detected at event node '{parent_id}'"
                )
            visited.add(parent_id)
            parent = self._index.get(parent_id)
            if parent is None:
                break
            ancestors.append(parent)
            parent_id = parent.parent_id
        return ancestors

    def to_serializable(self) -> dict[str, Any]:
        return self.root.model_dump(mode="json")
