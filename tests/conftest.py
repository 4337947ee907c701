# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the treeflow test suite.

This module provides:
- A recording observer capturing everything delivered from a root
- A controllable clock for cache expiry tests
- A mirror-consistency checker for controller/record trees
- A temporary SQLite event store

Usage:
    Fixtures are discovered implicitly by pytest.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from treeflow.core.events import EventType, WorkflowEvent
from treeflow.core.models import LogEntry, NodeRecord
from treeflow.core.observer import BaseObserver
from treeflow.core.state import EventStore
from treeflow.core.workflow import Workflow


# =============================================================================
# Observer Fixtures
# =============================================================================


class RecordingObserver(BaseObserver):
    """Observer that keeps every delivery in order."""

    def __init__(self):
        self.events: list[WorkflowEvent] = []
        self.logs: list[LogEntry] = []
        self.snapshots: list[NodeRecord] = []
        self.trees: list[NodeRecord] = []

    def on_event(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def on_log(self, entry: LogEntry) -> None:
        self.logs.append(entry)

    def on_state_snapshot(self, node: NodeRecord) -> None:
        self.snapshots.append(node)

    def on_tree_changed(self, root: NodeRecord) -> None:
        self.trees.append(root)

    def of_type(self, event_type: EventType) -> list[WorkflowEvent]:
        return [e for e in self.events if e.type is event_type]


@pytest.fixture
def recorder() -> RecordingObserver:
    """Fresh recording observer (register it with root.add_observer)."""
    return RecordingObserver()


# =============================================================================
# Clock Fixtures
# =============================================================================


class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Tree Fixtures
# =============================================================================


def _check_mirror(workflow: Workflow) -> None:
    node = workflow.node
    assert node.id == workflow.id
    assert node.status == workflow.status
    assert node.parent_id == (workflow.parent.id if workflow.parent else None)
    assert [c.id for c in node.children] == [c.id for c in workflow.children]
    for child, child_node in zip(workflow.children, node.children):
        assert child.parent is workflow
        assert child_node is child.node
        _check_mirror(child)


@pytest.fixture
def assert_mirror() -> Callable[[Workflow], None]:
    """Assert controller and record trees are mirror-consistent from a root.

    Example:
        def test_attach(assert_mirror):
            parent.attach_child(child)
            assert_mirror(parent)
    """
    return _check_mirror


@pytest.fixture
def tree() -> dict[str, Workflow]:
    """Three-level tree: root > a > b, plus root > c."""
    root = Workflow("root")
    a = Workflow("a", parent=root)
    b = Workflow("b", parent=a)
    c = Workflow("c", parent=root)
    return {"root": root, "a": a, "b": b, "c": c}


# =============================================================================
# Persistence Fixtures
# =============================================================================


@pytest.fixture
def event_store(tmp_path: Path) -> EventStore:
    """Event store backed by a temporary SQLite file."""
    return EventStore(tmp_path / "events.db")
