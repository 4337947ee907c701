"""Tests for the queryable event tree."""

from __future__ import annotations

import pytest

from treeflow.core.errors import CircularRelationshipError
from treeflow.core.event_tree import EventTree
from treeflow.core.events import EventType
from treeflow.core.models import WorkflowError
from treeflow.core.workflow import Workflow


@pytest.fixture
def instrumented(tree):
    """The shared tree with a few step, task, error and cache events."""
    root, a, b = tree["root"], tree["a"], tree["b"]
    root.emit(EventType.STEP_START, step="load")
    root.emit(EventType.STEP_END, step="load", duration_ms=12.5)
    root.emit(EventType.STEP_END, step="save", duration_ms=7.5)
    a.emit(EventType.TASK_START, task="fan-out")
    b.emit(EventType.ERROR, error=WorkflowError(message="b broke", workflow_id=b.id))
    b.emit(EventType.CACHE_HIT, key="abc")
    return tree


class TestBuild:
    """Tests for tree construction."""

    def test_workflow_nodes_mirror_records(self, tree):
        event_tree = EventTree(tree["root"].node)

        assert event_tree.root.id == tree["root"].id
        assert event_tree.root.type == "workflow"
        child_ids = [n.id for n in event_tree.get_children(tree["root"].id)]
        assert child_ids == [tree["a"].id, tree["c"].id]

    def test_event_nodes_precede_child_workflows(self, instrumented):
        root = instrumented["root"]
        event_tree = EventTree(root.node)

        children = event_tree.get_children(root.id)
        assert [n.type for n in children] == [
            "step_complete",
            "step_complete",
            "workflow",
            "workflow",
        ]
        # Indices are positions in the node's event log (child_attached events first)
        first_step_end = next(
            i for i, e in enumerate(root.node.events) if e.type is EventType.STEP_END
        )
        assert children[0].id == f"{root.id}:step_end:{first_step_end}"
        assert children[0].metrics.duration_ms == 12.5

    def test_duration_is_summed_from_steps(self, instrumented):
        event_tree = EventTree(instrumented["root"].node)

        assert event_tree.root.metrics.duration_ms == 20.0
        assert event_tree.get_node(instrumented["c"].id).metrics is None

    def test_task_error_and_cache_nodes(self, instrumented):
        a, b = instrumented["a"], instrumented["b"]
        event_tree = EventTree(instrumented["root"].node)

        a_types = [n.type for n in event_tree.get_children(a.id)]
        assert a_types == ["task", "workflow"]

        b_children = event_tree.get_children(b.id)
        assert [n.type for n in b_children] == ["error", "cache_hit"]
        assert b_children[0].name == "b broke"
        assert b_children[1].name == "abc"

    def test_ids_are_deterministic(self, instrumented):
        first = EventTree(instrumented["root"].node).to_serializable()
        second = EventTree(instrumented["root"].node).to_serializable()

        def ids(node):
            return [node["id"]] + [i for child in node["children"] for i in ids(child)]

        assert ids(first) == ids(second)


class TestQueries:
    """Tests for lookups."""

    def test_get_ancestors_nearest_first(self, instrumented):
        root, a, b = instrumented["root"], instrumented["a"], instrumented["b"]
        event_tree = EventTree(root.node)
        error_node = event_tree.get_children(b.id)[0]

        ancestors = event_tree.get_ancestors(error_node.id)

        assert [n.id for n in ancestors] == [b.id, a.id, root.id]

    def test_unknown_ids(self, tree):
        event_tree = EventTree(tree["root"].node)

        assert event_tree.get_node("nope") is None
        assert event_tree.get_children("nope") == []
        assert event_tree.get_ancestors("nope") == []

    def test_rebuild_picks_up_new_children(self, tree):
        root = tree["root"]
        event_tree = EventTree(root.node)
        late = Workflow("late", parent=root)

        assert event_tree.get_node(late.id) is None
        event_tree.rebuild(root.node)
        assert event_tree.get_node(late.id).name == "late"

    def test_cyclic_records_are_rejected(self):
        record = Workflow("loop").node
        record.children.append(record)

        with pytest.raises(CircularRelationshipError):
            EventTree(record)

    def test_serializable_output(self, instrumented):
        data = EventTree(instrumented["root"].node).to_serializable()

        assert data["name"] == "root"
        assert data["payload"] == {"status": "idle"}
        assert isinstance(data["timestamp"], str)
