"""Tests for the terminal tree debugger."""

from __future__ import annotations

import asyncio
import io

from rich.console import Console
from rich.tree import Tree

from treeflow.cli_ui.tree_debugger import WorkflowTreeDebugger
from treeflow.core.events import EventType
from treeflow.core.models import WorkflowStatus
from treeflow.core.workflow import Workflow


def _console() -> Console:
    return Console(file=io.StringIO(), width=120, color_system=None)


class TestTreeTracking:
    """Tests for the node index and event stream."""

    def test_tracks_attached_nodes(self):
        root = Workflow("root")
        debugger = WorkflowTreeDebugger(root, console=_console())
        child = Workflow("child", parent=root)
        grandchild = Workflow("grandchild", parent=child)

        assert debugger.get_tree() is root.node
        assert debugger.get_node(grandchild.id) is grandchild.node

        child.detach_child(grandchild)
        assert debugger.get_node(grandchild.id) is None

    def test_existing_children_are_indexed(self, tree):
        debugger = WorkflowTreeDebugger(tree["root"], console=_console())

        assert debugger.get_node(tree["b"].id).name == "b"

    def test_events_are_republished(self, tree):
        debugger = WorkflowTreeDebugger(tree["root"], console=_console())
        seen = []
        debugger.events.subscribe(seen.append)

        tree["b"].emit(EventType.CUSTOM, name="hello")

        assert [e.name for e in seen] == ["hello"]


class TestRendering:
    """Tests for text and Rich rendering."""

    def test_tree_string(self, tree):
        tree["a"].set_status(WorkflowStatus.RUNNING)
        tree["b"].set_status(WorkflowStatus.RUNNING)
        tree["b"].set_status(WorkflowStatus.FAILED)
        tree["c"].cancel()
        debugger = WorkflowTreeDebugger(tree["root"], console=_console())

        assert debugger.to_tree_string() == (
            "○ root [idle]\n"
            "├── ◐ a [running]\n"
            "│   └── ✗ b [failed]\n"
            "└── ⊘ c [cancelled]\n"
        )

    def test_render_tree_escapes_markup(self):
        root = Workflow("[bold]root[/]")
        Workflow("child", parent=root)
        console = _console()
        debugger = WorkflowTreeDebugger(root, console=console)

        rendered = debugger.render_tree()
        assert isinstance(rendered, Tree)

        debugger.print_tree()
        output = console.file.getvalue()
        assert "[bold]root[/]" in output
        assert "child" in output

    def test_render_tree_max_depth(self):
        root = Workflow("root")
        current = root
        for i in range(5):
            current = Workflow(f"n{i}", parent=current)
        console = _console()
        debugger = WorkflowTreeDebugger(root, console=console)

        debugger.print_tree(max_depth=2)
        output = console.file.getvalue()

        assert "max depth reached" in output
        assert "n3" not in output

    def test_log_string(self):
        async def child_body(ctx):
            ctx.logger.warning("careful")

        async def body(ctx):
            ctx.logger.info("starting")
            await ctx.spawn(Workflow("child", executor=child_body))

        root = Workflow("root", executor=body)
        debugger = WorkflowTreeDebugger(root, console=_console())
        asyncio.run(root.run())

        lines = debugger.to_log_string().splitlines()
        assert len(lines) == 2
        assert lines[0].endswith("INFO    [root] starting")
        assert lines[1].endswith("WARNING [child] careful")


class TestStats:
    """Tests for get_stats."""

    def test_counts(self, tree):
        tree["a"].logger.info("one")
        tree["b"].logger.info("two")
        debugger = WorkflowTreeDebugger(tree["root"], console=_console())

        stats = debugger.get_stats()

        assert stats.total_nodes == 4
        assert stats.by_status == {"idle": 4}
        assert stats.total_logs == 2
        # One child_attached per attach, recorded on the parent
        assert stats.total_events == 3
