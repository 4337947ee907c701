"""Terminal debugger for live workflow trees.

Attach to a root workflow to follow its record tree as it grows:

    debugger = WorkflowTreeDebugger(root)
    await root.run()
    print(debugger.to_tree_string())
    debugger.print_tree()  # Rich, color-coded
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from treeflow.core.events import WorkflowEvent
from treeflow.core.models import LogEntry, NodeRecord, WorkflowStatus
from treeflow.core.observable import Observable

if TYPE_CHECKING:
    from treeflow.core.workflow import Workflow

STATUS_SYMBOLS = {
    WorkflowStatus.IDLE: "○",
    WorkflowStatus.RUNNING: "◐",
    WorkflowStatus.COMPLETED: "✓",
    WorkflowStatus.FAILED: "✗",
    WorkflowStatus.CANCELLED: "⊘",
}

STATUS_COLORS = {
    WorkflowStatus.IDLE: "dim",
    WorkflowStatus.RUNNING: "blue bold",
    WorkflowStatus.COMPLETED: "green",
    WorkflowStatus.FAILED: "red bold",
    WorkflowStatus.CANCELLED: "dim strikethrough",
}


@dataclass
class TreeStats:
    total_nodes: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    total_logs: int = 0
    total_events: int = 0


class WorkflowTreeDebugger:
    """Observer that keeps an id index of the tree and renders it.

    Events seen by the debugger are re-published on `events`.
    """

    def __init__(self, workflow: Workflow, console: Console | None = None):
        self.console = console or Console()
        self.events: Observable[WorkflowEvent] = Observable("tree_debugger.events")
        self._root = workflow.node
        self._node_map: dict[str, NodeRecord] = {}
        self._build_node_map(self._root)
        workflow.add_observer(self)

    def _build_node_map(self, root: NodeRecord) -> None:
        self._node_map = {node.id: node for node in root.iter_subtree()}

    # --- Observer callbacks ---

    def on_event(self, event: WorkflowEvent) -> None:
        self.events.publish(event)

    def on_log(self, entry: LogEntry) -> None:
        pass

    def on_state_snapshot(self, node: NodeRecord) -> None:
        pass

    def on_tree_changed(self, root: NodeRecord) -> None:
        self._root = root
        self._build_node_map(root)

    # --- Queries ---

    def get_tree(self) -> NodeRecord:
        return self._root

    def get_node(self, node_id: str) -> NodeRecord | None:
        return self._node_map.get(node_id)

    def to_tree_string(self, node: NodeRecord | None = None) -> str:
        """Plain-text tree with status symbols, one node per line."""
        lines: list[str] = []
        self._render_lines(node or self._root, "", True, True, lines)
        return "\n".join(lines) + "\n"

    def _render_lines(
        self,
        node: NodeRecord,
        prefix: str,
        is_last: bool,
        is_root: bool,
        lines: list[str],
    ) -> None:
        symbol = STATUS_SYMBOLS.get(node.status, "?")
        info = f"{symbol} {node.name} [{node.status.value}]"
        if is_root:
            lines.append(info)
        else:
            lines.append(prefix + ("└── " if is_last else "├── ") + info)

        child_prefix = "" if is_root else prefix + ("    " if is_last else "│   ")
        for index, child in enumerate(node.children):
            self._render_lines(child, child_prefix, index == len(node.children) - 1, False, lines)

    def render_tree(self, node: NodeRecord | None = None, max_depth: int = 50) -> Tree:
        """Rich tree, color-coded by status."""
        node = node or self._root
        tree = Tree(self._label(node))
        self._add_children(tree, node, depth=1, max_depth=max_depth)
        return tree

    def _label(self, node: NodeRecord) -> str:
        # Names are user-controlled: escape to prevent Rich markup injection
        color = STATUS_COLORS.get(node.status, "white")
        symbol = STATUS_SYMBOLS.get(node.status, "?")
        return f"[{color}]{symbol} {escape(node.name)}[/] [dim]({node.status.value})[/]"

    def _add_children(self, branch: Tree, node: NodeRecord, depth: int, max_depth: int) -> None:
        if not node.children:
            return
        if depth >= max_depth:
            branch.add("[dim]... (max depth reached)[/]")
            return
        for child in node.children:
            child_branch = branch.add(self._label(child))
            self._add_children(child_branch, child, depth + 1, max_depth)

    def print_tree(self, max_depth: int = 50) -> None:
        self.console.print(self.render_tree(max_depth=max_depth))

    def to_log_string(self, node: NodeRecord | None = None) -> str:
        """All log entries of the subtree, oldest first."""
        entries = [entry for record in (node or self._root).iter_subtree() for entry in record.logs]
        entries.sort(key=lambda e: e.timestamp)

        lines = []
        for entry in entries:
            record = self._node_map.get(entry.workflow_id)
            name = record.name if record is not None else entry.workflow_id
            level = entry.level.value.upper().ljust(7)
            lines.append(f"[{entry.timestamp.isoformat()}] {level} [{name}] {entry.message}")
        return "\n".join(lines)

    def get_stats(self) -> TreeStats:
        stats = TreeStats()
        for record in self._root.iter_subtree():
            stats.total_nodes += 1
            status = record.status.value
            stats.by_status[status] = stats.by_status.get(status, 0) + 1
            stats.total_logs += len(record.logs)
            stats.total_events += len(record.events)
        return stats
