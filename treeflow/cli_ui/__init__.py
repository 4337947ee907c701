"""Terminal UI components for inspecting workflow trees."""

from treeflow.cli_ui.tree_debugger import TreeStats, WorkflowTreeDebugger

__all__ = [
    "TreeStats",
    "WorkflowTreeDebugger",
]
