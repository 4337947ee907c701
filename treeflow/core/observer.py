"""Observer capability set for workflow trees.

Observers are registered on a root workflow and receive everything emitted
anywhere in its subtree: events, log entries, state snapshots and, after
every structural change, the current root record.
"""

from __future__ import annotations

from typing import Protocol

from treeflow.core.events import WorkflowEvent
from treeflow.core.models import LogEntry, NodeRecord


class WorkflowObserver(Protocol):
    """Anything that wants to follow a workflow tree."""

    def on_event(self, event: WorkflowEvent) -> None: ...

    def on_log(self, entry: LogEntry) -> None: ...

    def on_state_snapshot(self, node: NodeRecord) -> None: ...

    def on_tree_changed(self, root: NodeRecord) -> None: ...


class BaseObserver:
    """No-op observer; subclass and override what you need."""

    def on_event(self, event: WorkflowEvent) -> None:
        pass

    def on_log(self, entry: LogEntry) -> None:
        pass

    def on_state_snapshot(self, node: NodeRecord) -> None:
        pass

    def on_tree_changed(self, root: NodeRecord) -> None:
        pass
