"""Per-workflow logger.

Entries are appended to the workflow's node record, published to the root's
observers via `on_log`, and mirrored to the stdlib logger `treeflow.workflow`
so host applications see them through their normal logging setup.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from treeflow.core.models import LogEntry, LogLevel

if TYPE_CHECKING:
    from treeflow.core.workflow import Workflow

_stdlib_logger = logging.getLogger("treeflow.workflow")

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class WorkflowLogger:
    """Logger bound to one workflow node."""

    def __init__(self, workflow: Workflow, parent_log_id: str | None = None):
        self._workflow = workflow
        self.parent_log_id = parent_log_id

    def _log(self, level: LogLevel, message: str, data: Any = None) -> LogEntry:
        entry = LogEntry(
            workflow_id=self._workflow.id,
            level=level,
            message=message,
            data=data,
            parent_log_id=self.parent_log_id,
        )
        self._workflow.node.logs.append(entry)
        self._workflow.publish_log(entry)
        _stdlib_logger.log(_STDLIB_LEVELS[level], f"[{self._workflow.name}] {message}")
        return entry

    def debug(self, message: str, data: Any = None) -> LogEntry:
        return self._log(LogLevel.DEBUG, message, data)

    def info(self, message: str, data: Any = None) -> LogEntry:
        return self._log(LogLevel.INFO, message, data)

    def warning(self, message: str, data: Any = None) -> LogEntry:
        return self._log(LogLevel.WARNING, message, data)

    def error(self, message: str, data: Any = None) -> LogEntry:
        return self._log(LogLevel.ERROR, message, data)

    def child(self, parent_log_id: str) -> WorkflowLogger:
        """Create a logger whose entries reference `parent_log_id`."""
        return WorkflowLogger(self._workflow, parent_log_id)
