"""SQLite persistence for workflow trees.

`EventStore` is an observer: register it on a root workflow and it records
every event and log entry emitted in the tree, the latest state snapshot of
each node and the latest record tree of each root.

    store = EventStore(".treeflow/events.db")
    root.add_observer(store)
    ...
    store.get_events(child.id, [EventType.ERROR])
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic_core import to_json

from treeflow.core.events import EventType, WorkflowEvent
from treeflow.core.models import LogEntry, NodeRecord
from treeflow.core.utils import utc_now


def _dump(value: Any) -> str:
    """JSON text of `value`; values JSON cannot express are stored as str()."""
    return to_json(value, fallback=str).decode("utf-8")


class EventStore:
    """SQLite-backed workflow observer with query methods."""

    SCHEMA = """
    -- Event log (append only)
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        workflow_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        body JSON NOT NULL,
        timestamp TIMESTAMP NOT NULL
    );

    CREATE TABLE IF NOT EXISTS logs (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        level TEXT NOT NULL,
        body JSON NOT NULL,
        timestamp TIMESTAMP NOT NULL
    );

    -- Latest snapshot per node
    CREATE TABLE IF NOT EXISTS snapshots (
        workflow_id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        snapshot JSON,
        updated_at TIMESTAMP NOT NULL
    );

    -- Latest record tree per root
    CREATE TABLE IF NOT EXISTS trees (
        root_id TEXT PRIMARY KEY,
        tree JSON NOT NULL,
        updated_at TIMESTAMP NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_events_workflow ON events(workflow_id, event_type);
    CREATE INDEX IF NOT EXISTS idx_logs_workflow ON logs(workflow_id);
    """

    def __init__(self, db_path: str | Path = ".treeflow/events.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(self.SCHEMA)

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Connection that commits on success and rolls back on error."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 30000")
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as e:
            conn.rollback()
            if "database is locked" in str(e):
                raise sqlite3.OperationalError(
                    f"Event store locked after 30s timeout. Check for long-running transactions: {e}"
                ) from e
            raise
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # --- Observer callbacks ---

    def on_event(self, event: WorkflowEvent) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO events (workflow_id, event_type, body, timestamp) VALUES (?, ?, ?, ?)",
                (
                    event.workflow_id,
                    event.type.value,
                    _dump(event),
                    event.timestamp.isoformat(),
                ),
            )

    def on_log(self, entry: LogEntry) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO logs (id, workflow_id, level, body, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.workflow_id,
                    entry.level.value,
                    _dump(entry),
                    entry.timestamp.isoformat(),
                ),
            )

    def on_state_snapshot(self, node: NodeRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO snapshots (workflow_id, status, snapshot, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    node.id,
                    node.status.value,
                    _dump(node.state_snapshot),
                    utc_now().isoformat(),
                ),
            )

    def on_tree_changed(self, root: NodeRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO trees (root_id, tree, updated_at) VALUES (?, ?, ?)",
                (root.id, _dump(root), utc_now().isoformat()),
            )

    # --- Query Methods ---

    def get_events(
        self, workflow_id: str, event_types: list[EventType] | None = None
    ) -> list[WorkflowEvent]:
        """Get events of a workflow in emission order, optionally filtered by type."""
        with self._connect() as conn:
            if event_types:
                placeholders = ",".join("?" * len(event_types))
                rows = conn.execute(
                    f"""
                    SELECT body FROM events
                    WHERE workflow_id = ? AND event_type IN ({placeholders})
                    ORDER BY id
                    """,
                    [workflow_id] + [et.value for et in event_types],
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT body FROM events WHERE workflow_id = ? ORDER BY id",
                    (workflow_id,),
                ).fetchall()

            return [WorkflowEvent.model_validate_json(row["body"]) for row in rows]

    def get_logs(self, workflow_id: str) -> list[LogEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT body FROM logs WHERE workflow_id = ? ORDER BY timestamp, rowid",
                (workflow_id,),
            ).fetchall()
            return [LogEntry.model_validate_json(row["body"]) for row in rows]

    def get_snapshot(self, workflow_id: str) -> dict[str, Any] | None:
        """Latest state snapshot of a workflow, or None if never captured."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT snapshot FROM snapshots WHERE workflow_id = ?",
                (workflow_id,),
            ).fetchone()
            if row is None or row["snapshot"] is None:
                return None
            return json.loads(row["snapshot"])

    def get_tree(self, root_id: str) -> NodeRecord | None:
        """Latest record tree published for a root."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT tree FROM trees WHERE root_id = ?",
                (root_id,),
            ).fetchone()
            if row is None:
                return None
            return NodeRecord.model_validate_json(row["tree"])
