"""Workflow tree controller.

A `Workflow` is the live unit of work. Each one owns a `NodeRecord` shadow,
and the two trees (controllers and records) are kept mirror-consistent by the
only two operations that change topology: `attach_child` and `detach_child`.

Tree shape:
    root (observers registered here)
    ├── child A
    │   └── grandchild
    └── child B

Anything emitted anywhere in the tree is published on the channels of the
*current* root, so attaching a subtree "mounts" it for every root observer
without re-registration.

Ancestry walks always follow the live parent chain with a visited set; a
repeated node means the chain was mutated outside attach/detach and raises
`CircularRelationshipError` instead of looping.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from treeflow.core.context import WorkflowContext, bind_context, reset_context
from treeflow.core.errors import (
    CircularRelationshipError,
    IllegalTransitionError,
    StructuralError,
    WorkflowExecutionError,
)
from treeflow.core.events import EventType, WorkflowEvent
from treeflow.core.logger import WorkflowLogger
from treeflow.core.models import LogEntry, NodeRecord, StateField, WorkflowError, WorkflowStatus
from treeflow.core.observable import Observable, Subscription
from treeflow.core.observer import WorkflowObserver
from treeflow.core.snapshot import collect_state, normalize_fields
from treeflow.core.utils import generate_id

logger = logging.getLogger(__name__)

Executor = Callable[..., Awaitable[Any]]

ALLOWED_TRANSITIONS: dict[WorkflowStatus, frozenset[WorkflowStatus]] = {
    WorkflowStatus.IDLE: frozenset({WorkflowStatus.RUNNING, WorkflowStatus.CANCELLED}),
    WorkflowStatus.RUNNING: frozenset(
        {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}
    ),
    WorkflowStatus.COMPLETED: frozenset(),
    WorkflowStatus.FAILED: frozenset(),
    WorkflowStatus.CANCELLED: frozenset(),
}


class Workflow:
    """A node of execution in the workflow tree.

    Either pass an `executor` coroutine function receiving a
    `WorkflowContext`, or subclass and override `execute`:

        async def pipeline(ctx):
            data = (await ctx.step("fetch", fetch_data)).unwrap()
            return await ctx.spawn(Workflow("transform", executor=transform))

        result = await Workflow("pipeline", executor=pipeline).run()
    """

    def __init__(
        self,
        name: str | None = None,
        parent: Workflow | None = None,
        *,
        executor: Executor | None = None,
        state_fields: Mapping[str, StateField | Mapping[str, bool]] | None = None,
    ):
        self.id = generate_id()
        self.name = name or type(self).__name__
        self.status = WorkflowStatus.IDLE
        self.parent: Workflow | None = None
        self.children: list[Workflow] = []
        self.node = NodeRecord(id=self.id, name=self.name)
        self.state_fields = normalize_fields(state_fields)
        self._executor = executor

        # Channels are only used while this workflow is a root
        self._events: Observable[WorkflowEvent] = Observable(f"{self.name}.events")
        self._logs: Observable[LogEntry] = Observable(f"{self.name}.logs")
        self._snapshots: Observable[NodeRecord] = Observable(f"{self.name}.snapshots")
        self._tree_changes: Observable[NodeRecord] = Observable(f"{self.name}.tree")
        self._observers: list[tuple[WorkflowObserver, list[Subscription]]] = []

        self.logger = WorkflowLogger(self)

        if parent is not None:
            parent.attach_child(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} id={self.id[:8]} status={self.status.value}>"

    # --- Status ---

    def set_status(self, status: WorkflowStatus) -> None:
        """Move to `status`, mirroring it onto the node record."""
        allowed = ALLOWED_TRANSITIONS[self.status]
        if status not in allowed:
            raise IllegalTransitionError(
                f"Illegal transition for workflow '{self.name}': "
                f"{self.status.value} -> {status.value}"
            )
        logger.debug(f"Workflow '{self.name}' {self.status.value} -> {status.value}")
        self.status = status
        self.node.status = status

    @property
    def is_cancelled(self) -> bool:
        return self.status is WorkflowStatus.CANCELLED

    def cancel(self, reason: str | None = None) -> None:
        """Cancel cooperatively.

        Already emitted events stay, already launched children keep running;
        code inside `execute` is expected to poll `is_cancelled`.
        """
        self.set_status(WorkflowStatus.CANCELLED)
        self.logger.info(f"Workflow cancelled: {reason}" if reason else "Workflow cancelled")

    # --- Tree structure ---

    def attach_child(self, child: Workflow) -> None:
        """Attach `child` under this workflow in both trees.

        Raises:
            StructuralError: child is not a Workflow, already has another
                parent, is this workflow or one of its ancestors, or is
                already attached here.
        """
        self.validate_attach(child)
        if any(existing is child for existing in self.children):
            raise StructuralError(
                f"Workflow '{child.name}' is already attached to '{self.name}'"
            )

        # Both trees change before any observer can look at them
        child.parent = self
        self.children.append(child)
        child.node.parent_id = self.id
        self.node.children.append(child.node)

        logger.debug(f"Attached '{child.name}' to '{self.name}'")
        self.emit(EventType.CHILD_ATTACHED, parent_id=self.id, child_id=child.id)

    def validate_attach(self, child: Workflow) -> None:
        """Raise StructuralError if `child` could not be placed under this workflow.

        A child already attached here passes; nothing is mutated.
        """
        if not isinstance(child, Workflow):
            raise StructuralError(
                f"Cannot attach {type(child).__name__} to workflow '{self.name}': "
                "only Workflow instances can be attached"
            )
        if child.parent is not None and child.parent is not self:
            raise StructuralError(
                f"Workflow '{child.name}' is already attached to parent "
                f"'{child.parent.name}'. Detach it first."
            )
        if child is self or self.is_descendant_of(child):
            raise StructuralError(
                f"Cannot attach '{child.name}' to '{self.name}': "
                "it would become its own ancestor"
            )

    def detach_child(self, child: Workflow) -> None:
        """Detach `child`; it keeps its own subtree and becomes a root.

        Raises:
            StructuralError: child is not attached to this workflow.
        """
        index = next((i for i, c in enumerate(self.children) if c is child), None)
        if index is None:
            name = getattr(child, "name", repr(child))
            raise StructuralError(f"Workflow '{name}' is not attached to '{self.name}'")

        del self.children[index]
        child.parent = None
        node_index = next(
            (i for i, n in enumerate(self.node.children) if n is child.node), None
        )
        if node_index is not None:
            del self.node.children[node_index]
        child.node.parent_id = None

        logger.debug(f"Detached '{child.name}' from '{self.name}'")
        self.emit(EventType.CHILD_DETACHED, parent_id=self.id, child_id=child.id)

    def _walk_up(self):
        """Yield ancestors nearest first, failing fast on a repeated node."""
        visited = {id(self)}
        current = self.parent
        while current is not None:
            if id(current) in visited:
                raise CircularRelationshipError(
                    f"Circular relationship detected: workflow '{current.name}' "
                    f"appears twice in the parent chain of '{self.name}'"
                )
            visited.add(id(current))
            yield current
            current = current.parent

    def is_descendant_of(self, ancestor: Workflow) -> bool:
        """True if `ancestor` is found in this workflow's parent chain."""
        return any(node is ancestor for node in self._walk_up())

    def get_ancestors(self) -> list[Workflow]:
        """Ancestors ordered from the parent up to the root."""
        return list(self._walk_up())

    def get_root(self) -> Workflow:
        """Top-most ancestor, or this workflow if it has no parent."""
        root = self
        for ancestor in self._walk_up():
            root = ancestor
        return root

    # --- Observers and propagation ---

    @property
    def observers(self) -> list[WorkflowObserver]:
        return [observer for observer, _ in self._observers]

    def add_observer(self, observer: WorkflowObserver) -> None:
        """Register an observer for everything emitted in this tree.

        Raises:
            StructuralError: this workflow is not a root.
        """
        if self.parent is not None:
            raise StructuralError(
                f"Observers can only be added to root workflows; "
                f"'{self.name}' is attached to '{self.parent.name}'"
            )
        subscriptions = [
            self._events.subscribe(observer.on_event),
            self._logs.subscribe(observer.on_log),
            self._snapshots.subscribe(observer.on_state_snapshot),
            self._tree_changes.subscribe(observer.on_tree_changed),
        ]
        self._observers.append((observer, subscriptions))

    def remove_observer(self, observer: WorkflowObserver) -> None:
        for index, (registered, subscriptions) in enumerate(self._observers):
            if registered is observer:
                for subscription in subscriptions:
                    subscription.unsubscribe()
                del self._observers[index]
                return

    def emit_event(self, event: WorkflowEvent) -> None:
        """Record `event` on this node and publish it through the root."""
        self.node.events.append(event)
        root = self.get_root()
        root._events.publish(event)
        if event.is_structural:
            root._tree_changes.publish(root.node)

    def emit(self, event_type: EventType, **fields: Any) -> WorkflowEvent:
        """Build an event originating from this workflow and emit it."""
        event = WorkflowEvent(type=event_type, workflow_id=self.id, **fields)
        self.emit_event(event)
        return event

    def publish_log(self, entry: LogEntry) -> None:
        self.get_root()._logs.publish(entry)

    def snapshot_state(self) -> dict[str, Any]:
        """Capture observed state into the node record and notify observers."""
        snapshot = collect_state(self, self.state_fields)
        self.node.state_snapshot = snapshot
        self.get_root()._snapshots.publish(self.node)
        self.emit(EventType.STATE_SNAPSHOT, payload=dict(snapshot))
        return snapshot

    def enrich_error(self, exc: BaseException) -> WorkflowError:
        """Wrap `exc` with this workflow's id, state snapshot and logs."""
        if isinstance(exc, WorkflowExecutionError):
            return exc.error
        return WorkflowError(
            message=str(exc) or type(exc).__name__,
            workflow_id=self.id,
            error_type=type(exc).__name__,
            stack="".join(traceback.format_exception(exc)),
            state=collect_state(self, self.state_fields),
            logs=list(self.node.logs),
            original=exc,
        )

    # --- Execution ---

    async def execute(self, ctx: WorkflowContext, *args: Any, **kwargs: Any) -> Any:
        """Body of the workflow. Runs the executor unless overridden."""
        if self._executor is None:
            raise NotImplementedError(
                f"{type(self).__name__} has no executor; pass executor= or override execute()"
            )
        return await self._executor(ctx, *args, **kwargs)

    async def run(self, *args: Any, **kwargs: Any) -> Any:
        """Execute the workflow and drive its lifecycle.

        Failures move the workflow to `failed`, emit an `error` event with
        the enriched error and re-raise the original exception. Errors that
        were already reported at a step or task boundary are not re-emitted.
        """
        self.set_status(WorkflowStatus.RUNNING)
        ctx = WorkflowContext(self)
        token = bind_context(ctx)
        try:
            result = await self.execute(ctx, *args, **kwargs)
        except asyncio.CancelledError:
            if not self.status.is_terminal:
                self.set_status(WorkflowStatus.CANCELLED)
            raise
        except Exception as e:
            error = self.enrich_error(e)
            if self.status is WorkflowStatus.RUNNING:
                self.set_status(WorkflowStatus.FAILED)
            if not isinstance(e, WorkflowExecutionError):
                self.emit(EventType.ERROR, error=error)
            self.logger.error(f"Workflow failed: {error.message}")
            raise
        finally:
            reset_context(token)

        if self.status is WorkflowStatus.RUNNING:
            self.set_status(WorkflowStatus.COMPLETED)
        return result
