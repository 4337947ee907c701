"""Functional execution context handed to a running workflow.

`Workflow.run()` binds a `WorkflowContext` for the duration of `execute`, so
helpers deep in the call stack can reach it with `get_current_context()`.

Steps are the instrumentation boundary: a failing step does not raise, it
returns a `StepResult` carrying the enriched `WorkflowError`. Call `unwrap()`
to turn it back into an exception when the caller wants to propagate.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable, Iterable
from contextvars import ContextVar, Token
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from treeflow.core.cache_key import derive_key
from treeflow.core.concurrency import MergePolicy, run_concurrently
from treeflow.core.errors import SerializationError, WorkflowExecutionError
from treeflow.core.event_tree import EventTree
from treeflow.core.events import EventType
from treeflow.core.models import WorkflowError

if TYPE_CHECKING:
    from treeflow.core.cache import ResultCache
    from treeflow.core.logger import WorkflowLogger
    from treeflow.core.workflow import Workflow

logger = logging.getLogger(__name__)

T = TypeVar("T")

_current_context: ContextVar[WorkflowContext | None] = ContextVar(
    "treeflow_current_context", default=None
)

_MISSING = object()


def get_current_context() -> WorkflowContext | None:
    """Context of the workflow currently executing in this task, if any."""
    return _current_context.get()


def bind_context(ctx: WorkflowContext) -> Token:
    return _current_context.set(ctx)


def reset_context(token: Token) -> None:
    _current_context.reset(token)


async def _call(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call `fn`, awaiting the result when it is awaitable."""
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass
class StepResult(Generic[T]):
    """Outcome of one instrumented step: a value or an enriched error."""

    step: str
    value: T | None = None
    error: WorkflowError | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise `WorkflowExecutionError` on failure."""
        if self.error is not None:
            raise WorkflowExecutionError(self.error)
        return self.value  # type: ignore[return-value]


class WorkflowContext:
    """Operations available to a workflow while it runs."""

    def __init__(self, workflow: Workflow):
        self.workflow = workflow

    @property
    def workflow_id(self) -> str:
        return self.workflow.id

    @property
    def parent_workflow_id(self) -> str | None:
        parent = self.workflow.parent
        return parent.id if parent is not None else None

    @property
    def logger(self) -> WorkflowLogger:
        return self.workflow.logger

    @property
    def is_cancelled(self) -> bool:
        return self.workflow.is_cancelled

    @property
    def event_tree(self) -> EventTree:
        """Fresh event tree over this workflow's subtree."""
        return EventTree(self.workflow.node)

    async def step(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> StepResult:
        """Run `fn` as a named step, emitting step_start/step_end.

        `fn` may be a plain or a coroutine function. Exceptions become an
        `error` event plus a failed `StepResult`; they are not re-raised.
        """
        wf = self.workflow
        wf.emit(EventType.STEP_START, step=name)
        started = time.perf_counter()
        try:
            value = await _call(fn, *args, **kwargs)
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            error = wf.enrich_error(e)
            wf.emit(EventType.ERROR, step=name, error=error)
            wf.logger.error(f"Step '{name}' failed: {error.message}")
            return StepResult(step=name, error=error, duration_ms=duration_ms)

        duration_ms = (time.perf_counter() - started) * 1000
        wf.emit(EventType.STEP_END, step=name, duration_ms=duration_ms)
        return StepResult(step=name, value=value, duration_ms=duration_ms)

    async def spawn(self, child: Workflow, *args: Any, **kwargs: Any) -> Any:
        """Attach `child` (unless already attached here) and run it."""
        if child.parent is not self.workflow:
            self.workflow.attach_child(child)
        return await child.run(*args, **kwargs)

    async def run_concurrent(
        self,
        task_name: str,
        children: Iterable[Workflow],
        merge_policy: MergePolicy | None = None,
    ) -> list[Any]:
        return await run_concurrently(self.workflow, task_name, children, merge_policy)

    async def cached(
        self,
        inputs: Any,
        fn: Callable[[], Any],
        *,
        cache: ResultCache,
        ttl: float | None = None,
        namespace: str | None = None,
    ) -> Any:
        """Return the cached result for `inputs`, computing it with `fn` on a miss.

        Inputs that cannot be canonicalized bypass the cache entirely.
        """
        try:
            key = derive_key(inputs, namespace)
        except SerializationError as e:
            logger.warning(f"Cache bypassed in workflow '{self.workflow.name}': {e}")
            return await _call(fn)

        value = cache.get(key, _MISSING)
        if value is not _MISSING:
            self.workflow.emit(EventType.CACHE_HIT, key=key)
            return value

        self.workflow.emit(EventType.CACHE_MISS, key=key)
        value = await _call(fn)
        cache.set(key, value, ttl=ttl)
        return value
