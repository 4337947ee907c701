"""Concurrent execution of child workflows with partial-failure aggregation.

Every child is launched at once and every outcome is collected; one failure
never cancels its siblings. What happens when some children fail depends on
the merge policy:

- no policy (or disabled): the first failure in launch order is re-raised
  unchanged and the others are only logged;
- enabled policy: all failures are merged into one `WorkflowError`, emitted
  once as an `error` event on the parent and raised as
  `AggregateExecutionError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from treeflow.core.errors import AggregateExecutionError, StructuralError
from treeflow.core.events import EventType
from treeflow.core.models import WorkflowError

if TYPE_CHECKING:
    from treeflow.core.workflow import Workflow

logger = logging.getLogger(__name__)


@dataclass
class MergePolicy:
    """How concurrent child failures are reported.

    Passing any policy opts in to merging: a bare `MergePolicy()` is enabled.
    Pass no policy, or `enabled=False`, to re-raise the first failure instead.

    Attributes:
        enabled: Merge all failures instead of re-raising the first one.
            Defaults to True.
        combine: Custom merger receiving the failed children's errors in
            launch order. Defaults to `merge_workflow_errors`.
    """

    enabled: bool = True
    combine: Callable[[list[WorkflowError]], WorkflowError] | None = None


def merge_workflow_errors(
    errors: list[WorkflowError],
    task_name: str,
    parent_workflow_id: str,
    total_children: int,
) -> WorkflowError:
    """Merge child failures into one error attributed to the parent.

    Stack and state come from the first failure; logs of every failure are
    concatenated in order.
    """
    message = f"{len(errors)} of {total_children} concurrent children failed in task '{task_name}'"
    failed_ids = list(dict.fromkeys(e.workflow_id for e in errors))
    first = errors[0] if errors else None
    return WorkflowError(
        message=message,
        workflow_id=parent_workflow_id,
        error_type=AggregateExecutionError.__name__,
        stack=first.stack if first else None,
        state=dict(first.state) if first else {},
        logs=[entry for e in errors for entry in e.logs],
        failed_workflow_ids=failed_ids,
        total_children=total_children,
        errors=list(errors),
    )


async def run_concurrently(
    parent: Workflow,
    task_name: str,
    children: Iterable[Workflow],
    merge_policy: MergePolicy | None = None,
) -> list[Any]:
    """Run `children` concurrently under `parent` as task `task_name`.

    Returns:
        Child results in launch order.

    Raises:
        StructuralError: a value is not a Workflow, belongs to another parent,
            is an ancestor of `parent` or is listed twice. Raised before
            anything is attached or emitted.
        AggregateExecutionError: some children failed and merging is enabled.
        Exception: the first child failure when merging is disabled.
    """
    children = list(children)
    # Reject the whole batch before touching the tree
    seen: set[int] = set()
    for child in children:
        parent.validate_attach(child)
        if id(child) in seen:
            raise StructuralError(
                f"Workflow '{child.name}' is listed more than once in task '{task_name}'"
            )
        seen.add(id(child))

    parent.emit(EventType.TASK_START, task=task_name)
    for child in children:
        if child.parent is not parent:
            parent.attach_child(child)

    outcomes = await asyncio.gather(
        *(child.run() for child in children), return_exceptions=True
    )

    failures = [
        (child, outcome)
        for child, outcome in zip(children, outcomes)
        if isinstance(outcome, BaseException)
    ]
    if not failures:
        parent.emit(EventType.TASK_END, task=task_name)
        return list(outcomes)

    logger.info(
        f"Task '{task_name}' of workflow '{parent.name}': "
        f"{len(failures)} of {len(children)} children failed"
    )

    if merge_policy is None or not merge_policy.enabled:
        for child, exc in failures[1:]:
            logger.warning(f"Unreported failure in child '{child.name}' of task '{task_name}': {exc}")
        raise failures[0][1]

    errors = [child.enrich_error(exc) for child, exc in failures]
    if merge_policy.combine is not None:
        merged = merge_policy.combine(errors)
    else:
        merged = merge_workflow_errors(errors, task_name, parent.id, len(children))

    parent.emit(EventType.ERROR, task=task_name, error=merged)
    raise AggregateExecutionError(
        merged,
        failed_workflow_ids=list(dict.fromkeys(e.workflow_id for e in errors)),
        total_children=len(children),
    )
