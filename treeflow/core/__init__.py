"""Core modules for treeflow."""

from treeflow.core.cache import CacheMetrics, ResultCache
from treeflow.core.cache_key import CacheKeyInputs, canonicalize, derive_key, generate_cache_key
from treeflow.core.concurrency import MergePolicy, merge_workflow_errors, run_concurrently
from treeflow.core.config import CacheSettings, TreeflowConfig, configure_logging, load_config
from treeflow.core.context import StepResult, WorkflowContext, get_current_context
from treeflow.core.errors import (
    AggregateExecutionError,
    CircularRelationshipError,
    ConfigError,
    IllegalTransitionError,
    SerializationError,
    StructuralError,
    TreeflowError,
    WorkflowExecutionError,
)
from treeflow.core.event_tree import EventNode, EventTree
from treeflow.core.events import EventType, WorkflowEvent
from treeflow.core.models import LogEntry, LogLevel, NodeRecord, StateField, WorkflowError, WorkflowStatus
from treeflow.core.observable import ChannelObserver, Observable, Subscription
from treeflow.core.observer import BaseObserver, WorkflowObserver
from treeflow.core.state import EventStore
from treeflow.core.workflow import Workflow

__all__ = [
    "AggregateExecutionError",
    "BaseObserver",
    "CacheKeyInputs",
    "CacheMetrics",
    "CacheSettings",
    "ChannelObserver",
    "CircularRelationshipError",
    "ConfigError",
    "EventNode",
    "EventStore",
    "EventTree",
    "EventType",
    "IllegalTransitionError",
    "LogEntry",
    "LogLevel",
    "MergePolicy",
    "NodeRecord",
    "Observable",
    "ResultCache",
    "SerializationError",
    "StateField",
    "StepResult",
    "StructuralError",
    "Subscription",
    "TreeflowConfig",
    "TreeflowError",
    "Workflow",
    "WorkflowContext",
    "WorkflowError",
    "WorkflowEvent",
    "WorkflowExecutionError",
    "WorkflowObserver",
    "WorkflowStatus",
    "canonicalize",
    "configure_logging",
    "derive_key",
    "generate_cache_key",
    "get_current_context",
    "load_config",
    "merge_workflow_errors",
    "run_concurrently",
]
