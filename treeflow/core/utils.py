"""Shared utility functions for treeflow core modules.

Kept free of imports from other treeflow modules to avoid circular imports.
"""

import uuid
from datetime import UTC, datetime


def generate_id() -> str:
    """Generate an opaque unique identifier for workflows and log entries."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)
