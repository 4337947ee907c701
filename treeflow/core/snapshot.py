"""State snapshots with per-field redaction.

Which attributes of a workflow appear in its snapshot is declared by a
descriptor table passed at construction:

    Workflow("ingest", state_fields={
        "current_batch": StateField(),
        "api_token": StateField(redact=True),
        "scratch": StateField(hidden=True),
    })
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from treeflow.core.models import StateField

REDACTED = "***"


def collect_state(obj: object, fields: Mapping[str, StateField]) -> dict[str, Any]:
    """Collect the observed attributes of `obj` according to `fields`.

    Hidden fields are skipped, redacted fields are replaced by "***" and
    attributes that are not set yet are reported as None.
    """
    snapshot: dict[str, Any] = {}
    for name, meta in fields.items():
        if meta.hidden:
            continue
        if meta.redact:
            snapshot[name] = REDACTED
            continue
        snapshot[name] = getattr(obj, name, None)
    return snapshot


def normalize_fields(
    fields: Mapping[str, StateField | Mapping[str, bool]] | None,
) -> dict[str, StateField]:
    """Accept StateField instances or plain {"hidden": ..., "redact": ...} dicts."""
    if not fields:
        return {}
    normalized: dict[str, StateField] = {}
    for name, meta in fields.items():
        normalized[name] = meta if isinstance(meta, StateField) else StateField(**meta)
    return normalized
