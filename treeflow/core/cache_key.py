"""Deterministic cache keys.

A key is the SHA-256 hex digest of a canonical text form of the inputs. The
canonical form does not depend on mapping insertion order or set iteration
order, so semantically identical inputs always map to the same key.
"""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from treeflow.core.errors import SerializationError


def canonicalize(value: Any) -> str:
    """Canonical text form of `value`.

    Raises:
        SerializationError: value is cyclic, contains an unsupported type or
            is nested beyond the interpreter's recursion limit.
    """
    try:
        return _canonical(value, set())
    except RecursionError as e:
        raise SerializationError(
            "Value is nested too deeply to canonicalize"
        ) from e


def _canonical(value: Any, active: set[int]) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    # Before str/int: str and int enums are instances of both
    if isinstance(value, Enum):
        return _canonical(value.value, active)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return json.dumps(value.isoformat())
    if isinstance(value, (bytes, bytearray)):
        return json.dumps(bytes(value).hex())
    if isinstance(value, BaseModel):
        return _canonical(value.model_dump(mode="json"), active)

    if not isinstance(value, (Mapping, list, tuple, set, frozenset)):
        raise SerializationError(f"Cannot canonicalize value of type {type(value).__name__}")

    if id(value) in active:
        raise SerializationError("Cannot canonicalize cyclic structure")
    active.add(id(value))
    try:
        if isinstance(value, Mapping):
            pairs = sorted(
                (_canonical(k, active), _canonical(v, active))
                for k, v in value.items()
            )
            return "{" + ",".join(f"{k}:{v}" for k, v in pairs) + "}"
        if isinstance(value, (set, frozenset)):
            items = sorted(_canonical(v, active) for v in value)
            return "Set[" + ",".join(items) + "]"
        return "[" + ",".join(_canonical(v, active) for v in value) + "]"
    finally:
        active.discard(id(value))


def derive_key(value: Any, namespace: str | None = None) -> str:
    """SHA-256 hex digest of `value`'s canonical form, optionally namespaced.

    Namespaced keys look like "<namespace>:<digest>" so a whole namespace can
    be dropped with `ResultCache.invalidate_prefix`.
    """
    digest = hashlib.sha256(canonicalize(value).encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}" if namespace else digest


class CacheKeyInputs(BaseModel):
    """Semantic inputs of a model call."""

    model_config = ConfigDict(frozen=True)

    user: str
    model: str
    data: dict[str, Any] | None = None
    system: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    tools: list[str] = []
    mcps: list[str] = []
    skills: list[str] = []
    response_model: type[BaseModel] | None = None


def schema_hash(response_model: type[BaseModel] | None) -> str:
    if response_model is None:
        return "no-schema"
    return hashlib.sha256(
        canonicalize(response_model.model_json_schema()).encode("utf-8")
    ).hexdigest()


def generate_cache_key(inputs: CacheKeyInputs) -> str:
    """Key for a model call. Tool, MCP and skill order does not matter."""
    normalized: dict[str, Any] = {"user": inputs.user, "model": inputs.model}
    if inputs.data is not None:
        normalized["data"] = inputs.data
    if inputs.system is not None:
        normalized["system"] = inputs.system
    if inputs.temperature is not None:
        normalized["temperature"] = inputs.temperature
    if inputs.max_tokens is not None:
        normalized["max_tokens"] = inputs.max_tokens
    if inputs.tools:
        normalized["tools"] = sorted(inputs.tools)
    if inputs.mcps:
        normalized["mcps"] = sorted(inputs.mcps)
    if inputs.skills:
        normalized["skills"] = sorted(inputs.skills)
    normalized["schema_hash"] = schema_hash(inputs.response_model)
    return derive_key(normalized)
