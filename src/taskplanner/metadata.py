"""Metadata block codec.

Every managed issue body starts with a small header carrying the task fields
that have no native home in the tracker::

    ---
    priority: high
    due_date: 2026-02-10
    estimated_hours: 3
    actual_hours: 0
    tags: [backend, api]
    my_day: false
    ---

    Free text description follows the blank line.

The format is persisted in every issue and must stay stable: new keys may be
appended, existing keys are never renamed or removed.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from .errors import MalformedMetadataError
from .logging import get_logger

DELIMITER = "---"

# Fixed emission order; keys outside this tuple follow in insertion order.
METADATA_KEYS: tuple[str, ...] = (
    "priority",
    "due_date",
    "estimated_hours",
    "actual_hours",
    "tags",
    "my_day",
    "parent_task",
)

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?((\d+\.\d*|\.\d+)([eE][+-]?\d+)?|\d+[eE][+-]?\d+)$")


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return "[" + ", ".join(_render_value(v) for v in value) + "]"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    # a raw newline would end the line and corrupt the block
    return str(value).replace("\r", " ").replace("\n", " ")


def coerce_value(raw: str) -> Any:
    """Turn the textual right-hand side of a ``key: value`` line into a value."""
    value = raw.strip()
    if value == "true":
        return True
    if value == "false":
        return False
    if value == "null" or value == "":
        return None
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1].strip()
        if not inner:
            return []
        return [part.strip() for part in inner.split(",")]
    return value


def encode(metadata: Mapping[str, Any], description: str | None) -> str:
    """Render ``metadata`` as a header block followed by ``description``."""
    lines = [DELIMITER]
    ordered = [k for k in METADATA_KEYS if k in metadata]
    ordered.extend(k for k in metadata if k not in METADATA_KEYS)
    for key in ordered:
        value = metadata[key]
        if value is None:
            continue
        lines.append(f"{key}: {_render_value(value)}")
    lines.append(DELIMITER)
    lines.append("")
    lines.append(description or "")
    return "\n".join(lines)


def decode(body: str | None, *, strict: bool = False) -> tuple[dict[str, Any], str]:
    """Split ``body`` into ``(metadata, description)``.

    Bodies that do not open with the delimiter are returned whole as the
    description. A block that is opened but never closed cannot be repaired;
    it degrades to "no metadata" unless ``strict`` is set.
    """
    if not body:
        return {}, ""
    text = body.replace("\r\n", "\n")
    lines = text.split("\n")
    if lines[0].strip() != DELIMITER:
        return {}, body

    closing: int | None = None
    for idx in range(1, len(lines)):
        if lines[idx].strip() == DELIMITER:
            closing = idx
            break
    if closing is None:
        if strict:
            raise MalformedMetadataError("metadata block is missing its closing delimiter")
        get_logger().warning("metadata block not terminated; treating body as description")
        return {}, body

    metadata: dict[str, Any] = {}
    for line in lines[1:closing]:
        key, sep, value = line.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        metadata[key] = coerce_value(value)

    rest = lines[closing + 1 :]
    if rest and not rest[0].strip():
        rest = rest[1:]
    return metadata, "\n".join(rest)


__all__ = ["DELIMITER", "METADATA_KEYS", "coerce_value", "decode", "encode"]
