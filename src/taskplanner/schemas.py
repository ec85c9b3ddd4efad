"""JSON Schemas for planning assistant answers.

Schemas are shallow: they pin the envelope and the per-entry shape the
planner relies on and leave everything else open. A failed check is
reported, not fatal; the planner still keeps whichever entries are usable.
"""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

SCHEMA_KEY = "$schema"
SCHEMA_URL = "http://json-schema.org/draft-07/schema#"

_PRIORITY = {"enum": ["urgent", "high", "medium", "low"]}


def get_schemas() -> dict[str, dict[str, Any]]:
    """Return a mapping of schema name -> JSON Schema dictionary.

    Keys:
        plan:       day plan ``{plan: [{id, reason}], summary, tip}``
        subtasks:   task decomposition ``{subtasks: [{title, ...}]}``
        priority:   priority suggestion ``{priority, reason}``
        description: drafted task description ``{description}``
    """
    plan = {
        SCHEMA_KEY: SCHEMA_URL,
        "title": "DayPlan",
        "type": "object",
        "required": ["plan"],
        "properties": {
            "plan": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["id"],
                    "properties": {
                        "id": {"type": "integer"},
                        "reason": {"type": "string"},
                    },
                },
            },
            "summary": {"type": "string"},
            "tip": {"type": ["string", "null"]},
        },
    }
    subtasks = {
        SCHEMA_KEY: SCHEMA_URL,
        "title": "TaskDecomposition",
        "type": "object",
        "required": ["subtasks"],
        "properties": {
            "subtasks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["title"],
                    "properties": {
                        "title": {"type": "string", "minLength": 1},
                        "description": {"type": "string"},
                        "estimated_hours": {"type": "number", "minimum": 0},
                        "priority": _PRIORITY,
                    },
                },
            }
        },
    }
    priority = {
        SCHEMA_KEY: SCHEMA_URL,
        "title": "PrioritySuggestion",
        "type": "object",
        "required": ["priority"],
        "properties": {"priority": _PRIORITY, "reason": {"type": "string"}},
    }
    description = {
        SCHEMA_KEY: SCHEMA_URL,
        "title": "TaskDescription",
        "type": "object",
        "required": ["description"],
        "properties": {"description": {"type": "string"}},
    }
    return {
        "plan": plan,
        "subtasks": subtasks,
        "priority": priority,
        "description": description,
    }


_VALIDATORS: dict[str, Draft7Validator] = {}


def _validator(name: str) -> Draft7Validator:
    if name not in _VALIDATORS:
        schemas = get_schemas()
        if name not in schemas:
            raise KeyError(f"unknown schema {name!r}")
        _VALIDATORS[name] = Draft7Validator(schemas[name])
    return _VALIDATORS[name]


def schema_errors(name: str, data: Any) -> list[str]:
    """Validation messages for ``data`` against schema ``name``, path-prefixed."""
    errors = sorted(_validator(name).iter_errors(data), key=lambda err: list(err.path))
    messages: list[str] = []
    for err in errors:
        location = "/".join(str(p) for p in err.path)
        messages.append(f"{location}: {err.message}" if location else err.message)
    return messages


__all__ = ["get_schemas", "schema_errors"]
