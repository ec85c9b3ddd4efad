"""Error taxonomy & redaction helpers.

Every failure the core raises derives from :class:`TaskPlannerError` so the
CLI can render them uniformly. Transport adapters translate their own
failures into this taxonomy; the repository lets them propagate unchanged.

Public API:
- NotFoundError, RemoteWriteError, MalformedMetadataError, ConfigurationError
- TransportError (read failures from either transport), TaskCycleError
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"gho_[A-Za-z0-9]{20,40}"),  # gh CLI oauth tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"sk-[A-Za-z0-9_-]{20,}"),  # OpenAI keys
]

_REDACTION_PLACEHOLDER = "<redacted>"


class TaskPlannerError(Exception):
    """Base class for every error raised by the planner core."""


class NotFoundError(TaskPlannerError):
    """The requested task or sprint has no corresponding remote record."""

    def __init__(self, kind: str, number: int | str):
        super().__init__(f"{kind} #{number} not found")
        self.kind = kind
        self.number = number


class RemoteWriteError(TaskPlannerError):
    """The issue store rejected a create/update (bad assignee, milestone, auth)."""

    def __init__(self, message: str, *, status: int | None = None, details: str | None = None):
        super().__init__(redact(message))
        self.status = status
        self.details = redact(details) if details else details


class MalformedMetadataError(TaskPlannerError):
    """A body opened a metadata block that could not be parsed.

    Decoding degrades gracefully by default; this is raised only when the
    caller asks for strict decoding.
    """


class ConfigurationError(TaskPlannerError):
    """Required store location or credentials are missing."""


class TransportError(TaskPlannerError):
    """A read against the issue store failed for reasons other than absence."""


class TaskCycleError(TaskPlannerError, ValueError):
    """Setting a parent task would make a task its own ancestor."""


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace sensitive tokens in arbitrary text with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception for structured logs.

    - NotFoundError -> 'not_found'
    - RemoteWriteError -> 'remote_write'
    - ConfigurationError -> 'config'
    - rate limit wording -> 'github.rate_limit' (transient)
    - network wording -> 'network' (transient)
    - fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if isinstance(exc, NotFoundError):
        return ErrorInfo("not_found", redact(msg), name)
    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if any(
        k in low
        for k in (
            "timeout",
            "timed out",
            "connection reset",
            "unreachable",
            "temporarily unavailable",
        )
    ):
        return ErrorInfo("network", redact(msg), name, transient=True)
    if isinstance(exc, RemoteWriteError):
        details = {"status": exc.status} if exc.status is not None else None
        return ErrorInfo("remote_write", redact(msg), name, details=details)
    if isinstance(exc, ConfigurationError):
        return ErrorInfo("config", redact(msg), name)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "ConfigurationError",
    "ErrorInfo",
    "MalformedMetadataError",
    "NotFoundError",
    "RemoteWriteError",
    "TaskCycleError",
    "TaskPlannerError",
    "TransportError",
    "classify_error",
    "redact",
]
