"""Retry / backoff for the issue store transports.

Both adapters route their remote calls through ``run_with_retries``:

* ``gh`` subprocess failures are retried when the captured output mentions a
  rate limit or abuse detection;
* REST calls are retried on connection errors and timeouts, and on responses
  the caller flags as transient (429, 502-504, rate-limited 403).

Anything else propagates on the first failure. The repository above never
retries on its own.

Environment overrides:
  TASKPLANNER_RETRY_ATTEMPTS (default 3)
  TASKPLANNER_RETRY_BASE (seconds base, default 0.5)
  TASKPLANNER_RETRY_MAX_SLEEP (cap in seconds, unset = no cap)
"""

from __future__ import annotations

import os
import random
import re
import subprocess  # nosec B404 - required for retrying GitHub CLI interactions
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests

from .logging import get_logger

T = TypeVar("T")

TRANSIENT_TOKENS = (
    "rate limit",
    "abuse detection",
    "secondary rate",
)

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: _env_int("TASKPLANNER_RETRY_ATTEMPTS", 3))
    base_sleep: float = field(default_factory=lambda: _env_float("TASKPLANNER_RETRY_BASE", 0.5))
    max_sleep: float | None = field(
        default_factory=lambda: (
            _env_float("TASKPLANNER_RETRY_MAX_SLEEP", 0.0)
            if os.environ.get("TASKPLANNER_RETRY_MAX_SLEEP")
            else None
        )
    )


def extract_explicit_backoff(text: str) -> float | None:
    """Pull an explicit wait (``Retry-After: 12`` / ``wait 30 seconds``) from text."""
    if not text:
        return None
    for pattern in (_RE_RETRY_AFTER, _RE_SECONDS_HINT):
        m = pattern.search(text)
        if m:
            val = float(m.group(1))
            return val if val > 0 else None
    return None


def is_transient(output: str) -> bool:
    out_lower = (output or "").lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def compute_sleep(attempt: int, cfg: RetryConfig, hint: str = "") -> float:
    explicit = extract_explicit_backoff(hint)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for = explicit if explicit is not None else backoff
    if cfg.max_sleep is not None and cfg.max_sleep >= 0:
        sleep_for = min(sleep_for, cfg.max_sleep)
    return sleep_for


def _pause(attempt: int, attempts: int, cfg: RetryConfig, hint: str) -> None:
    sleep_for = compute_sleep(attempt, cfg, hint)
    get_logger().warning(
        f"transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
        attempt=attempt,
    )
    time.sleep(sleep_for)


def run_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig | None = None,
    transient_result: Callable[[T], str | None] | None = None,
) -> T:
    """Call ``fn`` until it succeeds, fails permanently or attempts run out.

    ``transient_result`` inspects a returned value; returning a string marks
    it transient (the string is scanned for an explicit backoff hint). The
    last transient result is returned as-is once attempts are exhausted.
    """
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        last = attempt >= attempts
        try:
            result = fn()
        except subprocess.CalledProcessError as exc:
            out = exc.output or ""
            if last or not is_transient(out):
                raise
            _pause(attempt, attempts, cfg, out)
            continue
        except (requests.ConnectionError, requests.Timeout) as exc:
            if last:
                raise
            _pause(attempt, attempts, cfg, str(exc))
            continue
        if transient_result is not None and not last:
            hint = transient_result(result)
            if hint is not None:
                _pause(attempt, attempts, cfg, hint)
                continue
        return result
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = [
    "RetryConfig",
    "compute_sleep",
    "extract_explicit_backoff",
    "is_transient",
    "run_with_retries",
]
