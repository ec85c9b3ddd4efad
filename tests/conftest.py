"""Pytest configuration for TaskPlanner tests.

Ensures the in-repo ``src`` directory is on ``sys.path`` so the package can
be imported without an editable install, and provides an in-memory issue
store that answers in both transport shapes.
"""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path
from typing import Any

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

py_path = os.environ.get("PYTHONPATH", "")
parts = [p for p in py_path.split(os.pathsep) if p]
if str(SRC) not in parts:
    parts.insert(0, str(SRC))
    os.environ["PYTHONPATH"] = os.pathsep.join(parts)

from taskplanner.errors import NotFoundError, RemoteWriteError  # noqa: E402
from taskplanner.repository import TaskRepository  # noqa: E402
from taskplanner.store import IssueFilter  # noqa: E402

_TIMESTAMP = "2026-01-01T09:00:00Z"


class FakeIssueStore:
    """In-memory issue store.

    Even-numbered issues come back in ``gh`` CLI shape (camelCase, upper-case
    state), odd-numbered ones in REST shape, so every repository test also
    exercises both halves of the normalizer.
    """

    def __init__(self, repo: str = "acme/planner") -> None:
        self.repo = repo
        self.issues: dict[int, dict[str, Any]] = {}
        self.milestones: dict[int, dict[str, Any]] = {}
        self.labels: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, Any]] = []
        self._next_issue = 1
        self._next_milestone = 1

    # --- helpers ----------------------------------------------------------
    def _milestone_ref(self, number: int | None) -> dict[str, Any] | None:
        if number is None or number not in self.milestones:
            return None
        return {"number": number, "title": self.milestones[number]["title"]}

    def _render(self, rec: dict[str, Any]) -> dict[str, Any]:
        number = rec["number"]
        milestone = self._milestone_ref(rec["milestone"])
        html = f"https://github.com/{self.repo}/issues/{number}"
        if number % 2 == 0:
            reason = rec["state_reason"]
            return {
                "number": number,
                "title": rec["title"],
                "body": rec["body"],
                "state": rec["state"].upper(),
                "stateReason": reason.upper() if reason else "",
                "labels": [{"name": n, "color": "ededed"} for n in rec["labels"]],
                "assignees": [{"login": a} for a in rec["assignees"]],
                "milestone": milestone,
                "url": html,
                "createdAt": _TIMESTAMP,
                "updatedAt": _TIMESTAMP,
            }
        return {
            "number": number,
            "title": rec["title"],
            "body": rec["body"],
            "state": rec["state"],
            "state_reason": rec["state_reason"],
            "labels": [{"name": n} for n in rec["labels"]],
            "assignee": {"login": rec["assignees"][0]} if rec["assignees"] else None,
            "assignees": [{"login": a} for a in rec["assignees"]],
            "milestone": milestone,
            "html_url": html,
            "url": f"https://api.github.com/repos/{self.repo}/issues/{number}",
            "created_at": _TIMESTAMP,
            "updated_at": _TIMESTAMP,
        }

    def _apply(self, rec: dict[str, Any], payload: dict[str, Any]) -> None:
        if "milestone" in payload and payload["milestone"] is not None:
            if payload["milestone"] not in self.milestones:
                raise RemoteWriteError("Validation Failed: milestone", status=422)
        for key in ("title", "body"):
            if key in payload:
                rec[key] = payload[key]
        if "labels" in payload:
            rec["labels"] = list(payload["labels"])
        if "assignees" in payload:
            rec["assignees"] = list(payload["assignees"])
        if "milestone" in payload:
            rec["milestone"] = payload["milestone"]
        if "state" in payload:
            if payload["state"] == "open" and rec["state"] == "closed":
                rec["state_reason"] = "reopened"
            elif payload["state"] == "closed":
                rec["state_reason"] = payload.get("state_reason") or "completed"
            rec["state"] = payload["state"]

    # --- issues -----------------------------------------------------------
    def list_issues(self, query: IssueFilter) -> list[dict[str, Any]]:
        self.calls.append(("list_issues", query))
        out = []
        for rec in sorted(self.issues.values(), key=lambda r: r["number"]):
            if query.state != "all" and rec["state"] != query.state:
                continue
            if any(label not in rec["labels"] for label in query.labels):
                continue
            if query.assignee and query.assignee not in rec["assignees"]:
                continue
            if query.milestone is not None and rec["milestone"] != query.milestone:
                continue
            out.append(self._render(rec))
        return out[: query.limit]

    def get_issue(self, number: int) -> dict[str, Any] | None:
        self.calls.append(("get_issue", number))
        rec = self.issues.get(number)
        return self._render(rec) if rec else None

    def create_issue(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_issue", payload))
        rec: dict[str, Any] = {
            "number": self._next_issue,
            "title": "",
            "body": "",
            "state": "open",
            "state_reason": None,
            "labels": [],
            "assignees": [],
            "milestone": None,
        }
        self._apply(rec, payload)
        self.issues[rec["number"]] = rec
        self._next_issue += 1
        return self._render(rec)

    def update_issue(self, number: int, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("update_issue", (number, payload)))
        rec = self.issues.get(number)
        if rec is None:
            raise NotFoundError("issue", number)
        self._apply(rec, payload)
        return self._render(rec)

    def close_issue(self, number: int, reason: str) -> None:
        self.calls.append(("close_issue", (number, reason)))
        rec = self.issues.get(number)
        if rec is None:
            raise NotFoundError("issue", number)
        rec["state"] = "closed"
        rec["state_reason"] = reason

    # --- milestones -------------------------------------------------------
    def _render_milestone(self, ms: dict[str, Any]) -> dict[str, Any]:
        members = [r for r in self.issues.values() if r["milestone"] == ms["number"]]
        return {
            **ms,
            "open_issues": sum(1 for r in members if r["state"] == "open"),
            "closed_issues": sum(1 for r in members if r["state"] == "closed"),
            "created_at": _TIMESTAMP,
        }

    def create_milestone(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_milestone", payload))
        ms = {
            "number": self._next_milestone,
            "title": payload["title"],
            "description": payload.get("description", ""),
            "due_on": payload.get("due_on"),
            "state": "open",
        }
        self.milestones[ms["number"]] = ms
        self._next_milestone += 1
        return self._render_milestone(ms)

    def get_milestone(self, number: int) -> dict[str, Any] | None:
        ms = self.milestones.get(number)
        return self._render_milestone(ms) if ms else None

    def list_milestones(self, state: str = "open") -> list[dict[str, Any]]:
        return [
            self._render_milestone(ms)
            for ms in self.milestones.values()
            if state == "all" or ms["state"] == state
        ]

    def update_milestone(self, number: int, payload: dict[str, Any]) -> dict[str, Any]:
        ms = self.milestones.get(number)
        if ms is None:
            raise NotFoundError("milestone", number)
        ms.update(payload)
        return self._render_milestone(ms)

    # --- labels -----------------------------------------------------------
    def list_labels(self) -> list[dict[str, Any]]:
        return list(self.labels.values())

    def create_label(self, name: str, color: str, description: str) -> None:
        self.calls.append(("create_label", name))
        self.labels[name] = {"name": name, "color": color, "description": description}

    # --- test helpers -----------------------------------------------------
    def add_raw(
        self,
        title: str,
        body: str = "",
        labels: list[str] | None = None,
        state: str = "open",
        state_reason: str | None = None,
    ) -> int:
        """Insert a record directly, bypassing the planner's write path."""
        number = self._next_issue
        self.issues[number] = {
            "number": number,
            "title": title,
            "body": body,
            "state": state,
            "state_reason": state_reason,
            "labels": list(labels or []),
            "assignees": [],
            "milestone": None,
        }
        self._next_issue += 1
        return number


@pytest.fixture(autouse=True)
def _no_retry_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKPLANNER_RETRY_MAX_SLEEP", "0")


@pytest.fixture
def store() -> FakeIssueStore:
    return FakeIssueStore()


@pytest.fixture
def repo(store: FakeIssueStore) -> TaskRepository:
    return TaskRepository(store)


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        _TEST_DURATIONS.append((item.nodeid, time.perf_counter() - start))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")
