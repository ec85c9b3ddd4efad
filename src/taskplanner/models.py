from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

# Declaration order matters: label resolution scans in this order.
STATUSES: tuple[str, ...] = ("todo", "in-progress", "done", "blocked")
PRIORITIES: tuple[str, ...] = ("urgent", "high", "medium", "low")

DEFAULT_STATUS = "todo"
DEFAULT_PRIORITY = "medium"

PRIORITY_ORDER = {"urgent": 0, "high": 1, "medium": 2, "low": 3}


@dataclass
class MilestoneRef:
    number: int
    title: str = ""


@dataclass
class GenericIssue:
    """Transport-neutral issue record produced by the normalizer."""

    number: int
    title: str
    body: str = ""
    state: str = "open"
    state_reason: str | None = None
    labels: list[str] = field(default_factory=list)
    assignee: str | None = None
    milestone: MilestoneRef | None = None
    created_at: str = ""
    updated_at: str = ""
    url: str = ""

    @property
    def is_closed(self) -> bool:
        return self.state == "closed"


@dataclass
class Task:
    """Canonical in-memory task, one per remote issue."""

    id: int
    title: str
    description: str = ""
    status: str = DEFAULT_STATUS
    priority: str = DEFAULT_PRIORITY
    due_date: date | None = None
    tags: list[str] = field(default_factory=list)
    assignee: str | None = None
    sprint_id: int | None = None
    sprint_name: str | None = None
    my_day: bool = False
    estimated_hours: float = 0
    actual_hours: float = 0
    parent_task_id: int | None = None
    created_at: str = ""
    updated_at: str = ""
    url: str = ""
    state: str = "open"
    state_reason: str | None = None
    # Metadata keys written by newer versions; carried through writes untouched
    extra_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_done(self) -> bool:
        return self.status == "done"

    @property
    def is_deleted(self) -> bool:
        return self.state == "closed" and self.state_reason == "not_planned"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["due_date"] = self.due_date.isoformat() if self.due_date else None
        return data


@dataclass
class Sprint:
    """Wrapper over a remote milestone."""

    id: int
    title: str
    description: str = ""
    due_on: str | None = None
    state: str = "open"
    open_count: int = 0
    closed_count: int = 0
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = [
    "DEFAULT_PRIORITY",
    "DEFAULT_STATUS",
    "GenericIssue",
    "MilestoneRef",
    "PRIORITIES",
    "PRIORITY_ORDER",
    "STATUSES",
    "Sprint",
    "Task",
]
