"""Derived views over an already-fetched task list.

Everything here is pure: no store access, no clock reads beyond the
``today`` default, and every function has a defined result for an empty
list.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .models import PRIORITIES, PRIORITY_ORDER, STATUSES, Sprint, Task

UNASSIGNED = "Unassigned"

BOARD_COLUMNS: tuple[tuple[str, str, str], ...] = (
    ("todo", "To Do", "#0075ca"),
    ("in-progress", "In Progress", "#fbca04"),
    ("blocked", "Blocked", "#d73a4a"),
    ("done", "Done", "#0e8a16"),
)


def _sort_key(task: Task) -> tuple[int, bool, date]:
    rank = PRIORITY_ORDER.get(task.priority, len(PRIORITY_ORDER))
    return (rank, task.due_date is None, task.due_date or date.min)


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    """Priority rank, then due date (undated last), then original order."""
    return sorted(tasks, key=_sort_key)


@dataclass
class MyDayView:
    focus: list[Task] = field(default_factory=list)
    overdue: list[Task] = field(default_factory=list)
    due_today: list[Task] = field(default_factory=list)
    in_progress: list[Task] = field(default_factory=list)

    @property
    def total_focus(self) -> int:
        return len(self.focus) + len(self.due_today) + len(self.overdue)

    def to_dict(self) -> dict[str, Any]:
        return {
            "my_day": [t.to_dict() for t in self.focus],
            "overdue": [t.to_dict() for t in self.overdue],
            "due_today": [t.to_dict() for t in self.due_today],
            "in_progress": [t.to_dict() for t in self.in_progress],
            "total_focus": self.total_focus,
        }


def partition_my_day(tasks: Iterable[Task], today: date | None = None) -> MyDayView:
    """Bucket incomplete tasks; each lands in at most one bucket.

    Precedence: flagged My Day, overdue, due today, in progress.
    """
    today = today or date.today()
    view = MyDayView()
    for task in tasks:
        if task.status == "done":
            continue
        if task.my_day:
            view.focus.append(task)
        elif task.due_date is not None and task.due_date < today:
            view.overdue.append(task)
        elif task.due_date == today:
            view.due_today.append(task)
        elif task.status == "in-progress":
            view.in_progress.append(task)
    return view


@dataclass
class BoardColumn:
    title: str
    color: str
    tasks: list[Task] = field(default_factory=list)


def group_board(tasks: Iterable[Task]) -> dict[str, BoardColumn]:
    columns = {key: BoardColumn(title, color) for key, title, color in BOARD_COLUMNS}
    for task in tasks:
        column = columns.get(task.status)
        if column is not None:
            column.tasks.append(task)
    return columns


@dataclass
class Analytics:
    total: int = 0
    completed: int = 0
    completion_rate: int = 0
    overdue: int = 0
    status_counts: dict[str, int] = field(default_factory=dict)
    priority_counts: dict[str, int] = field(default_factory=dict)
    assignee_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "completion_rate": self.completion_rate,
            "overdue": self.overdue,
            "status_counts": dict(self.status_counts),
            "priority_counts": dict(self.priority_counts),
            "assignee_counts": dict(self.assignee_counts),
        }


def completion_rate(done: int, total: int) -> int:
    if total <= 0:
        return 0
    # half-up rounding, not banker's
    return int(done * 100 / total + 0.5)


def compute_analytics(tasks: Sequence[Task], today: date | None = None) -> Analytics:
    today = today or date.today()
    status_counts = dict.fromkeys(STATUSES, 0)
    priority_counts = dict.fromkeys(PRIORITIES, 0)
    assignee_counts: dict[str, int] = {}
    overdue = 0
    for task in tasks:
        status_counts[task.status] = status_counts.get(task.status, 0) + 1
        priority_counts[task.priority] = priority_counts.get(task.priority, 0) + 1
        who = task.assignee or UNASSIGNED
        assignee_counts[who] = assignee_counts.get(who, 0) + 1
        if task.due_date is not None and task.due_date < today and task.status != "done":
            overdue += 1
    total = len(tasks)
    done = status_counts.get("done", 0)
    return Analytics(
        total=total,
        completed=done,
        completion_rate=completion_rate(done, total),
        overdue=overdue,
        status_counts=status_counts,
        priority_counts=priority_counts,
        assignee_counts=assignee_counts,
    )


@dataclass
class SprintOverview:
    """A sprint with its tasks; progress counts closed milestone issues."""

    sprint: Sprint
    tasks: list[Task] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.sprint.open_count + self.sprint.closed_count

    @property
    def progress(self) -> int:
        return completion_rate(self.sprint.closed_count, self.total)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sprint": self.sprint.to_dict(),
            "progress": self.progress,
            "total": self.total,
            "tasks": [t.to_dict() for t in self.tasks],
        }


def pick_current_sprint(sprints: Iterable[Sprint]) -> Sprint | None:
    """Open sprint due soonest; undated sprints after dated ones, then by number."""
    open_sprints = [s for s in sprints if s.state == "open"]
    if not open_sprints:
        return None
    return min(open_sprints, key=lambda s: (s.due_on is None, s.due_on or "", s.id))


__all__ = [
    "Analytics",
    "BOARD_COLUMNS",
    "BoardColumn",
    "MyDayView",
    "SprintOverview",
    "UNASSIGNED",
    "completion_rate",
    "compute_analytics",
    "group_board",
    "partition_my_day",
    "pick_current_sprint",
    "sort_tasks",
]
