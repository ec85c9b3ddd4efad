"""TaskPlanner - personal task planning on top of GitHub issues.

High-level public API:

from taskplanner import TaskRepository, load_config

repo = TaskRepository.from_config(load_config())
task = repo.create("Write report", priority="high", due_date="2024-05-01")
repo.update(task.id, {"status": "in-progress"})
print(repo.my_day().total_focus)

Each task is one issue: status and priority live in ``tp:*`` labels, the
remaining fields in a small ``key: value`` block at the top of the body.
"""

from __future__ import annotations

from .config import PlannerConfig, load_config
from .errors import (
    ConfigurationError,
    MalformedMetadataError,
    NotFoundError,
    RemoteWriteError,
    TaskPlannerError,
)
from .models import GenericIssue, Sprint, Task
from .repository import TaskFilter, TaskRepository
from .store import IssueStore, create_store

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "GenericIssue",
    "IssueStore",
    "MalformedMetadataError",
    "NotFoundError",
    "PlannerConfig",
    "RemoteWriteError",
    "Sprint",
    "Task",
    "TaskFilter",
    "TaskPlannerError",
    "TaskRepository",
    "create_store",
    "load_config",
]
