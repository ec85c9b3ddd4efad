"""Task repository: CRUD and queries over the issue store port.

Reads run store -> normalizer -> codec/label mapper -> :class:`Task`; writes
run the same pipeline in reverse. Every call re-fetches live state and
writes are plain read-modify-write: a concurrent edit landing between the
read and the write of :meth:`TaskRepository.update` is overwritten.

Remote failures propagate unchanged after being classified and logged;
nothing here retries.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractContextManager
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any

from . import labels as label_map
from .config import PlannerConfig, require_config
from .errors import NotFoundError, TaskCycleError
from .logging import StructuredLogger, get_logger
from .models import PRIORITIES, STATUSES, GenericIssue, Sprint, Task
from .normalize import (
    is_managed,
    issue_to_task,
    normalize_issue,
    normalize_milestone,
    to_write_payload,
)
from .store import (
    CLOSE_COMPLETED,
    CLOSE_NOT_PLANNED,
    DEFAULT_LIST_LIMIT,
    IssueFilter,
    IssueStore,
    create_store,
)
from .views import (
    Analytics,
    BoardColumn,
    MyDayView,
    SprintOverview,
    compute_analytics,
    group_board,
    partition_my_day,
    pick_current_sprint,
    sort_tasks,
)

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "due_date",
        "tags",
        "assignee",
        "sprint_id",
        "my_day",
        "estimated_hours",
        "actual_hours",
        "parent_task_id",
    }
)

SPRINT_STATES = ("open", "closed", "all")


@dataclass
class TaskFilter:
    status: str | None = None
    priority: str | None = None
    sprint_id: int | None = None
    assignee: str | None = None
    my_day: bool | None = None
    include_done: bool = False
    include_deleted: bool = False

    def matches(self, task: Task) -> bool:
        if task.is_deleted and not self.include_deleted:
            return False
        if self.status is not None and task.status != self.status:
            return False
        if task.status == "done" and not (self.include_done or self.status == "done"):
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.sprint_id is not None and task.sprint_id != self.sprint_id:
            return False
        if self.assignee is not None and task.assignee != self.assignee:
            return False
        return self.my_day is None or task.my_day == self.my_day


# --- field validation ---------------------------------------------------


def _status(value: Any) -> str:
    if value not in STATUSES:
        raise ValueError(f"unknown status {value!r}; expected one of {', '.join(STATUSES)}")
    return str(value)


def _priority(value: Any) -> str:
    if value not in PRIORITIES:
        raise ValueError(f"unknown priority {value!r}; expected one of {', '.join(PRIORITIES)}")
    return str(value)


def _title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("task title must be non-empty text")
    return value.strip()


def _hours(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"{name} must be a non-negative number")
    return value


def _due(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValueError(f"due date must be YYYY-MM-DD, got {value!r}") from None
    raise ValueError(f"unsupported due date {value!r}")


def _ref(name: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer")
    return value


def _tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    out: list[str] = []
    for tag in value:
        tag = str(tag).strip()
        if tag and tag not in out:
            out.append(tag)
    return out


def _validate_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
    unknown = sorted(set(updates) - UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"unknown task field(s): {', '.join(unknown)}")
    clean: dict[str, Any] = {}
    for key, value in updates.items():
        if key == "title":
            clean[key] = _title(value)
        elif key == "description":
            clean[key] = "" if value is None else str(value)
        elif key == "status":
            clean[key] = _status(value)
        elif key == "priority":
            clean[key] = _priority(value)
        elif key == "due_date":
            clean[key] = _due(value)
        elif key == "tags":
            clean[key] = _tags(value)
        elif key == "assignee":
            clean[key] = str(value).strip() if value else None
        elif key in ("sprint_id", "parent_task_id"):
            clean[key] = _ref(key, value)
        elif key == "my_day":
            clean[key] = bool(value)
        else:
            clean[key] = _hours(key, value)
    return clean


def _due_on(value: date | datetime | str | None) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    if isinstance(value, date):
        return f"{value.isoformat()}T00:00:00Z"
    text = value.strip()
    return _due_on(_due(text)) if len(text) == 10 else text


class TaskRepository:
    def __init__(
        self,
        store: IssueStore,
        logger: StructuredLogger | None = None,
        *,
        list_limit: int = DEFAULT_LIST_LIMIT,
    ):
        self.store = store
        self._logger = logger or get_logger()
        self._list_limit = list_limit

    @classmethod
    def from_config(cls, cfg: PlannerConfig) -> TaskRepository:
        require_config(cfg)
        return cls(create_store(cfg), list_limit=cfg.list_limit)

    def _operation(self, name: str, **kw: Any) -> AbstractContextManager[None]:
        return self._logger.timed_operation(name, expected=(NotFoundError,), **kw)

    def _fetch(self, number: int) -> GenericIssue:
        raw = self.store.get_issue(number)
        if raw is None:
            raise NotFoundError("task", number)
        return normalize_issue(raw)

    # --- tasks ------------------------------------------------------------
    def create(
        self,
        title: str,
        *,
        description: str = "",
        status: str = "todo",
        priority: str = "medium",
        due_date: date | str | None = None,
        tags: list[str] | None = None,
        assignee: str | None = None,
        sprint_id: int | None = None,
        my_day: bool = False,
        estimated_hours: float = 0,
        actual_hours: float = 0,
        parent_task_id: int | None = None,
    ) -> Task:
        fields = _validate_updates(
            {
                "title": title,
                "description": description,
                "status": status,
                "priority": priority,
                "due_date": due_date,
                "tags": tags,
                "assignee": assignee,
                "sprint_id": sprint_id,
                "my_day": my_day,
                "estimated_hours": estimated_hours,
                "actual_hours": actual_hours,
                "parent_task_id": parent_task_id,
            }
        )
        draft = Task(id=0, **fields)
        payload = to_write_payload(draft, UPDATABLE_FIELDS)
        # new issues are always created open; a done task is closed right after
        close_after = payload.pop("state", None) == "closed"
        payload.pop("state_reason", None)
        if not payload.get("assignees"):
            payload.pop("assignees", None)
        if payload.get("milestone") is None:
            payload.pop("milestone", None)

        with self._operation("task_create"):
            issue = normalize_issue(self.store.create_issue(payload))
            if close_after:
                issue = normalize_issue(
                    self.store.update_issue(
                        issue.number, {"state": "closed", "state_reason": CLOSE_COMPLETED}
                    )
                )
        self._logger.log_task_action("created", issue.number, status=draft.status)
        return issue_to_task(issue)

    def get(self, task_id: int) -> Task:
        with self._operation("task_get", task_id=task_id):
            return issue_to_task(self._fetch(task_id))

    def update(self, task_id: int, updates: Mapping[str, Any]) -> Task:
        changes = _validate_updates(updates)
        with self._operation("task_update", task_id=task_id):
            current = self._fetch(task_id)
            task = issue_to_task(current)
            if not changes:
                return task
            if changes.get("parent_task_id") is not None:
                self._check_parent(task_id, changes["parent_task_id"])
            task = replace(task, **changes)
            payload = to_write_payload(task, changes, previous=current)
            updated = issue_to_task(normalize_issue(self.store.update_issue(task_id, payload)))
        self._logger.log_task_action("updated", task_id, fields=sorted(changes))
        return updated

    def _check_parent(self, task_id: int, parent_id: int) -> None:
        """Walk the ancestor chain of ``parent_id``; reject reaching ``task_id``."""
        seen: set[int] = set()
        cursor: int | None = parent_id
        while cursor is not None:
            if cursor == task_id:
                raise TaskCycleError(
                    f"task #{task_id} cannot be its own ancestor (via #{parent_id})"
                )
            if cursor in seen:
                # an older loop further up that does not involve task_id
                return
            seen.add(cursor)
            raw = self.store.get_issue(cursor)
            if raw is None:
                return
            cursor = issue_to_task(normalize_issue(raw)).parent_task_id

    def set_my_day(self, task_id: int, value: bool = True) -> Task:
        return self.update(task_id, {"my_day": value})

    def soft_delete(self, task_id: int) -> None:
        with self._operation("task_delete", task_id=task_id):
            self.store.close_issue(task_id, CLOSE_NOT_PLANNED)
        self._logger.log_task_action("deleted", task_id)

    def list_tasks(self, filters: TaskFilter | None = None, **kw: Any) -> list[Task]:
        criteria = replace(filters, **kw) if filters is not None else TaskFilter(**kw)
        if criteria.status is not None:
            _status(criteria.status)
        if criteria.priority is not None:
            _priority(criteria.priority)

        wants_closed = (
            criteria.include_done or criteria.include_deleted or criteria.status == "done"
        )
        query = IssueFilter(
            state="all" if wants_closed else "open",
            assignee=criteria.assignee,
            milestone=criteria.sprint_id,
            limit=self._list_limit,
        )
        if criteria.status is not None:
            query.labels.append(label_map.status_label(criteria.status))
        if criteria.priority is not None:
            query.labels.append(label_map.priority_label(criteria.priority))

        with self._operation("task_list"):
            issues = [normalize_issue(raw) for raw in self.store.list_issues(query)]
        tasks = [issue_to_task(issue) for issue in issues if is_managed(issue)]
        return sort_tasks(t for t in tasks if criteria.matches(t))

    # --- derived views ----------------------------------------------------
    def board(self, filters: TaskFilter | None = None, **kw: Any) -> dict[str, BoardColumn]:
        kw.setdefault("include_done", True)
        return group_board(self.list_tasks(filters, **kw))

    def my_day(self, today: date | None = None) -> MyDayView:
        return partition_my_day(self.list_tasks(), today)

    def analytics(self, sprint_id: int | None = None, today: date | None = None) -> Analytics:
        return compute_analytics(self.list_tasks(sprint_id=sprint_id, include_done=True), today)

    def provision_labels(self) -> tuple[list[str], list[str]]:
        with self._operation("labels_provision"):
            return label_map.provision(self.store)

    # --- sprints ----------------------------------------------------------
    def create_sprint(
        self,
        title: str,
        description: str = "",
        due_on: date | datetime | str | None = None,
    ) -> Sprint:
        payload: dict[str, Any] = {"title": _title(title)}
        if description:
            payload["description"] = description
        due = _due_on(due_on)
        if due:
            payload["due_on"] = due
        with self._operation("sprint_create"):
            sprint = normalize_milestone(self.store.create_milestone(payload))
        self._logger.log_operation("sprint_created", sprint_id=sprint.id)
        return sprint

    def get_sprint(self, sprint_id: int) -> Sprint:
        with self._operation("sprint_get", sprint_id=sprint_id):
            raw = self.store.get_milestone(sprint_id)
        if raw is None:
            raise NotFoundError("sprint", sprint_id)
        return normalize_milestone(raw)

    def list_sprints(self, state: str = "open") -> list[Sprint]:
        if state not in SPRINT_STATES:
            raise ValueError(f"unknown sprint state {state!r}")
        with self._operation("sprint_list"):
            return [normalize_milestone(raw) for raw in self.store.list_milestones(state)]

    def close_sprint(self, sprint_id: int) -> Sprint:
        with self._operation("sprint_close", sprint_id=sprint_id):
            raw = self.store.update_milestone(sprint_id, {"state": "closed"})
            sprint = normalize_milestone(raw)
        self._logger.log_operation("sprint_closed", sprint_id=sprint_id)
        return sprint

    def current_sprint(self) -> SprintOverview | None:
        """The open sprint due soonest, with all of its tasks (done included)."""
        sprint = pick_current_sprint(self.list_sprints("open"))
        if sprint is None:
            return None
        return SprintOverview(sprint, self.list_tasks(sprint_id=sprint.id, include_done=True))


__all__ = ["SPRINT_STATES", "TaskFilter", "TaskRepository", "UPDATABLE_FIELDS"]
