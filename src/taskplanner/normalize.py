"""Record normalization between transports and the canonical model.

The ``gh`` CLI and the REST API describe the same issue differently:

==============  =====================  ===========================
field           gh CLI JSON            REST API
==============  =====================  ===========================
timestamps      ``createdAt``          ``created_at``
assignee        ``assignees[].login``  ``assignee`` + ``assignees``
browser link    ``url``                ``html_url`` (``url`` = API)
state           ``OPEN`` / ``CLOSED``  ``open`` / ``closed``
close reason    ``stateReason``        ``state_reason``
==============  =====================  ===========================

``normalize_issue`` folds both into :class:`GenericIssue` before the codec
and label mapper run, so nothing downstream needs to know which transport
produced a record. Writes go the other way through ``to_write_payload`` and
always produce the REST payload shape.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from . import metadata as codec
from .labels import (
    compose_labels,
    has_system_label,
    label_names,
    priority_from_labels,
    status_from_labels,
    user_tags,
)
from .models import GenericIssue, MilestoneRef, Sprint, Task

# Fields whose change requires the label set to be rebuilt
_LABEL_FIELDS = frozenset({"status", "priority", "tags"})


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _login(entry: Any) -> str | None:
    if isinstance(entry, dict):
        login = entry.get("login")
        return login if isinstance(login, str) and login else None
    if isinstance(entry, str) and entry:
        return entry
    return None


def _assignee(raw: Mapping[str, Any]) -> str | None:
    assignees = raw.get("assignees")
    if isinstance(assignees, list):
        for entry in assignees:
            login = _login(entry)
            if login:
                return login
    return _login(raw.get("assignee"))


def _milestone(raw: Mapping[str, Any]) -> MilestoneRef | None:
    ms = raw.get("milestone")
    if not isinstance(ms, dict):
        return None
    number = ms.get("number")
    if not isinstance(number, int) or isinstance(number, bool):
        return None
    title = ms.get("title")
    return MilestoneRef(number=number, title=title if isinstance(title, str) else "")


def _state_reason(raw: Mapping[str, Any]) -> str | None:
    reason = _first(raw, "state_reason", "stateReason")
    if not isinstance(reason, str):
        return None
    return reason.strip().lower().replace(" ", "_") or None


def normalize_issue(raw: Mapping[str, Any]) -> GenericIssue:
    """Fold a raw issue record from either transport into :class:`GenericIssue`."""
    number = raw.get("number")
    state = raw.get("state")
    return GenericIssue(
        number=int(number) if isinstance(number, int) else 0,
        title=str(raw.get("title") or ""),
        body=str(raw.get("body") or ""),
        state=state.lower() if isinstance(state, str) and state else "open",
        state_reason=_state_reason(raw),
        labels=label_names(raw.get("labels") if isinstance(raw.get("labels"), list) else []),
        assignee=_assignee(raw),
        milestone=_milestone(raw),
        created_at=str(_first(raw, "created_at", "createdAt") or ""),
        updated_at=str(_first(raw, "updated_at", "updatedAt") or ""),
        url=str(_first(raw, "html_url", "url") or ""),
    )


def normalize_milestone(raw: Mapping[str, Any]) -> Sprint:
    def _count(*keys: str) -> int:
        value = _first(raw, *keys)
        return max(0, value) if isinstance(value, int) else 0

    number = raw.get("number")
    state = raw.get("state")
    return Sprint(
        id=int(number) if isinstance(number, int) else 0,
        title=str(raw.get("title") or ""),
        description=str(raw.get("description") or ""),
        due_on=_first(raw, "due_on", "dueOn"),
        state=state.lower() if isinstance(state, str) and state else "open",
        open_count=_count("open_issues", "openIssues"),
        closed_count=_count("closed_issues", "closedIssues"),
        created_at=str(_first(raw, "created_at", "createdAt") or ""),
    )


def is_managed(issue: GenericIssue) -> bool:
    """Only issues carrying a system label belong to the planner."""
    return has_system_label(issue.labels)


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def _hours(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value if value >= 0 else 0


def issue_to_task(issue: GenericIssue) -> Task:
    meta, description = codec.decode(issue.body)
    parent = meta.get("parent_task")
    return Task(
        id=issue.number,
        title=issue.title,
        description=description,
        status=status_from_labels(issue.labels),
        priority=priority_from_labels(issue.labels),
        due_date=_parse_date(meta.get("due_date")),
        tags=user_tags(issue.labels),
        assignee=issue.assignee,
        sprint_id=issue.milestone.number if issue.milestone else None,
        sprint_name=issue.milestone.title if issue.milestone else None,
        my_day=meta.get("my_day") is True,
        estimated_hours=_hours(meta.get("estimated_hours")),
        actual_hours=_hours(meta.get("actual_hours")),
        parent_task_id=parent if isinstance(parent, int) and not isinstance(parent, bool) else None,
        created_at=issue.created_at,
        updated_at=issue.updated_at,
        url=issue.url,
        state=issue.state,
        state_reason=issue.state_reason,
        extra_metadata={k: v for k, v in meta.items() if k not in codec.METADATA_KEYS},
    )


def task_metadata(task: Task) -> dict[str, Any]:
    """Metadata map for ``task``: current field values over preserved extras."""
    meta: dict[str, Any] = dict(task.extra_metadata)
    meta.update(
        {
            "priority": task.priority,
            "due_date": task.due_date.isoformat() if task.due_date else None,
            "estimated_hours": task.estimated_hours,
            "actual_hours": task.actual_hours,
            "tags": list(task.tags),
            "my_day": task.my_day,
            "parent_task": task.parent_task_id,
        }
    )
    return meta


def to_write_payload(
    task: Task,
    changes: Iterable[str],
    previous: GenericIssue | None = None,
) -> dict[str, Any]:
    """Project ``task`` into a REST issue payload.

    Title and body are always recomputed so the metadata block tracks the
    current field values. Other keys appear only for fields in ``changes``.
    Moving to ``done`` closes the issue as completed; moving away reopens it
    only when ``previous`` was closed that way (a soft delete stays closed).
    """
    changed = set(changes)
    payload: dict[str, Any] = {
        "title": task.title,
        "body": codec.encode(task_metadata(task), task.description),
    }
    if changed & _LABEL_FIELDS:
        payload["labels"] = compose_labels(task.status, task.priority, task.tags)
    if "assignee" in changed:
        payload["assignees"] = [task.assignee] if task.assignee else []
    if "sprint_id" in changed:
        payload["milestone"] = task.sprint_id
    if "status" in changed:
        if task.status == "done":
            payload["state"] = "closed"
            payload["state_reason"] = "completed"
        elif (
            previous is not None
            and previous.is_closed
            and previous.state_reason == "completed"
        ):
            payload["state"] = "open"
    return payload


__all__ = [
    "is_managed",
    "issue_to_task",
    "normalize_issue",
    "normalize_milestone",
    "task_metadata",
    "to_write_payload",
]
