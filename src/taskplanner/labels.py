"""Label taxonomy mapping.

Status and priority live in the tracker as eight fixed ``tp:`` labels. The
tracker does not enforce exclusivity, so an issue may carry zero or several
status labels; resolution scans the vocabulary in declaration order and the
first hit wins, falling back to the defaults. Conflicts are not errors.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .logging import get_logger
from .models import DEFAULT_PRIORITY, DEFAULT_STATUS, PRIORITIES, STATUSES

if TYPE_CHECKING:  # pragma: no cover
    from .store import IssueStore


@dataclass(frozen=True)
class LabelDefinition:
    name: str
    color: str
    description: str


STATUS_LABELS: dict[str, str] = {
    "todo": "tp:todo",
    "in-progress": "tp:in-progress",
    "done": "tp:done",
    "blocked": "tp:blocked",
}

PRIORITY_LABELS: dict[str, str] = {
    "urgent": "tp:urgent",
    "high": "tp:high",
    "medium": "tp:medium",
    "low": "tp:low",
}

SYSTEM_LABELS: tuple[LabelDefinition, ...] = (
    LabelDefinition("tp:todo", "0075ca", "Task is in backlog / to do"),
    LabelDefinition("tp:in-progress", "fbca04", "Task is currently being worked on"),
    LabelDefinition("tp:done", "0e8a16", "Task is completed"),
    LabelDefinition("tp:blocked", "d73a4a", "Task is blocked"),
    LabelDefinition("tp:urgent", "b60205", "Urgent priority"),
    LabelDefinition("tp:high", "d93f0b", "High priority"),
    LabelDefinition("tp:medium", "fbca04", "Medium priority"),
    LabelDefinition("tp:low", "0e8a16", "Low priority"),
)

SYSTEM_LABEL_NAMES: frozenset[str] = frozenset(d.name for d in SYSTEM_LABELS)


def label_names(labels: Iterable[Any] | None) -> list[str]:
    """Accept plain names or ``{"name": ...}`` mappings (both transports)."""
    names: list[str] = []
    for lbl in labels or []:
        if isinstance(lbl, dict):
            name = lbl.get("name")
            if isinstance(name, str):
                names.append(name)
        elif isinstance(lbl, str):
            names.append(lbl)
    return names


def status_label(status: str) -> str:
    try:
        return STATUS_LABELS[status]
    except KeyError:
        raise ValueError(
            f"unknown status {status!r}; expected one of {', '.join(STATUSES)}"
        ) from None


def priority_label(priority: str) -> str:
    try:
        return PRIORITY_LABELS[priority]
    except KeyError:
        raise ValueError(
            f"unknown priority {priority!r}; expected one of {', '.join(PRIORITIES)}"
        ) from None


def status_from_labels(labels: Iterable[Any] | None) -> str:
    present = set(label_names(labels))
    for status in STATUSES:
        if STATUS_LABELS[status] in present:
            return status
    return DEFAULT_STATUS


def priority_from_labels(labels: Iterable[Any] | None) -> str:
    present = set(label_names(labels))
    for priority in PRIORITIES:
        if PRIORITY_LABELS[priority] in present:
            return priority
    return DEFAULT_PRIORITY


def is_system_label(name: str) -> bool:
    return name in SYSTEM_LABEL_NAMES


def user_tags(labels: Iterable[Any] | None) -> list[str]:
    return [name for name in label_names(labels) if name not in SYSTEM_LABEL_NAMES]


def has_system_label(labels: Iterable[Any] | None) -> bool:
    return any(name in SYSTEM_LABEL_NAMES for name in label_names(labels))


def compose_labels(status: str, priority: str, tags: Iterable[str] | None = None) -> list[str]:
    """Exactly one status and one priority label, then user tags (deduplicated)."""
    out = [status_label(status), priority_label(priority)]
    for tag in tags or []:
        tag = tag.strip()
        if tag and tag not in SYSTEM_LABEL_NAMES and tag not in out:
            out.append(tag)
    return out


def provision(store: IssueStore) -> tuple[list[str], list[str]]:
    """Create whichever fixed labels are missing from the store.

    Returns ``(created, existing)``. Safe to re-run: labels already present
    are left alone.
    """
    logger = get_logger()
    present = set(label_names(store.list_labels()))
    created: list[str] = []
    existing: list[str] = []
    for definition in SYSTEM_LABELS:
        if definition.name in present:
            existing.append(definition.name)
            continue
        store.create_label(definition.name, definition.color, definition.description)
        created.append(definition.name)
        logger.log_operation("label_created", label=definition.name)
    return created, existing


__all__ = [
    "LabelDefinition",
    "PRIORITY_LABELS",
    "STATUS_LABELS",
    "SYSTEM_LABELS",
    "SYSTEM_LABEL_NAMES",
    "compose_labels",
    "has_system_label",
    "is_system_label",
    "label_names",
    "priority_from_labels",
    "priority_label",
    "provision",
    "status_from_labels",
    "status_label",
    "user_tags",
]
