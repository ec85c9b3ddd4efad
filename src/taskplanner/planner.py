"""Planning assistant boundary.

The assistant sees a flat summary of incomplete tasks and answers with a
ranked list of ``{id, reason}`` plus free text. Its answer is untrusted:
ids that do not belong to the summarised tasks, and malformed entries, are
dropped without error. Without an API key the deterministic
:func:`simple_day_plan` stands in.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol

from openai import OpenAI

from .logging import get_logger
from .models import PRIORITIES, Task
from .schemas import schema_errors
from .views import partition_my_day

if TYPE_CHECKING:  # pragma: no cover
    from .config import PlannerConfig
    from .repository import TaskRepository

MAX_PLAN_ITEMS = 7
DEFAULT_MODEL = "gpt-4o-mini"

PLAN_PROMPT = """You are a task planning assistant. Today is {today}.
Pick the tasks the user should focus on today from the list provided.
Favour overdue work, work due today, urgent or high priority items and
anything already in progress. Suggest between 3 and 7 tasks.
Answer with JSON:
{{"plan": [{{"id": number, "reason": string}}], "summary": string, "tip": string}}"""

DECOMPOSE_PROMPT = """You are a project management assistant. Split the task into
small, concrete subtasks that can each be finished in a few hours.
Answer with JSON: {"subtasks": [{"title": string, "description": string,
"estimated_hours": number, "priority": "high"|"medium"|"low"}]}"""

PRIORITY_PROMPT = """Suggest a priority for the task, weighing urgency, impact,
complexity and dependencies.
Answer with JSON: {"priority": "urgent"|"high"|"medium"|"low", "reason": string}"""

DESCRIPTION_PROMPT = """Write a clear, actionable task description from the title,
including acceptance criteria.
Answer with JSON: {"description": string}"""


class PlanningAssistant(Protocol):
    def plan_day(self, candidates: list[dict[str, Any]], today: date) -> Mapping[str, Any]: ...

    def decompose(self, task: Task) -> list[dict[str, Any]]: ...

    def suggest_priority(self, title: str, description: str = "") -> Mapping[str, Any]: ...

    def generate_description(self, title: str) -> Mapping[str, Any]: ...


@dataclass
class PlanItem:
    task: Task
    reason: str

    @property
    def id(self) -> int:
        return self.task.id


@dataclass
class DayPlan:
    items: list[PlanItem] = field(default_factory=list)
    summary: str = ""
    tip: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": [
                {"id": i.id, "reason": i.reason, "task": i.task.to_dict()} for i in self.items
            ],
            "summary": self.summary,
            "tip": self.tip,
        }


def _check_answer(kind: str, answer: Any) -> None:
    problems = schema_errors(kind, answer)
    if problems:
        get_logger().warning(
            f"assistant {kind} answer failed validation; keeping usable entries",
            problems=problems,
        )


def plan_candidates(tasks: Iterable[Task]) -> list[dict[str, Any]]:
    return [
        {
            "id": t.id,
            "title": t.title,
            "priority": t.priority,
            "status": t.status,
            "due_date": t.due_date.isoformat() if t.due_date else None,
            "estimated_hours": t.estimated_hours,
        }
        for t in tasks
        if t.status != "done"
    ]


def resolve_plan(response: Mapping[str, Any], tasks: Sequence[Task]) -> DayPlan:
    """Map an assistant answer back onto ``tasks``, dropping unknown ids."""
    by_id = {t.id: t for t in tasks if t.status != "done"}
    items: list[PlanItem] = []
    seen: set[int] = set()
    entries = response.get("plan")
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, Mapping):
            continue
        raw_id = entry.get("id")
        try:
            task_id = int(raw_id) if not isinstance(raw_id, bool) else None
        except (TypeError, ValueError):
            task_id = None
        if task_id is None or task_id not in by_id or task_id in seen:
            continue
        seen.add(task_id)
        items.append(PlanItem(by_id[task_id], str(entry.get("reason") or "")))
    tip = response.get("tip")
    return DayPlan(
        items=items[:MAX_PLAN_ITEMS],
        summary=str(response.get("summary") or ""),
        tip=str(tip) if tip else None,
    )


def simple_day_plan(tasks: Sequence[Task], today: date | None = None) -> DayPlan:
    """Deterministic plan from deadlines and status; no assistant involved."""
    view = partition_my_day(tasks, today)
    items = [
        PlanItem(t, f"Overdue (was due {t.due_date.isoformat()})")
        for t in view.overdue
        if t.due_date
    ]
    items += [PlanItem(t, "Due today") for t in view.due_today]
    items += [PlanItem(t, "Currently in progress") for t in view.in_progress]
    items += [PlanItem(t, "Added to My Day") for t in view.focus]
    items = items[:MAX_PLAN_ITEMS]
    return DayPlan(
        items=items,
        summary=f"{len(items)} tasks planned for today based on priority and deadlines.",
        tip="Set OPENAI_API_KEY for assistant-driven planning.",
    )


def plan_day(
    tasks: Sequence[Task],
    today: date | None = None,
    assistant: PlanningAssistant | None = None,
) -> DayPlan:
    today = today or date.today()
    if assistant is None:
        return simple_day_plan(tasks, today)
    response = assistant.plan_day(plan_candidates(tasks), today)
    _check_answer("plan", response)
    plan = resolve_plan(response, tasks)
    get_logger().log_operation("day_planned", planned=len(plan.items))
    return plan


def suggest_priority(
    title: str, description: str = "", assistant: PlanningAssistant | None = None
) -> tuple[str, str]:
    if assistant is None:
        return "medium", "Default priority (assistant not configured)"
    answer = assistant.suggest_priority(title, description)
    _check_answer("priority", answer)
    priority = answer.get("priority")
    reason = str(answer.get("reason") or "")
    if priority not in PRIORITIES:
        return "medium", reason or "Assistant returned no usable priority"
    return str(priority), reason


def generate_description(title: str, assistant: PlanningAssistant | None = None) -> str:
    """Draft a description for ``title``; empty when no assistant is configured."""
    if assistant is None:
        return ""
    answer = assistant.generate_description(title)
    _check_answer("description", answer)
    description = answer.get("description")
    return description.strip() if isinstance(description, str) else ""


def decompose_task(
    repository: TaskRepository, task_id: int, assistant: PlanningAssistant
) -> tuple[Task, list[Task]]:
    """Create subtasks for ``task_id`` as new issues pointing back at it."""
    parent = repository.get(task_id)
    created: list[Task] = []
    subtasks = assistant.decompose(parent)
    _check_answer("subtasks", {"subtasks": subtasks})
    for sub in subtasks:
        if not isinstance(sub, Mapping):
            continue
        title = sub.get("title")
        if not isinstance(title, str) or not title.strip():
            continue
        priority = sub.get("priority")
        hours = sub.get("estimated_hours")
        created.append(
            repository.create(
                title,
                description=str(sub.get("description") or ""),
                priority=priority if priority in PRIORITIES else "medium",
                estimated_hours=hours
                if isinstance(hours, (int, float)) and not isinstance(hours, bool) and hours >= 0
                else 0,
                parent_task_id=parent.id,
                sprint_id=parent.sprint_id,
            )
        )
    return parent, created


class OpenAIPlanningAssistant:
    """Planning assistant backed by an OpenAI chat model in JSON mode."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, client: Any | None = None):
        self.model = model
        self.client = client or OpenAI(api_key=api_key)

    def _complete(self, system: str, user: str, temperature: float = 0.7) -> dict[str, Any]:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            response_format={"type": "json_object"},
            temperature=temperature,
        )
        content = response.choices[0].message.content or "{}"
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            get_logger().warning("assistant returned invalid JSON", model=self.model)
            return {}
        return data if isinstance(data, dict) else {}

    def plan_day(self, candidates: list[dict[str, Any]], today: date) -> Mapping[str, Any]:
        lines = [
            f"#{c['id']}: \"{c['title']}\" [{c['priority']}] [{c['status']}] "
            f"due:{c['due_date'] or 'none'} est:{c['estimated_hours']}h"
            for c in candidates
        ]
        return self._complete(
            PLAN_PROMPT.format(today=today.isoformat()),
            "Here are my tasks:\n" + "\n".join(lines) + "\n\nPlan my day.",
        )

    def decompose(self, task: Task) -> list[dict[str, Any]]:
        answer = self._complete(
            DECOMPOSE_PROMPT,
            f"Break down this task:\nTitle: {task.title}\n"
            f"Description: {task.description or 'No description'}\nPriority: {task.priority}",
        )
        subtasks = answer.get("subtasks")
        return [s for s in subtasks if isinstance(s, dict)] if isinstance(subtasks, list) else []

    def suggest_priority(self, title: str, description: str = "") -> Mapping[str, Any]:
        return self._complete(
            PRIORITY_PROMPT, f"Task: {title}\nDescription: {description or 'N/A'}", temperature=0.3
        )

    def generate_description(self, title: str) -> Mapping[str, Any]:
        return self._complete(DESCRIPTION_PROMPT, f"Task title: {title}")


def assistant_from_config(cfg: PlannerConfig) -> OpenAIPlanningAssistant | None:
    if not cfg.openai_api_key:
        return None
    return OpenAIPlanningAssistant(cfg.openai_api_key, model=cfg.openai_model)


__all__ = [
    "DayPlan",
    "OpenAIPlanningAssistant",
    "PlanItem",
    "PlanningAssistant",
    "assistant_from_config",
    "decompose_task",
    "generate_description",
    "plan_candidates",
    "plan_day",
    "resolve_plan",
    "simple_day_plan",
    "suggest_priority",
]
