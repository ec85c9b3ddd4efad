from __future__ import annotations

import json
from datetime import date
from types import SimpleNamespace
from typing import Any

from taskplanner.models import Task
from taskplanner.planner import (
    MAX_PLAN_ITEMS,
    OpenAIPlanningAssistant,
    decompose_task,
    generate_description,
    plan_candidates,
    plan_day,
    resolve_plan,
    simple_day_plan,
    suggest_priority,
)

TODAY = date(2026, 2, 2)


class ScriptedAssistant:
    def __init__(
        self,
        plan: Any = None,
        subtasks: Any = None,
        priority: Any = None,
        description: Any = None,
    ):
        self._plan = plan or {}
        self._subtasks = subtasks or []
        self._priority = priority or {}
        self._description = description or {}
        self.seen: list[dict[str, Any]] = []

    def plan_day(self, candidates, today):
        self.seen = candidates
        return self._plan

    def decompose(self, task):
        return self._subtasks

    def suggest_priority(self, title, description=""):
        return self._priority

    def generate_description(self, title):
        return self._description


def _tasks() -> list[Task]:
    return [
        Task(id=1, title="overdue", due_date=date(2026, 1, 30)),
        Task(id=2, title="today", due_date=TODAY),
        Task(id=3, title="wip", status="in-progress"),
        Task(id=4, title="finished", status="done"),
        Task(id=5, title="flagged", my_day=True),
    ]


def test_candidates_exclude_done():
    ids = [c["id"] for c in plan_candidates(_tasks())]
    assert ids == [1, 2, 3, 5]


def test_resolve_plan_drops_unknown_and_malformed_ids():
    response = {
        "plan": [
            {"id": 3, "reason": "keep going"},
            {"id": 999, "reason": "hallucinated"},
            {"id": 4, "reason": "already done"},
            {"id": "2", "reason": "string id"},
            {"id": True},
            {"id": 3, "reason": "duplicate"},
            "junk",
            {"reason": "no id"},
        ],
        "summary": "Busy day",
        "tip": "Start early",
    }
    plan = resolve_plan(response, _tasks())
    assert [(i.id, i.reason) for i in plan.items] == [(3, "keep going"), (2, "string id")]
    assert plan.summary == "Busy day"
    assert plan.tip == "Start early"


def test_resolve_plan_tolerates_garbage():
    plan = resolve_plan({"plan": "nope"}, _tasks())
    assert plan.items == []
    assert plan.tip is None


def test_resolve_plan_caps_length():
    tasks = [Task(id=i, title=str(i)) for i in range(1, 12)]
    plan = resolve_plan({"plan": [{"id": i} for i in range(1, 12)]}, tasks)
    assert len(plan.items) == MAX_PLAN_ITEMS


def test_simple_plan_orders_by_urgency():
    plan = simple_day_plan(_tasks(), TODAY)
    assert [i.id for i in plan.items] == [1, 2, 3, 5]
    assert plan.items[0].reason == "Overdue (was due 2026-01-30)"


def test_plan_day_with_assistant():
    assistant = ScriptedAssistant(plan={"plan": [{"id": 5, "reason": "flagged"}], "summary": "s"})
    plan = plan_day(_tasks(), TODAY, assistant)
    assert [i.id for i in plan.items] == [5]
    assert 4 not in [c["id"] for c in assistant.seen]
    assert plan.to_dict()["plan"][0]["task"]["title"] == "flagged"


def test_plan_day_without_assistant_falls_back():
    assert [i.id for i in plan_day(_tasks(), TODAY).items] == [1, 2, 3, 5]


def test_suggest_priority():
    assert suggest_priority("x")[0] == "medium"
    good = ScriptedAssistant(priority={"priority": "urgent", "reason": "prod down"})
    assert suggest_priority("x", "", good) == ("urgent", "prod down")
    bad = ScriptedAssistant(priority={"priority": "critical"})
    assert suggest_priority("x", "", bad)[0] == "medium"


def test_generate_description():
    assert generate_description("Write release notes") == ""
    good = ScriptedAssistant(description={"description": "  Draft notes.\n- [ ] reviewed  "})
    assert generate_description("Write release notes", good) == "Draft notes.\n- [ ] reviewed"
    assert generate_description("x", ScriptedAssistant(description={"description": 42})) == ""


def test_decompose_creates_linked_subtasks(repo):
    sprint = repo.create_sprint("S1")
    parent = repo.create("Big feature", sprint_id=sprint.id)
    assistant = ScriptedAssistant(
        subtasks=[
            {"title": "Design", "estimated_hours": 2, "priority": "high"},
            {"title": "Build", "description": "code it", "priority": "bogus"},
            {"title": ""},
            "junk",
        ]
    )
    got_parent, created = decompose_task(repo, parent.id, assistant)
    assert got_parent.id == parent.id
    assert [t.title for t in created] == ["Design", "Build"]
    assert all(t.parent_task_id == parent.id for t in created)
    assert all(t.sprint_id == sprint.id for t in created)
    assert created[0].priority == "high"
    assert created[0].estimated_hours == 2
    assert created[1].priority == "medium"


class _FakeCompletions:
    def __init__(self, content: str):
        self.content = content
        self.kwargs: dict[str, Any] = {}

    def create(self, **kwargs):
        self.kwargs = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(content: str) -> Any:
    completions = _FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_openai_assistant_requests_json_and_parses():
    reply = {"plan": [{"id": 1, "reason": "late"}], "summary": "ok"}
    client, completions = _client(json.dumps(reply))
    assistant = OpenAIPlanningAssistant("sk-test", model="gpt-test", client=client)
    answer = assistant.plan_day(plan_candidates(_tasks()), TODAY)
    assert answer["plan"][0]["id"] == 1
    assert completions.kwargs["model"] == "gpt-test"
    assert completions.kwargs["response_format"] == {"type": "json_object"}
    assert "2026-02-02" in completions.kwargs["messages"][0]["content"]
    assert '#1: "overdue"' in completions.kwargs["messages"][1]["content"]


def test_openai_assistant_invalid_json_is_empty():
    client, _ = _client("not json")
    assistant = OpenAIPlanningAssistant("sk-test", client=client)
    assert assistant.suggest_priority("x") == {}
    assert assistant.decompose(Task(id=1, title="t")) == []


def test_openai_assistant_generates_description():
    client, completions = _client(json.dumps({"description": "Ship it.\n\nDone when merged."}))
    assistant = OpenAIPlanningAssistant("sk-test", client=client)
    assert generate_description("Ship v2", assistant) == "Ship it.\n\nDone when merged."
    assert completions.kwargs["messages"][1]["content"] == "Task title: Ship v2"
    assert "acceptance criteria" in completions.kwargs["messages"][0]["content"]
