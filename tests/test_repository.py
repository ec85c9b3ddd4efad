from __future__ import annotations

from datetime import date

import pytest

from taskplanner.errors import NotFoundError, RemoteWriteError, TaskCycleError
from taskplanner.repository import TaskFilter, TaskRepository


def test_end_to_end_lifecycle(repo: TaskRepository, store):
    task = repo.create("Fix bug", priority="high", due_date="2026-02-10", my_day=False)
    other = repo.create("Write notes")

    listed = repo.list_tasks(TaskFilter(status="todo"))
    fixed = next(t for t in listed if t.id == task.id)
    assert fixed.status == "todo"
    assert fixed.priority == "high"
    assert fixed.due_date == date(2026, 2, 10)

    repo.update(task.id, {"status": "done"})
    for status in ("todo", "in-progress", "blocked"):
        assert task.id not in [t.id for t in repo.list_tasks(status=status)]
    assert task.id not in [t.id for t in repo.list_tasks()]
    assert task.id in [t.id for t in repo.board()["done"].tasks]
    assert store.issues[task.id]["state"] == "closed"
    assert store.issues[task.id]["state_reason"] == "completed"

    repo.soft_delete(other.id)
    assert other.id not in [t.id for t in repo.list_tasks()]
    assert other.id not in [t.id for t in repo.list_tasks(include_done=True)]
    assert repo.get(other.id).is_deleted
    assert other.id in [t.id for t in repo.list_tasks(include_deleted=True)]


def test_create_writes_labels_and_metadata(repo: TaskRepository, store):
    task = repo.create(
        "Ship API", priority="urgent", tags="backend, api", estimated_hours=4, assignee="octocat"
    )
    rec = store.issues[task.id]
    assert rec["labels"] == ["tp:todo", "tp:urgent", "backend", "api"]
    assert rec["assignees"] == ["octocat"]
    assert rec["body"].startswith("---\npriority: urgent\n")
    assert "estimated_hours: 4" in rec["body"]
    assert task.tags == ["backend", "api"]
    assert task.assignee == "octocat"


def test_create_done_task_is_closed_completed(repo: TaskRepository, store):
    task = repo.create("Already finished", status="done")
    assert task.status == "done"
    assert store.issues[task.id]["state"] == "closed"
    assert store.issues[task.id]["state_reason"] == "completed"


def test_create_validates_fields(repo: TaskRepository, store):
    with pytest.raises(ValueError):
        repo.create("  ")
    with pytest.raises(ValueError):
        repo.create("x", priority="critical")
    with pytest.raises(ValueError):
        repo.create("x", due_date="next week")
    with pytest.raises(ValueError):
        repo.create("x", estimated_hours=-1)
    assert store.issues == {}


def test_missing_task_raises_not_found(repo: TaskRepository):
    with pytest.raises(NotFoundError) as exc:
        repo.get(99)
    assert exc.value.number == 99
    with pytest.raises(NotFoundError):
        repo.update(99, {"title": "x"})


def test_update_unknown_field_rejected(repo: TaskRepository):
    task = repo.create("t")
    with pytest.raises(ValueError):
        repo.update(task.id, {"colour": "red"})


def test_update_empty_is_noop(repo: TaskRepository, store):
    task = repo.create("t")
    before = len(store.calls)
    assert repo.update(task.id, {}).id == task.id
    assert [c[0] for c in store.calls[before:]] == ["get_issue"]


def test_reopen_rules(repo: TaskRepository, store):
    task = repo.create("t")
    repo.update(task.id, {"status": "done"})
    reopened = repo.update(task.id, {"status": "in-progress"})
    assert reopened.status == "in-progress"
    assert store.issues[task.id]["state"] == "open"

    deleted = repo.create("gone")
    repo.soft_delete(deleted.id)
    repo.update(deleted.id, {"status": "blocked"})
    assert store.issues[deleted.id]["state"] == "closed"
    assert repo.get(deleted.id).is_deleted


def test_update_preserves_unknown_metadata(repo: TaskRepository, store):
    number = store.add_raw(
        "legacy",
        body="---\npriority: low\nenergy: high\n---\n\nkeep me",
        labels=["tp:todo", "tp:low"],
    )
    repo.update(number, {"due_date": date(2026, 3, 1)})
    body = store.issues[number]["body"]
    assert "energy: high" in body
    assert "due_date: 2026-03-01" in body
    assert body.endswith("keep me")
    # labels untouched when only metadata fields change
    assert store.issues[number]["labels"] == ["tp:todo", "tp:low"]


def test_parent_cycle_rejected(repo: TaskRepository):
    a = repo.create("a")
    b = repo.create("b", parent_task_id=a.id)
    c = repo.create("c", parent_task_id=b.id)
    with pytest.raises(TaskCycleError):
        repo.update(a.id, {"parent_task_id": c.id})
    with pytest.raises(TaskCycleError):
        repo.update(a.id, {"parent_task_id": a.id})
    assert repo.update(c.id, {"parent_task_id": a.id}).parent_task_id == a.id


def test_unmanaged_issues_are_ignored(repo: TaskRepository, store):
    store.add_raw("random bug report", labels=["bug"])
    managed = repo.create("planned")
    assert [t.id for t in repo.list_tasks()] == [managed.id]


def test_conflicting_labels_resolve_by_precedence(repo: TaskRepository, store):
    number = store.add_raw("messy", labels=["tp:blocked", "tp:in-progress", "tp:low", "tp:high"])
    task = repo.get(number)
    assert task.status == "in-progress"
    assert task.priority == "high"


def test_list_filters_and_sorting(repo: TaskRepository):
    low = repo.create("low", priority="low", assignee="ana")
    urgent = repo.create("urgent", priority="urgent")
    flagged = repo.create("flagged", my_day=True, assignee="ana")
    assert [t.id for t in repo.list_tasks()] == [urgent.id, flagged.id, low.id]
    assert [t.id for t in repo.list_tasks(assignee="ana")] == [flagged.id, low.id]
    assert [t.id for t in repo.list_tasks(my_day=True)] == [flagged.id]
    assert [t.id for t in repo.list_tasks(priority="urgent")] == [urgent.id]
    with pytest.raises(ValueError):
        repo.list_tasks(status="doing")


def test_set_my_day_and_view(repo: TaskRepository):
    task = repo.create("focus me")
    repo.set_my_day(task.id)
    view = repo.my_day(date(2026, 2, 2))
    assert [t.id for t in view.focus] == [task.id]
    repo.set_my_day(task.id, False)
    assert repo.my_day(date(2026, 2, 2)).focus == []


def test_sprints(repo: TaskRepository, store):
    sprint = repo.create_sprint("Sprint 1", "first", due_on=date(2026, 2, 14))
    assert sprint.id == 1
    assert store.milestones[1]["due_on"] == "2026-02-14T00:00:00Z"

    task = repo.create("in sprint", sprint_id=sprint.id)
    assert task.sprint_id == sprint.id
    assert task.sprint_name == "Sprint 1"
    repo.create("outside")
    assert [t.id for t in repo.list_tasks(sprint_id=sprint.id)] == [task.id]

    repo.update(task.id, {"status": "done"})
    stats = repo.analytics(sprint_id=sprint.id)
    assert stats.total == 1
    assert stats.completion_rate == 100
    assert repo.get_sprint(sprint.id).closed_count == 1

    closed = repo.close_sprint(sprint.id)
    assert closed.state == "closed"
    assert repo.list_sprints() == []
    assert [s.id for s in repo.list_sprints("all")] == [sprint.id]
    with pytest.raises(NotFoundError):
        repo.get_sprint(42)
    with pytest.raises(ValueError):
        repo.list_sprints("archived")


def test_current_sprint_includes_done_tasks(repo: TaskRepository):
    assert repo.current_sprint() is None
    repo.create_sprint("Next", due_on="2026-03-01")
    now = repo.create_sprint("Now", due_on="2026-02-14")
    finished = repo.create("finished", sprint_id=now.id)
    repo.create("open", sprint_id=now.id)
    repo.update(finished.id, {"status": "done"})

    overview = repo.current_sprint()
    assert overview is not None
    assert overview.sprint.id == now.id
    assert overview.progress == 50
    assert sorted(t.title for t in overview.tasks) == ["finished", "open"]

    repo.close_sprint(now.id)
    assert repo.current_sprint().sprint.title == "Next"


def test_unknown_sprint_surfaces_remote_write_error(repo: TaskRepository):
    with pytest.raises(RemoteWriteError):
        repo.create("orphan", sprint_id=77)


def test_provision_labels(repo: TaskRepository, store):
    created, existing = repo.provision_labels()
    assert len(created) == 8
    assert existing == []
