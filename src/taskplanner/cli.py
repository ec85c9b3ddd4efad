"""TaskPlanner CLI.

Subcommands:
  init       -> write config and provision the tp:* labels
  add / show / update / start / done / block / reopen / delete
  list       -> filtered, canonically sorted task list
  myday      -> focus view (flag tasks with --add / --remove)
  board      -> kanban columns by status
  stats      -> completion analytics
  sprint     -> create | list | current | close milestones
  plan       -> daily plan (assistant when configured, deadlines otherwise)
  decompose  -> split a task into subtasks via the assistant
  suggest-priority
  notify     -> briefing | overdue | watch
  config     -> show resolved configuration

Read commands accept ``--json`` for machine-readable stdout; logs go to
stderr.
"""

from __future__ import annotations

import argparse
import json
import sys
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import date
from typing import Any

from taskplanner.config import (
    PlannerConfig,
    load_config,
    require_config,
    save_config,
)
from taskplanner.errors import ConfigurationError, TaskPlannerError
from taskplanner.logging import configure_logging
from taskplanner.models import PRIORITIES, STATUSES, Task
from taskplanner.notifications import (
    DesktopNotifier,
    LogNotifier,
    NotificationScheduler,
    Notifier,
    send_task_completed,
)
from taskplanner.planner import (
    assistant_from_config,
    decompose_task,
    generate_description,
    plan_day,
    suggest_priority,
)
from taskplanner.repository import SPRINT_STATES, TaskFilter, TaskRepository
from taskplanner.ux import (
    Colors,
    colorize,
    format_task,
    print_error,
    print_header,
    print_success,
    print_summary_box,
    print_tasks,
    print_warning,
)

REPO_HELP = "Target repository (owner/repo); overrides config and environment"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _json_flag(p: argparse.ArgumentParser) -> None:
    p.add_argument("--json", action="store_true", help="Print JSON instead of text")


def _task_fields(p: argparse.ArgumentParser, *, creating: bool) -> None:
    p.add_argument("-d", "--description")
    p.add_argument("-s", "--status", choices=STATUSES, default="todo" if creating else None)
    p.add_argument("-p", "--priority", choices=PRIORITIES, default="medium" if creating else None)
    p.add_argument("--due", help="Due date (YYYY-MM-DD)")
    p.add_argument("--tags", help="Comma separated tags")
    p.add_argument("--assignee")
    p.add_argument("--sprint", type=int, help="Sprint (milestone) number")
    p.add_argument("--estimate", type=float, help="Estimated hours")
    p.add_argument("--parent", type=int, help="Parent task number")


def _build_parser() -> argparse.ArgumentParser:
    """Construct top-level CLI parser with subcommands.

    Keep ordering stable for help output readability.
    """
    p = _FormatterArgumentParser(prog="taskplanner", description="Task planning on GitHub issues")
    p.add_argument("--config", help="Config file (default ~/.taskplanner/config.yaml)")
    p.add_argument("--repo", help=REPO_HELP)
    p.add_argument("--transport", choices=("auto", "gh", "rest"))
    p.add_argument("--verbose", "-v", action="store_true", help="Log at INFO level")
    p.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs on stderr")
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pi = sub.add_parser("init", help="Save repository settings and create the tp:* labels")
    pi.add_argument("slug", nargs="?", help="owner/repo (detected from gh when omitted)")
    pi.add_argument("--skip-labels", action="store_true")

    pa = sub.add_parser("add", help="Create a task")
    pa.add_argument("title")
    _task_fields(pa, creating=True)
    pa.add_argument("--my-day", action="store_true", help="Add to My Day")
    pa.add_argument(
        "--ai-description",
        action="store_true",
        help="Draft the description with the assistant when -d is not given",
    )
    _json_flag(pa)

    pl = sub.add_parser("list", help="List tasks")
    pl.add_argument("-s", "--status", choices=STATUSES)
    pl.add_argument("-p", "--priority", choices=PRIORITIES)
    pl.add_argument("--sprint", type=int)
    pl.add_argument("--assignee")
    pl.add_argument("--my-day", action="store_true", help="Only My Day tasks")
    pl.add_argument("--all", action="store_true", help="Include done tasks")
    pl.add_argument("--deleted", action="store_true", help="Include deleted tasks")
    _json_flag(pl)

    pshow = sub.add_parser("show", help="Show one task")
    pshow.add_argument("id", type=int)
    _json_flag(pshow)

    pu = sub.add_parser("update", help="Update task fields")
    pu.add_argument("id", type=int)
    pu.add_argument("-t", "--title")
    _task_fields(pu, creating=False)
    pu.add_argument("--actual", type=float, help="Actual hours spent")
    pu.add_argument("--clear-due", action="store_true")
    pu.add_argument("--unassign", action="store_true")
    _json_flag(pu)

    pdone = sub.add_parser("done", help="Mark one or more tasks done")
    pdone.add_argument("ids", type=int, nargs="+", metavar="id")

    for name, help_text in (
        ("start", "Mark a task in progress"),
        ("block", "Mark a task blocked"),
        ("reopen", "Move a task back to todo (reopens a completed issue)"),
        ("delete", "Delete a task (closes it as not planned)"),
    ):
        ps = sub.add_parser(name, help=help_text)
        ps.add_argument("id", type=int)

    pm = sub.add_parser("myday", help="Show the My Day view")
    group = pm.add_mutually_exclusive_group()
    group.add_argument("--add", type=int, metavar="ID")
    group.add_argument("--remove", type=int, metavar="ID")
    _json_flag(pm)

    pb = sub.add_parser("board", help="Kanban board by status")
    pb.add_argument("--sprint", type=int)
    _json_flag(pb)

    pst = sub.add_parser("stats", help="Completion analytics")
    pst.add_argument("--sprint", type=int)
    _json_flag(pst)

    psp = sub.add_parser("sprint", help="Manage sprints (milestones)")
    sprint_sub = psp.add_subparsers(
        dest="sprint_cmd", required=True, parser_class=_FormatterArgumentParser, metavar="<action>"
    )
    psc = sprint_sub.add_parser("create", help="Create a sprint")
    psc.add_argument("title")
    psc.add_argument("-d", "--description", default="")
    psc.add_argument("--due", help="Due date (YYYY-MM-DD)")
    psl = sprint_sub.add_parser("list", help="List sprints")
    psl.add_argument("--state", choices=SPRINT_STATES, default="open")
    _json_flag(psl)
    pscur = sprint_sub.add_parser("current", help="Show the current sprint with its tasks")
    _json_flag(pscur)
    psx = sprint_sub.add_parser("close", help="Close a sprint")
    psx.add_argument("id", type=int)

    pp = sub.add_parser("plan", help="Plan today's work")
    _json_flag(pp)

    pd = sub.add_parser("decompose", help="Split a task into subtasks")
    pd.add_argument("id", type=int)

    psg = sub.add_parser("suggest-priority", help="Suggest a priority for a task idea")
    psg.add_argument("title")
    psg.add_argument("-d", "--description", default="")

    pn = sub.add_parser("notify", help="Send notifications")
    pn.add_argument("action", choices=("briefing", "overdue", "watch"))
    pn.add_argument("--interval", type=float, default=60.0, help="Seconds between checks (watch)")
    pn.add_argument("--desktop", action="store_true", help="Use system notifications")

    pc = sub.add_parser("config", help="Show resolved configuration")
    pc.add_argument("action", choices=("show",), nargs="?", default="show")
    _json_flag(pc)

    return p


# --- wiring -------------------------------------------------------------


def _load(args: argparse.Namespace) -> PlannerConfig:
    cfg = load_config(args.config, allow_missing=args.cmd == "init")
    if args.repo:
        owner, _, repo = args.repo.partition("/")
        if not owner or not repo:
            raise ConfigurationError(f"repository must look like owner/repo, got {args.repo!r}")
        cfg = replace(cfg, owner=owner, repo=repo)
    if args.transport:
        cfg = replace(cfg, transport=args.transport)
    return cfg


def _build_repository(cfg: PlannerConfig) -> TaskRepository:
    return TaskRepository.from_config(cfg)


def _emit_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _report_task(task: Task, args: argparse.Namespace, verb: str) -> int:
    if getattr(args, "json", False):
        _emit_json(task.to_dict())
    else:
        print_success(f"{verb} {format_task(task)}")
    return 0


# --- commands -----------------------------------------------------------


def _cmd_init(cfg: PlannerConfig, args: argparse.Namespace) -> int:
    if args.slug:
        owner, _, repo = args.slug.partition("/")
        cfg = replace(cfg, owner=owner, repo=repo)
    require_config(cfg)
    path = save_config(cfg, args.config)
    print_success(f"Saved configuration for {cfg.repo_slug} -> {path}")
    if args.skip_labels:
        return 0
    created, existing = _build_repository(cfg).provision_labels()
    print_success(f"Labels: {len(created)} created, {len(existing)} already present")
    return 0


def _cmd_add(cfg: PlannerConfig, repo: TaskRepository, args: argparse.Namespace) -> int:
    description = args.description or ""
    if args.ai_description and not description:
        assistant = assistant_from_config(cfg)
        if assistant is None:
            raise ConfigurationError("AI descriptions need OPENAI_API_KEY.")
        description = generate_description(args.title, assistant)
    task = repo.create(
        args.title,
        description=description,
        status=args.status,
        priority=args.priority,
        due_date=args.due,
        tags=args.tags,
        assignee=args.assignee,
        sprint_id=args.sprint,
        my_day=args.my_day,
        estimated_hours=args.estimate or 0,
        parent_task_id=args.parent,
    )
    return _report_task(task, args, "Created")


def _cmd_list(repo: TaskRepository, args: argparse.Namespace) -> int:
    tasks = repo.list_tasks(
        TaskFilter(
            status=args.status,
            priority=args.priority,
            sprint_id=args.sprint,
            assignee=args.assignee,
            my_day=True if args.my_day else None,
            include_done=args.all,
            include_deleted=args.deleted,
        )
    )
    if args.json:
        _emit_json([t.to_dict() for t in tasks])
        return 0
    print_header(f"Tasks ({len(tasks)})")
    print_tasks(tasks)
    return 0


def _cmd_show(repo: TaskRepository, args: argparse.Namespace) -> int:
    task = repo.get(args.id)
    if args.json:
        _emit_json(task.to_dict())
        return 0
    print_header(f"#{task.id} {task.title}")
    items: list[tuple[str, str | int]] = [
        ("Status", task.status),
        ("Priority", task.priority),
        ("Due", task.due_date.isoformat() if task.due_date else "-"),
        ("Assignee", task.assignee or "-"),
        ("Sprint", task.sprint_name or (f"#{task.sprint_id}" if task.sprint_id else "-")),
        ("Tags", ", ".join(task.tags) or "-"),
        ("My Day", "yes" if task.my_day else "no"),
        ("Hours", f"{task.actual_hours}/{task.estimated_hours}"),
        ("Parent", f"#{task.parent_task_id}" if task.parent_task_id else "-"),
        ("URL", task.url or "-"),
    ]
    print_summary_box("Details", items)
    if task.description:
        print(task.description)
    return 0


def _update_fields(args: argparse.Namespace) -> dict[str, Any]:
    mapping = {
        "title": args.title,
        "description": args.description,
        "status": args.status,
        "priority": args.priority,
        "due_date": args.due,
        "tags": args.tags,
        "assignee": args.assignee,
        "sprint_id": args.sprint,
        "estimated_hours": args.estimate,
        "actual_hours": args.actual,
        "parent_task_id": args.parent,
    }
    updates = {k: v for k, v in mapping.items() if v is not None}
    if args.clear_due:
        updates["due_date"] = None
    if args.unassign:
        updates["assignee"] = None
    return updates


def _cmd_update(repo: TaskRepository, args: argparse.Namespace) -> int:
    updates = _update_fields(args)
    if not updates:
        print_warning("Nothing to update.")
        return 0
    return _report_task(repo.update(args.id, updates), args, "Updated")


def _status_command(status: str, verb: str) -> Callable[[TaskRepository, argparse.Namespace], int]:
    def handler(repo: TaskRepository, args: argparse.Namespace) -> int:
        return _report_task(repo.update(args.id, {"status": status}), args, verb)

    return handler


def _completion_notifier(cfg: PlannerConfig) -> Notifier | None:
    return DesktopNotifier() if cfg.notify_enabled else None


def _cmd_done(cfg: PlannerConfig, repo: TaskRepository, args: argparse.Namespace) -> int:
    notifier = _completion_notifier(cfg)
    failed = 0
    for task_id in args.ids:
        try:
            task = repo.update(task_id, {"status": "done"})
        except (TaskPlannerError, ValueError) as exc:
            print_error(f"Failed to complete #{task_id}: {exc}")
            failed += 1
            continue
        print_success(f"Completed {format_task(task)}")
        if notifier is not None:
            send_task_completed(notifier, task)
    return 1 if failed else 0


def _cmd_delete(repo: TaskRepository, args: argparse.Namespace) -> int:
    repo.soft_delete(args.id)
    print_success(f"Deleted #{args.id}")
    return 0


def _cmd_myday(repo: TaskRepository, args: argparse.Namespace) -> int:
    if args.add is not None:
        return _report_task(repo.set_my_day(args.add, True), args, "Added to My Day:")
    if args.remove is not None:
        return _report_task(repo.set_my_day(args.remove, False), args, "Removed from My Day:")
    view = repo.my_day()
    if args.json:
        _emit_json(view.to_dict())
        return 0
    for title, tasks in (
        ("My Day", view.focus),
        ("Overdue", view.overdue),
        ("Due today", view.due_today),
        ("In progress", view.in_progress),
    ):
        if tasks:
            print_header(f"{title} ({len(tasks)})")
            print_tasks(tasks)
    if view.total_focus == 0 and not view.in_progress:
        print("Nothing on your plate today.")
    return 0


def _cmd_board(repo: TaskRepository, args: argparse.Namespace) -> int:
    columns = repo.board(sprint_id=args.sprint)
    if args.json:
        _emit_json(
            {
                key: {
                    "title": col.title,
                    "color": col.color,
                    "tasks": [t.to_dict() for t in col.tasks],
                }
                for key, col in columns.items()
            }
        )
        return 0
    for col in columns.values():
        print_header(f"{col.title} ({len(col.tasks)})")
        print_tasks(col.tasks, empty="empty")
    return 0


def _cmd_stats(repo: TaskRepository, args: argparse.Namespace) -> int:
    stats = repo.analytics(sprint_id=args.sprint)
    if args.json:
        _emit_json(stats.to_dict())
        return 0
    items: list[tuple[str, str | int]] = [
        ("Total", stats.total),
        ("Completed", stats.completed),
        ("Completion", f"{stats.completion_rate}%"),
        ("Overdue", stats.overdue),
    ]
    items += [(f"status:{k}", v) for k, v in stats.status_counts.items()]
    items += [(f"priority:{k}", v) for k, v in stats.priority_counts.items()]
    items += [(f"@{k}", v) for k, v in stats.assignee_counts.items()]
    print_summary_box("Analytics", items)
    return 0


def _show_current_sprint(repo: TaskRepository, args: argparse.Namespace) -> int:
    overview = repo.current_sprint()
    if args.json:
        _emit_json(overview.to_dict() if overview else None)
        return 0
    if overview is None:
        print_warning('No open sprints. Create one: taskplanner sprint create "Sprint 1"')
        return 0
    sprint = overview.sprint
    print_header(sprint.title)
    if sprint.due_on:
        print(colorize(f"  Due: {sprint.due_on[:10]}", Colors.DIM))
    filled = overview.progress // 5
    bar = colorize("█" * filled + "░" * (20 - filled), Colors.GREEN)
    print(f"  Progress: [{bar}] {overview.progress}% ({sprint.closed_count}/{overview.total})")
    print_tasks(overview.tasks)
    return 0


def _cmd_sprint(repo: TaskRepository, args: argparse.Namespace) -> int:
    if args.sprint_cmd == "create":
        sprint = repo.create_sprint(args.title, args.description, args.due)
        print_success(f"Created sprint #{sprint.id}: {sprint.title}")
        return 0
    if args.sprint_cmd == "current":
        return _show_current_sprint(repo, args)
    if args.sprint_cmd == "close":
        sprint = repo.close_sprint(args.id)
        print_success(f"Closed sprint #{sprint.id}: {sprint.title}")
        return 0
    sprints = repo.list_sprints(args.state)
    if args.json:
        _emit_json([s.to_dict() for s in sprints])
        return 0
    print_header(f"Sprints ({len(sprints)})")
    for s in sprints:
        due = f" due {s.due_on[:10]}" if s.due_on else ""
        counts = colorize(f"{s.closed_count}/{s.open_count + s.closed_count} done", Colors.DIM)
        print(f"  #{s.id} {s.title} [{s.state}]{due} {counts}")
    return 0


def _cmd_plan(cfg: PlannerConfig, repo: TaskRepository, args: argparse.Namespace) -> int:
    plan = plan_day(repo.list_tasks(), date.today(), assistant_from_config(cfg))
    if args.json:
        _emit_json(plan.to_dict())
        return 0
    print_header("Today's plan")
    for n, item in enumerate(plan.items, 1):
        print(f"  {n}. {format_task(item.task)}")
        if item.reason:
            print(colorize(f"     {item.reason}", Colors.DIM))
    if plan.summary:
        print(plan.summary)
    if plan.tip:
        print(colorize(f"Tip: {plan.tip}", Colors.DIM))
    return 0


def _cmd_decompose(cfg: PlannerConfig, repo: TaskRepository, args: argparse.Namespace) -> int:
    assistant = assistant_from_config(cfg)
    if assistant is None:
        raise ConfigurationError("Task decomposition needs OPENAI_API_KEY.")
    parent, created = decompose_task(repo, args.id, assistant)
    print_success(f"Created {len(created)} subtasks for #{parent.id}")
    print_tasks(created)
    return 0


def _cmd_suggest_priority(cfg: PlannerConfig, args: argparse.Namespace) -> int:
    priority, reason = suggest_priority(args.title, args.description, assistant_from_config(cfg))
    print(f"{priority}: {reason}")
    return 0


def _cmd_notify(cfg: PlannerConfig, repo: TaskRepository, args: argparse.Namespace) -> int:
    notifier: Notifier = DesktopNotifier() if args.desktop else LogNotifier()
    scheduler = NotificationScheduler(
        repo, notifier, cfg.notify_morning_time, cfg.notify_overdue_time
    )
    if args.action == "briefing":
        print(scheduler.send_morning_briefing())
        return 0
    if args.action == "overdue":
        print(scheduler.send_overdue_alert() or "No overdue tasks.")
        return 0
    if not cfg.notify_enabled:
        print_warning("Notifications are disabled (NOTIFY_ENABLED=false).")
        return 0
    stop = threading.Event()
    print_success(
        f"Watching: briefing at {cfg.notify_morning_time}, overdue check at "
        f"{cfg.notify_overdue_time} (Ctrl+C to stop)"
    )
    try:
        scheduler.run(stop, interval=args.interval)
    except KeyboardInterrupt:
        stop.set()
    return 0


def _cmd_config(cfg: PlannerConfig, args: argparse.Namespace) -> int:
    shown = {
        "repository": cfg.repo_slug or None,
        "transport": cfg.transport,
        "api_url": cfg.api_url,
        "token": "set" if cfg.token else None,
        "list_limit": cfg.list_limit,
        "notify_enabled": cfg.notify_enabled,
        "notify_morning_time": cfg.notify_morning_time,
        "notify_overdue_time": cfg.notify_overdue_time,
        "openai_api_key": "set" if cfg.openai_api_key else None,
        "openai_model": cfg.openai_model,
        "source_file": str(cfg.source_file) if cfg.source_file else None,
    }
    if args.json:
        _emit_json(shown)
        return 0
    print_summary_box("Configuration", [(k, "-" if v is None else v) for k, v in shown.items()])
    return 0


def _build_handlers(args: argparse.Namespace, cfg: PlannerConfig) -> dict[str, Any]:
    def with_repo(fn: Any) -> Any:
        return lambda: fn(_build_repository(cfg), args)

    return {
        "init": lambda: _cmd_init(cfg, args),
        "add": lambda: _cmd_add(cfg, _build_repository(cfg), args),
        "list": with_repo(_cmd_list),
        "show": with_repo(_cmd_show),
        "update": with_repo(_cmd_update),
        "start": with_repo(_status_command("in-progress", "Started")),
        "done": lambda: _cmd_done(cfg, _build_repository(cfg), args),
        "block": with_repo(_status_command("blocked", "Blocked")),
        "reopen": with_repo(_status_command("todo", "Reopened")),
        "delete": with_repo(_cmd_delete),
        "myday": with_repo(_cmd_myday),
        "board": with_repo(_cmd_board),
        "stats": with_repo(_cmd_stats),
        "sprint": with_repo(_cmd_sprint),
        "plan": lambda: _cmd_plan(cfg, _build_repository(cfg), args),
        "decompose": lambda: _cmd_decompose(cfg, _build_repository(cfg), args),
        "suggest-priority": lambda: _cmd_suggest_priority(cfg, args),
        "notify": lambda: _cmd_notify(cfg, _build_repository(cfg), args),
        "config": lambda: _cmd_config(cfg, args),
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = _load(args)
        level = "INFO" if args.verbose else cfg.logging_level
        configure_logging(json_logging=args.json_logs or cfg.logging_json_enabled, level=level)
        handler = _build_handlers(args, cfg).get(args.cmd)
        if handler is None:  # pragma: no cover - argparse enforces valid choices
            parser.print_help()
            return 1
        return int(handler() or 0)
    except (TaskPlannerError, ValueError) as exc:
        print_error(str(exc))
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
