"""Morning briefing, overdue alert and task completion notifications.

Message composition is pure; delivery goes through a small ``Notifier``
protocol. The scheduler is a clock check repeated once per interval, each
tick doing its own independent repository reads.
"""

from __future__ import annotations

import shutil
import subprocess  # nosec B404 - desktop notification helpers
import sys
import threading
from collections.abc import Callable, Sequence
from datetime import date, datetime
from typing import Protocol

from .errors import TaskPlannerError
from .logging import get_logger
from .models import Task
from .repository import TaskRepository
from .views import MyDayView

APP_NAME = "TaskPlanner"
BRIEFING_PREVIEW = 3
OVERDUE_PREVIEW = 5

_PRIORITY_MARKS = {"urgent": "[!!]", "high": "[!]", "medium": "[-]", "low": "[.]"}


class Notifier(Protocol):
    def send(self, title: str, message: str) -> None: ...


class LogNotifier:
    def send(self, title: str, message: str) -> None:
        get_logger().info(f"{APP_NAME}: {title}\n{message}", operation="notification")


class DesktopNotifier:
    """System notification through ``osascript`` (macOS) or ``notify-send``."""

    def send(self, title: str, message: str) -> None:
        full_title = f"{APP_NAME}: {title}"
        if sys.platform == "darwin":
            script = f"display notification {_quote(message)} with title {_quote(full_title)}"
            cmd = ["osascript", "-e", script]
        elif shutil.which("notify-send"):
            cmd = ["notify-send", full_title, message]
        else:
            LogNotifier().send(title, message)
            return
        subprocess.run(cmd, check=False, capture_output=True)  # nosec B603 - fixed binary


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def compose_morning_briefing(view: MyDayView) -> str:
    total = view.total_focus
    if total == 0:
        return "No tasks scheduled for today. Enjoy your day!"
    suffix = f" ({len(view.overdue)} overdue)" if view.overdue else ""
    lines = [f"{total} tasks for today{suffix}"]
    for task in [*view.focus, *view.due_today, *view.overdue][:BRIEFING_PREVIEW]:
        lines.append(f"{_PRIORITY_MARKS.get(task.priority, '[ ]')} #{task.id}: {task.title}")
    if total > BRIEFING_PREVIEW:
        lines.append(f"... and {total - BRIEFING_PREVIEW} more")
    return "\n".join(lines)


def overdue_tasks(tasks: Sequence[Task], today: date) -> list[Task]:
    return [
        t for t in tasks if t.due_date is not None and t.due_date < today and t.status != "done"
    ]


def compose_overdue_alert(tasks: Sequence[Task], today: date) -> str | None:
    overdue = overdue_tasks(tasks, today)
    if not overdue:
        return None
    plural = "s" if len(overdue) > 1 else ""
    lines = [f"You have {len(overdue)} overdue task{plural}:"]
    for task in overdue[:OVERDUE_PREVIEW]:
        due = task.due_date.isoformat() if task.due_date else "?"
        lines.append(f"- #{task.id}: {task.title} (due {due})")
    return "\n".join(lines)


def compose_task_completed(task: Task) -> str:
    return f"Completed: #{task.id} - {task.title}"


def send_task_completed(notifier: Notifier, task: Task) -> str:
    """Announce a finished task; delivery problems are logged, never raised."""
    message = compose_task_completed(task)
    try:
        notifier.send("Task done!", message)
    except (OSError, subprocess.SubprocessError) as exc:
        get_logger().warning("completion notification failed", task_id=task.id, error=str(exc))
    return message


def parse_clock(value: str) -> tuple[int, int]:
    hours, sep, minutes = value.strip().partition(":")
    try:
        h, m = int(hours), int(minutes)
    except ValueError:
        raise ValueError(f"time must be HH:MM, got {value!r}") from None
    if not sep or not (0 <= h < 24 and 0 <= m < 60):
        raise ValueError(f"time must be HH:MM, got {value!r}")
    return h, m


class NotificationScheduler:
    def __init__(
        self,
        repository: TaskRepository,
        notifier: Notifier,
        morning_time: str = "09:00",
        overdue_time: str = "14:00",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.notifier = notifier
        self._triggers = {
            "morning_briefing": parse_clock(morning_time),
            "overdue_alert": parse_clock(overdue_time),
        }
        self._clock = clock
        self._last_fired: dict[str, date] = {}
        self._logger = get_logger()

    def send_morning_briefing(self, today: date | None = None) -> str:
        message = compose_morning_briefing(self.repository.my_day(today))
        self.notifier.send("Good morning!", message)
        return message

    def send_overdue_alert(self, today: date | None = None) -> str | None:
        today = today or self._clock().date()
        message = compose_overdue_alert(self.repository.list_tasks(), today)
        if message is not None:
            self.notifier.send("Overdue tasks", message)
        return message

    def tick(self, now: datetime | None = None) -> list[str]:
        """Fire each trigger whose minute matches ``now``, at most once a day."""
        now = now or self._clock()
        fired: list[str] = []
        for name, (hour, minute) in self._triggers.items():
            if (now.hour, now.minute) != (hour, minute):
                continue
            if self._last_fired.get(name) == now.date():
                continue
            self._last_fired[name] = now.date()
            if name == "morning_briefing":
                self.send_morning_briefing(now.date())
            else:
                self.send_overdue_alert(now.date())
            fired.append(name)
        return fired

    def run(self, stop: threading.Event, interval: float = 60.0, immediate: bool = True) -> None:
        if immediate:
            self._safe(lambda: self.send_morning_briefing(self._clock().date()))
        while not stop.wait(interval):
            self._safe(self.tick)

    def _safe(self, fn: Callable[[], object]) -> None:
        try:
            fn()
        except TaskPlannerError as exc:
            # a failed tick must not stop the scheduler
            self._logger.log_error("notification tick failed", error=str(exc))


__all__ = [
    "DesktopNotifier",
    "LogNotifier",
    "NotificationScheduler",
    "Notifier",
    "compose_morning_briefing",
    "compose_overdue_alert",
    "compose_task_completed",
    "overdue_tasks",
    "parse_clock",
    "send_task_completed",
]
