"""Terminal output helpers for the CLI - no external dependencies."""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from typing import TextIO

from .models import Task


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"


PRIORITY_COLORS = {
    "urgent": Colors.MAGENTA,
    "high": Colors.RED,
    "medium": Colors.YELLOW,
    "low": Colors.GREEN,
}

STATUS_ICONS = {"todo": "○", "in-progress": "◐", "done": "●", "blocked": "✗"}


def _supports_color(stream: TextIO | None = None) -> bool:
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR"):
        return False
    if not hasattr(stream, "isatty") or not stream.isatty():
        return False
    return os.environ.get("TERM") != "dumb"


def colorize(text: str, color: str, bold: bool = False, stream: TextIO | None = None) -> str:
    """Apply color to text if the terminal supports it."""
    if not _supports_color(stream):
        return text
    prefix = (Colors.BOLD if bold else "") + color
    return f"{prefix}{text}{Colors.RESET}"


def print_success(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    print(colorize("✓", Colors.GREEN, bold=True, stream=stream) + " " + message, file=stream)


def print_error(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stderr
    print(colorize("✗", Colors.RED, bold=True, stream=stream) + " " + message, file=stream)


def print_warning(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    print(colorize("⚠", Colors.YELLOW, bold=True, stream=stream) + " " + message, file=stream)


def print_header(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    print(colorize(message, Colors.CYAN, bold=True, stream=stream), file=stream)


def format_task(task: Task, stream: TextIO | None = None) -> str:
    """One-line rendering: ``○ #12 [high] Title (due 2024-05-01) #tag``."""
    icon = STATUS_ICONS.get(task.status, "?")
    priority = colorize(
        f"[{task.priority}]", PRIORITY_COLORS.get(task.priority, Colors.DIM), stream=stream
    )
    parts = [f"{icon} #{task.id}", priority, task.title]
    if task.due_date:
        parts.append(colorize(f"(due {task.due_date.isoformat()})", Colors.DIM, stream=stream))
    if task.assignee:
        parts.append(f"@{task.assignee}")
    parts.extend(f"#{tag}" for tag in task.tags)
    if task.my_day:
        parts.append("☀")
    return " ".join(parts)


def print_tasks(
    tasks: Sequence[Task], empty: str = "No tasks.", stream: TextIO | None = None
) -> None:
    stream = stream or sys.stdout
    if not tasks:
        print(colorize(f"  {empty}", Colors.DIM, stream=stream), file=stream)
        return
    for task in tasks:
        print("  " + format_task(task, stream=stream), file=stream)


def print_summary_box(
    title: str, items: Sequence[tuple[str, str | int]], stream: TextIO | None = None
) -> None:
    """Print a formatted box of key-value pairs."""
    stream = stream or sys.stdout
    width = max((len(k) for k, _ in items), default=0)
    print(colorize(f"\n{title}", Colors.CYAN, bold=True, stream=stream), file=stream)
    print(colorize("─" * 60, Colors.DIM, stream=stream), file=stream)
    for key, value in items:
        print(f"  {key.ljust(width)}  {value}", file=stream)
    print(colorize("─" * 60, Colors.DIM, stream=stream), file=stream)


__all__ = [
    "Colors",
    "colorize",
    "format_task",
    "print_error",
    "print_header",
    "print_success",
    "print_summary_box",
    "print_tasks",
    "print_warning",
]
