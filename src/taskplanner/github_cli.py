"""GitHub CLI (``gh``) transport for the issue store port.

Simple reads go through ``gh issue list/view`` (camelCase JSON), writes go
through ``gh api`` with the JSON payload on stdin so arrays (labels,
assignees) and nulls survive intact. Authentication, host selection and
token refresh are left to ``gh`` itself.
"""

from __future__ import annotations

import json
import shutil
import subprocess  # nosec B404 - subprocess is required for GitHub CLI invocation
from typing import Any

from .errors import NotFoundError, RemoteWriteError, TransportError, redact
from .logging import get_logger
from .retry import run_with_retries
from .store import IssueFilter

ISSUE_FIELDS = (
    "number,title,body,state,stateReason,labels,assignees,milestone,url,createdAt,updatedAt"
)

_NOT_FOUND_TOKENS = ("could not resolve to an issue", "http 404", "not found")
_CLOSE_REASONS = {"completed": "completed", "not_planned": "not planned"}


class GhCommandError(TransportError):
    """A ``gh`` invocation exited non-zero."""

    def __init__(self, cmd: list[str], output: str):
        super().__init__(redact(f"Command failed: {' '.join(cmd[:4])}: {output.strip()}"))
        self.cmd = cmd
        self.output = output

    @property
    def not_found(self) -> bool:
        low = self.output.lower()
        return any(tok in low for tok in _NOT_FOUND_TOKENS)


class GhCliIssueStore:
    """Issue store that shells out to an authenticated ``gh`` binary."""

    def __init__(self, repo: str, gh_path: str | None = None):
        self.repo = repo
        self._gh = gh_path or shutil.which("gh") or "gh"
        self._logger = get_logger()

    # --- internal helpers -------------------------------------------------
    def _run(self, args: list[str], stdin: str | None = None) -> str:
        cmd = [self._gh, *args]
        self._logger.debug("gh " + " ".join(args[:3]))
        try:
            return run_with_retries(
                lambda: subprocess.check_output(  # nosec B603 - controlled arguments
                    cmd, input=stdin, text=True, stderr=subprocess.STDOUT
                )
            )
        except subprocess.CalledProcessError as exc:
            raise GhCommandError(cmd, exc.output or "") from exc
        except FileNotFoundError as exc:
            raise TransportError(
                "gh CLI not found on PATH; install it or configure a token"
            ) from exc

    def _json(self, args: list[str], stdin: str | None = None) -> Any:
        out = self._run(args, stdin)
        if not out.strip():
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError as exc:
            raise TransportError(f"gh returned invalid JSON for {' '.join(args[:2])}") from exc

    def _api(self, path: str, *, method: str = "GET", payload: dict[str, Any] | None = None) -> Any:
        args = ["api", path, "--method", method]
        stdin = None
        if payload is not None:
            args.extend(["--input", "-"])
            stdin = json.dumps(payload)
        return self._json(args, stdin)

    def _write(
        self,
        path: str,
        method: str,
        payload: dict[str, Any],
        *,
        kind: str,
        number: int | None = None,
    ) -> dict[str, Any]:
        try:
            data = self._api(path, method=method, payload=payload)
        except GhCommandError as exc:
            if number is not None and exc.not_found:
                raise NotFoundError(kind, number) from exc
            raise RemoteWriteError(str(exc), details=exc.output) from exc
        return data if isinstance(data, dict) else {}

    # --- issues -----------------------------------------------------------
    def list_issues(self, query: IssueFilter) -> list[dict[str, Any]]:
        args = [
            "issue",
            "list",
            "-R",
            self.repo,
            "--json",
            ISSUE_FIELDS,
            "--limit",
            str(query.limit),
            "--state",
            query.state,
        ]
        for label in query.labels:
            args.extend(["--label", label])
        if query.assignee:
            args.extend(["--assignee", query.assignee])
        if query.milestone is not None:
            # gh filters milestones by title, not number
            milestone = self.get_milestone(query.milestone)
            if milestone is None:
                return []
            args.extend(["--milestone", str(milestone.get("title", ""))])
        data = self._json(args)
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def get_issue(self, number: int) -> dict[str, Any] | None:
        try:
            data = self._json(
                ["issue", "view", str(number), "-R", self.repo, "--json", ISSUE_FIELDS]
            )
        except GhCommandError as exc:
            if exc.not_found:
                return None
            raise
        return data if isinstance(data, dict) else None

    def create_issue(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._write(f"repos/{self.repo}/issues", "POST", payload, kind="issue")

    def update_issue(self, number: int, payload: dict[str, Any]) -> dict[str, Any]:
        return self._write(
            f"repos/{self.repo}/issues/{number}", "PATCH", payload, kind="issue", number=number
        )

    def close_issue(self, number: int, reason: str) -> None:
        args = ["issue", "close", str(number), "-R", self.repo]
        args.extend(["--reason", _CLOSE_REASONS.get(reason, reason)])
        try:
            self._run(args)
        except GhCommandError as exc:
            if exc.not_found:
                raise NotFoundError("issue", number) from exc
            raise RemoteWriteError(str(exc), details=exc.output) from exc

    # --- milestones -------------------------------------------------------
    def create_milestone(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._write(f"repos/{self.repo}/milestones", "POST", payload, kind="milestone")

    def get_milestone(self, number: int) -> dict[str, Any] | None:
        try:
            data = self._api(f"repos/{self.repo}/milestones/{number}")
        except GhCommandError as exc:
            if exc.not_found:
                return None
            raise
        return data if isinstance(data, dict) else None

    def list_milestones(self, state: str = "open") -> list[dict[str, Any]]:
        data = self._api(
            f"repos/{self.repo}/milestones?state={state}&sort=due_on&direction=desc&per_page=100"
        )
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def update_milestone(self, number: int, payload: dict[str, Any]) -> dict[str, Any]:
        return self._write(
            f"repos/{self.repo}/milestones/{number}",
            "PATCH",
            payload,
            kind="milestone",
            number=number,
        )

    # --- labels -----------------------------------------------------------
    def list_labels(self) -> list[dict[str, Any]]:
        data = self._json(
            ["label", "list", "-R", self.repo, "--json", "name,color,description", "--limit", "500"]
        )
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def create_label(self, name: str, color: str, description: str) -> None:
        try:
            self._run(
                [
                    "label",
                    "create",
                    name,
                    "--color",
                    color,
                    "--description",
                    description,
                    "-R",
                    self.repo,
                ]
            )
        except GhCommandError as exc:
            if "already exists" in exc.output.lower():
                return
            raise RemoteWriteError(str(exc), details=exc.output) from exc


__all__ = ["GhCliIssueStore", "GhCommandError", "ISSUE_FIELDS"]
