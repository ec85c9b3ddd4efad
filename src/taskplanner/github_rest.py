"""REST transport for the issue store port (``requests`` based)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import NotFoundError, RemoteWriteError, TransportError, redact
from .retry import run_with_retries
from .store import IssueFilter

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "taskplanner-rest/0.1.0"
HTTP_ERROR_STATUS = 400
HTTP_NOT_FOUND = 404
HTTP_UNPROCESSABLE = 422
_TRANSIENT_STATUSES = {429, 502, 503, 504}


class GitHubAPIError(TransportError):
    """Raised when a REST read returns an error status."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


def _transient_hint(response: requests.Response) -> str | None:
    status = response.status_code
    text = response.text or ""
    if status in _TRANSIENT_STATUSES or (status == 403 and "rate limit" in text.lower()):
        headers = getattr(response, "headers", None) or {}
        retry_after = headers.get("Retry-After")
        return f"Retry-After: {retry_after}" if retry_after else text
    return None


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except Exception:  # noqa: BLE001 - body is not always JSON
        return response.text or ""
    if isinstance(data, dict):
        message = str(data.get("message") or "")
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            message += " " + "; ".join(
                str(e.get("message") or e.get("code") or e) if isinstance(e, dict) else str(e)
                for e in errors
            )
        return message.strip()
    return response.text or ""


@dataclass
class RestIssueStore:
    """Issue store backed by the GitHub REST API."""

    token: str
    repo: str
    base_url: str = DEFAULT_API_URL
    timeout: float = 30
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- HTTP helpers -------------------------------------------------
    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> requests.Response:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

        def _run() -> requests.Response:
            return self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._session.headers,
                timeout=self.timeout,
            )

        try:
            return run_with_retries(_run, transient_result=_transient_hint)
        except (requests.ConnectionError, requests.Timeout) as exc:
            message = redact(f"GitHub API {method} {path} unreachable: {exc}")
            if method == "GET":
                raise GitHubAPIError(message) from exc
            raise RemoteWriteError(message) from exc

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _read(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        response = self._send("GET", path, params=params)
        if response.status_code >= HTTP_ERROR_STATUS:
            raise GitHubAPIError(
                redact(f"GitHub API GET {path} failed with {response.status_code}"),
                status=response.status_code,
                response_text=response.text,
            )
        return self._decode(response)

    def _write(
        self,
        method: str,
        path: str,
        payload: dict[str, Any],
        *,
        kind: str,
        number: int | None = None,
    ) -> dict[str, Any]:
        response = self._send(method, path, json_body=payload)
        status = response.status_code
        if status == HTTP_NOT_FOUND and number is not None:
            raise NotFoundError(kind, number)
        if status >= HTTP_ERROR_STATUS:
            raise RemoteWriteError(
                f"GitHub rejected {method} {path} ({status}): {_error_message(response)}",
                status=status,
                details=response.text,
            )
        data = self._decode(response)
        return data if isinstance(data, dict) else {}

    def _paginate(
        self, path: str, *, params: dict[str, Any] | None = None, limit: int | None = None
    ) -> list[Any]:
        params = dict(params or {})
        per_page = params.setdefault("per_page", 100)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._read(path, params=params)
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < per_page or (limit is not None and len(results) >= limit):
                break
            params["page"] = params.get("page", 1) + 1
        return results[:limit] if limit is not None else results

    # ---- issues -------------------------------------------------------
    def list_issues(self, query: IssueFilter) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"state": query.state, "per_page": 100, "page": 1}
        if query.labels:
            params["labels"] = ",".join(query.labels)
        if query.assignee:
            params["assignee"] = query.assignee
        if query.milestone is not None:
            params["milestone"] = str(query.milestone)
        data = self._paginate(f"/repos/{self.repo}/issues", params=params, limit=query.limit)
        # the issues endpoint also lists pull requests
        return [e for e in data if isinstance(e, dict) and "pull_request" not in e]

    def get_issue(self, number: int) -> dict[str, Any] | None:
        try:
            data = self._read(f"/repos/{self.repo}/issues/{number}")
        except GitHubAPIError as exc:
            if exc.status == HTTP_NOT_FOUND:
                return None
            raise
        if not isinstance(data, dict) or "pull_request" in data:
            return None
        return data

    def create_issue(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._write("POST", f"/repos/{self.repo}/issues", payload, kind="issue")

    def update_issue(self, number: int, payload: dict[str, Any]) -> dict[str, Any]:
        return self._write(
            "PATCH", f"/repos/{self.repo}/issues/{number}", payload, kind="issue", number=number
        )

    def close_issue(self, number: int, reason: str) -> None:
        self.update_issue(number, {"state": "closed", "state_reason": reason})

    # ---- milestones ---------------------------------------------------
    def create_milestone(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._write("POST", f"/repos/{self.repo}/milestones", payload, kind="milestone")

    def get_milestone(self, number: int) -> dict[str, Any] | None:
        try:
            data = self._read(f"/repos/{self.repo}/milestones/{number}")
        except GitHubAPIError as exc:
            if exc.status == HTTP_NOT_FOUND:
                return None
            raise
        return data if isinstance(data, dict) else None

    def list_milestones(self, state: str = "open") -> list[dict[str, Any]]:
        params = {"state": state, "sort": "due_on", "direction": "desc"}
        data = self._paginate(f"/repos/{self.repo}/milestones", params=params)
        return [e for e in data if isinstance(e, dict)]

    def update_milestone(self, number: int, payload: dict[str, Any]) -> dict[str, Any]:
        return self._write(
            "PATCH",
            f"/repos/{self.repo}/milestones/{number}",
            payload,
            kind="milestone",
            number=number,
        )

    # ---- labels -------------------------------------------------------
    def list_labels(self) -> list[dict[str, Any]]:
        data = self._paginate(f"/repos/{self.repo}/labels")
        return [e for e in data if isinstance(e, dict)]

    def create_label(self, name: str, color: str, description: str) -> None:
        response = self._send(
            "POST",
            f"/repos/{self.repo}/labels",
            json_body={"name": name, "color": color, "description": description},
        )
        # 422 already_exists: a concurrent provision beat us to it
        if response.status_code == HTTP_UNPROCESSABLE and "already_exists" in (response.text or ""):
            return
        if response.status_code >= HTTP_ERROR_STATUS:
            raise RemoteWriteError(
                f"GitHub rejected label {name} ({response.status_code}): "
                f"{_error_message(response)}",
                status=response.status_code,
                details=response.text,
            )


__all__ = ["DEFAULT_API_URL", "GitHubAPIError", "RestIssueStore"]
