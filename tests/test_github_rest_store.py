import json
from dataclasses import dataclass, field
from typing import Any

import pytest
import requests

from taskplanner.errors import NotFoundError, RemoteWriteError, TaskPlannerError, TransportError
from taskplanner.github_rest import GitHubAPIError, RestIssueStore
from taskplanner.repository import TaskRepository
from taskplanner.store import CLOSE_NOT_PLANNED, IssueFilter


@dataclass
class _DummyResponse:
    status_code: int
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    @property
    def text(self) -> str:
        payload = self.payload
        if isinstance(payload, (dict, list)):
            return json.dumps(payload)
        return str(payload)


class _DummySession:
    def __init__(self, responses: list[_DummyResponse]):
        self._responses = responses
        self.request_log: list[tuple[str, str, dict[str, Any]]] = []
        self.headers: dict[str, str] = {}

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> _DummyResponse:
        self.request_log.append((method, url, {"headers": headers, "json": json, "params": params}))
        if not self._responses:
            raise AssertionError("No response queued for request")
        return self._responses.pop(0)


def _store(responses: list[_DummyResponse]) -> tuple[RestIssueStore, _DummySession]:
    session = _DummySession(responses)
    return RestIssueStore(token="tkn", repo="acme/planner", session=session), session


def test_session_headers_carry_token():
    _, session = _store([])
    assert session.headers["Authorization"] == "Bearer tkn"
    assert session.headers["Accept"] == "application/vnd.github+json"


def test_list_issues_filters_pull_requests_and_passes_query():
    store, session = _store(
        [
            _DummyResponse(
                200,
                [
                    {"number": 1, "title": "task"},
                    {"number": 2, "title": "pr", "pull_request": {"url": "x"}},
                ],
            )
        ]
    )
    issues = store.list_issues(IssueFilter(state="all", labels=["tp:todo", "tp:high"], milestone=3))
    assert [i["number"] for i in issues] == [1]
    method, url, kw = session.request_log[0]
    assert method == "GET"
    assert url == "https://api.github.com/repos/acme/planner/issues"
    assert kw["params"]["labels"] == "tp:todo,tp:high"
    assert kw["params"]["milestone"] == "3"
    assert kw["params"]["state"] == "all"


def test_list_issues_paginates_until_short_page():
    first = [{"number": n} for n in range(1, 101)]
    store, session = _store([_DummyResponse(200, first), _DummyResponse(200, [{"number": 101}])])
    issues = store.list_issues(IssueFilter())
    assert len(issues) == 101
    assert session.request_log[1][2]["params"]["page"] == 2


def test_list_issues_respects_limit():
    first = [{"number": n} for n in range(1, 101)]
    store, session = _store([_DummyResponse(200, first)])
    assert len(store.list_issues(IssueFilter(limit=10))) == 10
    assert len(session.request_log) == 1


def test_get_issue_missing_returns_none():
    store, _ = _store([_DummyResponse(404, {"message": "Not Found"})])
    assert store.get_issue(5) is None


def test_read_error_raises_api_error():
    store, _ = _store([_DummyResponse(500, {"message": "boom"})])
    with pytest.raises(GitHubAPIError) as exc:
        store.list_issues(IssueFilter())
    assert exc.value.status == 500


def test_create_issue_posts_payload():
    store, session = _store([_DummyResponse(201, {"number": 12, "title": "New"})])
    out = store.create_issue({"title": "New", "labels": ["tp:todo"]})
    assert out["number"] == 12
    method, url, kw = session.request_log[0]
    assert (method, url) == ("POST", "https://api.github.com/repos/acme/planner/issues")
    assert kw["json"] == {"title": "New", "labels": ["tp:todo"]}


def test_rejected_write_raises_remote_write_error():
    store, _ = _store(
        [
            _DummyResponse(
                422,
                {
                    "message": "Validation Failed",
                    "errors": [{"code": "invalid", "field": "assignees"}],
                },
            )
        ]
    )
    with pytest.raises(RemoteWriteError) as exc:
        store.create_issue({"title": "x", "assignees": ["ghost"]})
    assert exc.value.status == 422
    assert "Validation Failed invalid" in str(exc.value)


def test_update_missing_issue_raises_not_found():
    store, _ = _store([_DummyResponse(404, {"message": "Not Found"})])
    with pytest.raises(NotFoundError):
        store.update_issue(9, {"title": "x"})


def test_close_issue_sets_reason():
    store, session = _store([_DummyResponse(200, {"number": 3})])
    store.close_issue(3, CLOSE_NOT_PLANNED)
    method, url, kw = session.request_log[0]
    assert method == "PATCH"
    assert url.endswith("/issues/3")
    assert kw["json"] == {"state": "closed", "state_reason": "not_planned"}


def test_transient_status_is_retried():
    store, session = _store(
        [
            _DummyResponse(503, {"message": "unavailable"}, headers={"Retry-After": "0"}),
            _DummyResponse(200, {"number": 4, "title": "ok"}),
        ]
    )
    assert store.get_issue(4) == {"number": 4, "title": "ok"}
    assert len(session.request_log) == 2


def test_create_label_tolerates_existing():
    store, _ = _store(
        [
            _DummyResponse(
                422, {"message": "Validation Failed", "errors": [{"code": "already_exists"}]}
            )
        ]
    )
    store.create_label("tp:todo", "0075ca", "To do")


def test_milestones():
    store, session = _store(
        [
            _DummyResponse(201, {"number": 1, "title": "S1"}),
            _DummyResponse(200, [{"number": 1, "title": "S1"}]),
            _DummyResponse(404, {"message": "Not Found"}),
        ]
    )
    assert store.create_milestone({"title": "S1"})["number"] == 1
    assert [m["number"] for m in store.list_milestones("all")] == [1]
    assert session.request_log[1][2]["params"]["state"] == "all"
    assert store.get_milestone(2) is None


class _UnreachableSession(_DummySession):
    def __init__(self, exc: Exception):
        super().__init__([])
        self.exc = exc

    def request(self, method: str, url: str, **kw: Any) -> _DummyResponse:
        self.request_log.append((method, url, kw))
        raise self.exc


@pytest.mark.parametrize(
    "exc", [requests.ConnectionError("connection refused"), requests.Timeout("read timed out")]
)
def test_unreachable_read_raises_transport_error(exc):
    session = _UnreachableSession(exc)
    store = RestIssueStore(token="tkn", repo="acme/planner", session=session)
    with pytest.raises(GitHubAPIError) as err:
        store.get_issue(1)
    assert isinstance(err.value, TransportError)
    assert "unreachable" in str(err.value)
    assert len(session.request_log) > 1


def test_unreachable_write_raises_remote_write_error():
    session = _UnreachableSession(requests.ConnectionError("connection reset"))
    store = RestIssueStore(token="tkn", repo="acme/planner", session=session)
    with pytest.raises(RemoteWriteError):
        store.create_issue({"title": "x"})


def test_repository_surfaces_unreachable_api_as_planner_error():
    session = _UnreachableSession(requests.ConnectionError("no route to host"))
    repo = TaskRepository(RestIssueStore(token="tkn", repo="acme/planner", session=session))
    with pytest.raises(TaskPlannerError):
        repo.get(1)
