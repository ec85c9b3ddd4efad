"""Issue store port.

The repository talks to the tracker only through :class:`IssueStore`. Two
adapters implement it: :class:`~taskplanner.github_cli.GhCliIssueStore`
(shells out to ``gh``) and :class:`~taskplanner.github_rest.RestIssueStore`
(``requests`` against the REST API). Adapters return raw records in their
native shape; :mod:`taskplanner.normalize` reconciles the differences.

Adapter contract:
 - ``get_issue`` / ``get_milestone`` return ``None`` for a missing record
 - writes raise :class:`~taskplanner.errors.RemoteWriteError` on rejection
   and :class:`~taskplanner.errors.NotFoundError` when the target is absent
 - failed reads raise :class:`~taskplanner.errors.TransportError`
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from .errors import ConfigurationError

if TYPE_CHECKING:  # pragma: no cover
    from .config import PlannerConfig

CLOSE_COMPLETED = "completed"
CLOSE_NOT_PLANNED = "not_planned"

DEFAULT_LIST_LIMIT = 500


@dataclass
class IssueFilter:
    state: str = "open"  # open | closed | all
    labels: list[str] = field(default_factory=list)
    assignee: str | None = None
    milestone: int | None = None
    limit: int = DEFAULT_LIST_LIMIT


class IssueStore(Protocol):
    def list_issues(self, query: IssueFilter) -> list[dict[str, Any]]: ...

    def get_issue(self, number: int) -> dict[str, Any] | None: ...

    def create_issue(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    def update_issue(self, number: int, payload: dict[str, Any]) -> dict[str, Any]: ...

    def close_issue(self, number: int, reason: str) -> None: ...

    def create_milestone(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    def get_milestone(self, number: int) -> dict[str, Any] | None: ...

    def list_milestones(self, state: str = "open") -> list[dict[str, Any]]: ...

    def update_milestone(self, number: int, payload: dict[str, Any]) -> dict[str, Any]: ...

    def list_labels(self) -> list[dict[str, Any]]: ...

    def create_label(self, name: str, color: str, description: str) -> None: ...


def create_store(cfg: PlannerConfig) -> IssueStore:
    """Build the adapter selected by ``cfg.transport``.

    ``auto`` prefers REST when a token is configured and falls back to ``gh``
    (which carries its own authentication) otherwise.
    """
    from .github_cli import GhCliIssueStore  # noqa: PLC0415 - avoid import cycle
    from .github_rest import DEFAULT_API_URL, RestIssueStore  # noqa: PLC0415

    if not cfg.repo_slug:
        raise ConfigurationError("GitHub repository not set (owner/repo)")
    transport = (cfg.transport or "auto").lower()
    if transport == "auto":
        transport = "rest" if cfg.token else "gh"
    if transport == "rest":
        if not cfg.token:
            raise ConfigurationError("REST transport requires a GitHub token")
        return RestIssueStore(
            token=cfg.token, repo=cfg.repo_slug, base_url=cfg.api_url or DEFAULT_API_URL
        )
    if transport == "gh":
        return GhCliIssueStore(repo=cfg.repo_slug)
    raise ConfigurationError(f"unknown transport {cfg.transport!r}; expected auto, gh or rest")


__all__ = [
    "CLOSE_COMPLETED",
    "CLOSE_NOT_PLANNED",
    "DEFAULT_LIST_LIMIT",
    "IssueFilter",
    "IssueStore",
    "create_store",
]
