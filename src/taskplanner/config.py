from __future__ import annotations

import json
import os
import shutil
import subprocess  # nosec B404 - used for optional gh auto-detection
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError
from .github_rest import DEFAULT_API_URL

CONFIG_DIR = Path.home() / ".taskplanner"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
TRANSPORTS = ("auto", "gh", "rest")

_TOKEN_VARS = ("TASKPLANNER_GITHUB_TOKEN", "GITHUB_TOKEN", "GH_TOKEN")


@dataclass
class PlannerConfig:
    owner: str = ""
    repo: str = ""
    token: str | None = None
    transport: str = "auto"
    api_url: str = DEFAULT_API_URL
    list_limit: int = 500
    # Notifications
    notify_enabled: bool = True
    notify_morning_time: str = "09:00"
    notify_overdue_time: str = "14:00"
    # Planning assistant
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    # Logging
    logging_json_enabled: bool = False
    logging_level: str = "WARNING"
    source_file: Path | None = field(default=None, compare=False)

    @property
    def repo_slug(self) -> str:
        if not self.owner or not self.repo:
            return ""
        return f"{self.owner}/{self.repo}"


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _split_slug(slug: str) -> tuple[str, str]:
    owner, sep, repo = slug.strip().partition("/")
    if not sep or not owner or not repo:
        raise ConfigurationError(f"repository must look like owner/repo, got {slug!r}")
    return owner, repo


def _read_file(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"configuration in {path} must be a mapping")
    return cast(dict[str, Any], raw)


def _apply_file(cfg: PlannerConfig, raw: dict[str, Any]) -> None:
    gh = cast(dict[str, Any], raw.get("github", {}) or {})
    notify = cast(dict[str, Any], raw.get("notify", {}) or {})
    ai = cast(dict[str, Any], raw.get("ai", {}) or {})
    logging_config = cast(dict[str, Any], raw.get("logging", {}) or {})

    if _clean(gh.get("repo")) and "/" in str(gh["repo"]):
        cfg.owner, cfg.repo = _split_slug(str(gh["repo"]))
    else:
        cfg.owner = _clean(gh.get("owner")) or cfg.owner
        cfg.repo = _clean(gh.get("repo")) or cfg.repo
    cfg.token = _clean(gh.get("token")) or cfg.token
    cfg.transport = _clean(gh.get("transport")) or cfg.transport
    cfg.api_url = _clean(gh.get("api_url")) or cfg.api_url
    cfg.list_limit = int(gh.get("list_limit", cfg.list_limit))
    cfg.notify_enabled = _flag(notify.get("enabled"), cfg.notify_enabled)
    cfg.notify_morning_time = _clean(notify.get("morning_time")) or cfg.notify_morning_time
    cfg.notify_overdue_time = _clean(notify.get("overdue_time")) or cfg.notify_overdue_time
    cfg.openai_api_key = _clean(ai.get("openai_api_key")) or cfg.openai_api_key
    cfg.openai_model = _clean(ai.get("model")) or cfg.openai_model
    cfg.logging_json_enabled = _flag(logging_config.get("json_enabled"), cfg.logging_json_enabled)
    cfg.logging_level = _clean(logging_config.get("level")) or cfg.logging_level


def _apply_env(cfg: PlannerConfig, env: Mapping[str, str]) -> None:
    slug = _clean(env.get("TASKPLANNER_REPO"))
    if slug:
        cfg.owner, cfg.repo = _split_slug(slug)
    cfg.owner = _clean(env.get("GITHUB_OWNER")) or cfg.owner
    cfg.repo = _clean(env.get("GITHUB_REPO")) or cfg.repo
    for name in _TOKEN_VARS:
        token = _clean(env.get(name))
        if token:
            cfg.token = token
            break
    cfg.transport = _clean(env.get("TASKPLANNER_TRANSPORT")) or cfg.transport
    cfg.api_url = _clean(env.get("TASKPLANNER_GITHUB_API")) or cfg.api_url
    cfg.notify_enabled = _flag(env.get("NOTIFY_ENABLED"), cfg.notify_enabled)
    cfg.notify_morning_time = _clean(env.get("NOTIFY_MORNING_TIME")) or cfg.notify_morning_time
    cfg.notify_overdue_time = _clean(env.get("NOTIFY_OVERDUE_TIME")) or cfg.notify_overdue_time
    cfg.openai_api_key = _clean(env.get("OPENAI_API_KEY")) or cfg.openai_api_key
    cfg.openai_model = _clean(env.get("OPENAI_MODEL")) or cfg.openai_model
    cfg.logging_json_enabled = _flag(env.get("TASKPLANNER_LOG_JSON"), cfg.logging_json_enabled)
    cfg.logging_level = _clean(env.get("TASKPLANNER_LOG_LEVEL")) or cfg.logging_level


def _gh_output(*args: str) -> str | None:
    gh = shutil.which("gh")
    if not gh:
        return None
    try:
        return subprocess.check_output(  # nosec B603 - fixed argument list
            [gh, *args], text=True, stderr=subprocess.DEVNULL, timeout=15
        ).strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError):
        return None


def _detect_with_gh(cfg: PlannerConfig) -> None:
    """Fill owner/repo and token from ``gh`` when still missing."""
    if not cfg.owner or not cfg.repo:
        out = _gh_output("repo", "view", "--json", "owner,name")
        if out:
            try:
                data = json.loads(out)
            except json.JSONDecodeError:
                data = {}
            owner = data.get("owner") if isinstance(data, dict) else None
            if isinstance(owner, dict):
                cfg.owner = cfg.owner or str(owner.get("login") or "")
            if isinstance(data, dict):
                cfg.repo = cfg.repo or str(data.get("name") or "")
    if not cfg.token and cfg.transport == "rest":
        cfg.token = _gh_output("auth", "token") or None


def load_config(
    path: str | Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    detect: bool = True,
    dotenv_path: str | Path | None = None,
    allow_missing: bool = False,
) -> PlannerConfig:
    """Resolve configuration: defaults < YAML file < environment < gh detection.

    ``.env`` files are loaded into the process environment first when reading
    the real environment; an explicit ``env`` mapping bypasses that. An
    explicit ``path`` that does not exist is an error unless ``allow_missing``
    (used by ``init``, which is about to create it).
    """
    if env is None:
        dotenv_file = Path(dotenv_path) if dotenv_path else Path(".env")
        if dotenv_file.exists():
            load_dotenv(str(dotenv_file))
        env = os.environ
    cfg = PlannerConfig()
    config_path = Path(path) if path else Path(env.get("TASKPLANNER_CONFIG") or CONFIG_FILE)
    if config_path.exists():
        _apply_file(cfg, _read_file(config_path))
        cfg.source_file = config_path
    elif path and not allow_missing:
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    _apply_env(cfg, env)
    if detect:
        _detect_with_gh(cfg)
    cfg.transport = cfg.transport.lower()
    return cfg


def validate_config(cfg: PlannerConfig) -> list[str]:
    problems: list[str] = []
    if not cfg.owner:
        problems.append("GitHub owner not set. Run `taskplanner init` or set GITHUB_OWNER.")
    if not cfg.repo:
        problems.append("GitHub repo not set. Run `taskplanner init` or set GITHUB_REPO.")
    if cfg.transport not in TRANSPORTS:
        problems.append(f"Unknown transport {cfg.transport!r}; use one of {', '.join(TRANSPORTS)}.")
    if cfg.transport == "rest" and not cfg.token:
        problems.append("GitHub token not found. Set GITHUB_TOKEN or run `gh auth login`.")
    if cfg.list_limit <= 0:
        problems.append("list_limit must be positive.")
    return problems


def require_config(cfg: PlannerConfig) -> PlannerConfig:
    problems = validate_config(cfg)
    if problems:
        raise ConfigurationError(" ".join(problems))
    return cfg


def save_config(cfg: PlannerConfig, path: str | Path | None = None) -> Path:
    """Write the non-secret settings as YAML; tokens stay in the environment."""
    target = Path(path) if path else CONFIG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    doc = {
        "github": {
            "owner": cfg.owner,
            "repo": cfg.repo,
            "transport": cfg.transport,
            "api_url": cfg.api_url,
            "list_limit": cfg.list_limit,
        },
        "notify": {
            "enabled": cfg.notify_enabled,
            "morning_time": cfg.notify_morning_time,
            "overdue_time": cfg.notify_overdue_time,
        },
        "ai": {"model": cfg.openai_model},
        "logging": {"json_enabled": cfg.logging_json_enabled, "level": cfg.logging_level},
    }
    target.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
    return target


__all__ = [
    "CONFIG_FILE",
    "PlannerConfig",
    "TRANSPORTS",
    "load_config",
    "require_config",
    "save_config",
    "validate_config",
]
