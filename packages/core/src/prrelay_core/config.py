import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

import yaml

DEFAULT_WORK_SCHEDULE: dict = {
    "work_days": [1, 2, 3, 4, 5],  # 0 = Sunday ... 6 = Saturday
    "start_hour": 10,
    "end_hour": 18,
    "timezone": "Europe/Moscow",
}

DEFAULT_CONFIG: dict = {
    "provider": "bitbucket",  # "bitbucket" | "github"
    "bitbucket_api_url": "https://api.bitbucket.org/2.0",
    "workspaces": [],  # [{"name": "acme", "repositories": ["backend", "frontend"]}]
    "chat_api_url": "https://api.pachca.com/api/shared/v1",
    "chat_id": None,
    "mentions": {},  # display name -> chat mention, e.g. {"Jane Doe": "@jane"}
    "store": "json",  # "json" | "sqlite"
    "store_path": ".prrelay_threads.json",
    "poll_interval": 600,
    "drain_interval": 5,
    "request_timeout": 10,
    "work_schedule": DEFAULT_WORK_SCHEDULE,
}

# Environment variable -> config key for plain string overrides.
_ENV_OVERRIDES = {
    "PACHKA_CHAT_ID": "chat_id",
    "PACHKA_API_URL": "chat_api_url",
    "BITBUCKET_API_URL": "bitbucket_api_url",
}


@dataclass(frozen=True)
class WorkspaceConfig:
    name: str
    repositories: list[str] = field(default_factory=list)

    def full_name(self, repository: str) -> str:
        return f"{self.name}/{repository}"


@dataclass(frozen=True)
class WorkSchedule:
    """Days and hours during which poll-driven notifications are allowed."""

    work_days: frozenset[int] = frozenset({1, 2, 3, 4, 5})
    start_hour: int = 10
    end_hour: int = 18
    timezone: str = "Europe/Moscow"

    def is_working_time(self, now: Optional[datetime] = None) -> bool:
        tz = ZoneInfo(self.timezone)
        local = now.astimezone(tz) if now is not None else datetime.now(tz)
        # datetime.weekday() is Monday=0; work_days uses Sunday=0.
        day = (local.weekday() + 1) % 7
        if day not in self.work_days:
            return False
        return self.start_hour <= local.hour < self.end_hour


def load_config(config_path: str = ".prrelay.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prrelay.yml in the current directory
      3. Environment variables
      4. CLI argument overrides
    """
    config = {
        **DEFAULT_CONFIG,
        "workspaces": list(DEFAULT_CONFIG["workspaces"]),
        "mentions": dict(DEFAULT_CONFIG["mentions"]),
        "work_schedule": dict(DEFAULT_WORK_SCHEDULE),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        schedule = file_config.pop("work_schedule", None) or {}
        config.update(file_config)
        config["work_schedule"].update(schedule)

    _apply_env(config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["bitbucket_username"] = os.environ.get("BITBUCKET_USERNAME")
    config["bitbucket_app_password"] = os.environ.get("BITBUCKET_APP_PASSWORD")
    config["chat_token"] = os.environ.get("PACHKA_BOT_TOKEN")
    config["github_token"] = os.environ.get("GITHUB_TOKEN")

    return config


def _apply_env(config: dict) -> None:
    for env_key, config_key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_key)
        if value:
            config[config_key] = value

    workspaces = os.environ.get("BITBUCKET_WORKSPACES")
    if workspaces:
        config["workspaces"] = _parse_json_env("BITBUCKET_WORKSPACES", workspaces)

    mentions = os.environ.get("REVIEWER_MAPPINGS")
    if mentions:
        config["mentions"] = _parse_json_env("REVIEWER_MAPPINGS", mentions)

    schedule = config["work_schedule"]
    work_days = os.environ.get("WORK_SCHEDULE_WORK_DAYS")
    if work_days:
        schedule["work_days"] = [int(d) for d in work_days.split(",") if d.strip()]
    for env_key, schedule_key in (("WORK_SCHEDULE_START_HOUR", "start_hour"), ("WORK_SCHEDULE_END_HOUR", "end_hour")):
        value = os.environ.get(env_key)
        if value:
            schedule[schedule_key] = int(value)
    timezone = os.environ.get("WORK_SCHEDULE_TIMEZONE")
    if timezone:
        schedule["timezone"] = timezone


def _parse_json_env(name: str, raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"{name} is not valid JSON: {e}") from e


def parse_workspaces(config: dict) -> list[WorkspaceConfig]:
    """Turn the ``workspaces`` config entry into WorkspaceConfig objects.

    Accepts both ``repositories`` and ``repos`` keys; entries without a name are
    rejected rather than silently polled under an empty workspace.
    """
    result = []
    for entry in config.get("workspaces") or []:
        name = entry.get("name")
        if not name:
            raise ValueError(f"Workspace entry is missing 'name': {entry!r}")
        repositories = entry.get("repositories", entry.get("repos")) or []
        result.append(WorkspaceConfig(name=name, repositories=list(repositories)))
    return result


def load_work_schedule(config: dict) -> WorkSchedule:
    raw = {**DEFAULT_WORK_SCHEDULE, **(config.get("work_schedule") or {})}
    start_hour, end_hour = int(raw["start_hour"]), int(raw["end_hour"])
    work_days = frozenset(int(d) for d in raw["work_days"])
    if not 0 <= start_hour <= 23 or not 0 <= end_hour <= 24:
        raise ValueError(f"Work hours must be within 0-24, got {start_hour}-{end_hour}")
    if not work_days <= set(range(7)):
        raise ValueError(f"Work days must be between 0 (Sunday) and 6 (Saturday), got {sorted(work_days)}")
    return WorkSchedule(work_days=work_days, start_hour=start_hour, end_hour=end_hour, timezone=raw["timezone"])
