"""Tests for configuration loading."""

from datetime import datetime

import pytest

from prrelay_core.config import WorkSchedule, load_config, load_work_schedule, parse_workspaces

_ENV_VARS = [
    "PACHKA_CHAT_ID",
    "PACHKA_API_URL",
    "PACHKA_BOT_TOKEN",
    "BITBUCKET_API_URL",
    "BITBUCKET_WORKSPACES",
    "BITBUCKET_USERNAME",
    "BITBUCKET_APP_PASSWORD",
    "GITHUB_TOKEN",
    "REVIEWER_MAPPINGS",
    "WORK_SCHEDULE_WORK_DAYS",
    "WORK_SCHEDULE_START_HOUR",
    "WORK_SCHEDULE_END_HOUR",
    "WORK_SCHEDULE_TIMEZONE",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["provider"] == "bitbucket"
    assert config["store"] == "json"
    assert config["poll_interval"] == 600
    assert config["drain_interval"] == 5
    assert config["workspaces"] == []
    assert config["mentions"] == {}
    assert config["work_schedule"]["work_days"] == [1, 2, 3, 4, 5]


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".relay.yml"
    cfg.write_text(
        "provider: github\n"
        "poll_interval: 300\n"
        "workspaces:\n"
        "  - name: acme\n"
        "    repositories: [backend, frontend]\n"
        "mentions:\n"
        "  Jane Doe: '@jane'\n"
    )
    config = load_config(config_path=str(cfg))
    assert config["provider"] == "github"
    assert config["poll_interval"] == 300
    assert config["workspaces"] == [{"name": "acme", "repositories": ["backend", "frontend"]}]
    assert config["mentions"] == {"Jane Doe": "@jane"}


def test_partial_work_schedule_merged_with_defaults(tmp_path):
    cfg = tmp_path / ".relay.yml"
    cfg.write_text("work_schedule:\n  start_hour: 9\n")
    config = load_config(config_path=str(cfg))
    assert config["work_schedule"]["start_hour"] == 9
    assert config["work_schedule"]["end_hour"] == 18
    assert config["work_schedule"]["timezone"] == "Europe/Moscow"


def test_env_overrides_config_file(tmp_path, monkeypatch):
    cfg = tmp_path / ".relay.yml"
    cfg.write_text("chat_id: '111'\n")
    monkeypatch.setenv("PACHKA_CHAT_ID", "222")
    monkeypatch.setenv("BITBUCKET_WORKSPACES", '[{"name": "acme", "repositories": ["api"]}]')
    monkeypatch.setenv("REVIEWER_MAPPINGS", '{"Bob": "@bob"}')
    monkeypatch.setenv("WORK_SCHEDULE_WORK_DAYS", "1,2,3")
    monkeypatch.setenv("WORK_SCHEDULE_START_HOUR", "8")
    monkeypatch.setenv("WORK_SCHEDULE_TIMEZONE", "UTC")

    config = load_config(config_path=str(cfg))

    assert config["chat_id"] == "222"
    assert config["workspaces"] == [{"name": "acme", "repositories": ["api"]}]
    assert config["mentions"] == {"Bob": "@bob"}
    assert config["work_schedule"]["work_days"] == [1, 2, 3]
    assert config["work_schedule"]["start_hour"] == 8
    assert config["work_schedule"]["timezone"] == "UTC"


def test_invalid_json_env_raises(monkeypatch, tmp_path):
    monkeypatch.setenv("REVIEWER_MAPPINGS", "{not json")
    with pytest.raises(ValueError, match="REVIEWER_MAPPINGS"):
        load_config(config_path=str(tmp_path / "nonexistent.yml"))


def test_cli_overrides_win_and_none_ignored(tmp_path):
    cfg = tmp_path / ".relay.yml"
    cfg.write_text("store: sqlite\npoll_interval: 300\n")
    config = load_config(config_path=str(cfg), cli_overrides={"store": "json", "poll_interval": None})
    assert config["store"] == "json"
    assert config["poll_interval"] == 300


def test_credentials_loaded_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BITBUCKET_USERNAME", "bot")
    monkeypatch.setenv("BITBUCKET_APP_PASSWORD", "secret")
    monkeypatch.setenv("PACHKA_BOT_TOKEN", "chat-token")
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["bitbucket_username"] == "bot"
    assert config["bitbucket_app_password"] == "secret"
    assert config["chat_token"] == "chat-token"
    assert config["github_token"] == "gh-token"


def test_defaults_are_not_shared_between_loads(tmp_path):
    """Mutating one config must not affect another."""
    config_a = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_b = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_a["workspaces"].append({"name": "x"})
    config_a["work_schedule"]["start_hour"] = 1
    assert config_b["workspaces"] == []
    assert config_b["work_schedule"]["start_hour"] == 10


class TestParseWorkspaces:
    def test_parses_entries(self):
        workspaces = parse_workspaces({"workspaces": [{"name": "acme", "repositories": ["a", "b"]}]})
        assert workspaces[0].name == "acme"
        assert workspaces[0].repositories == ["a", "b"]
        assert workspaces[0].full_name("a") == "acme/a"

    def test_accepts_repos_alias(self):
        assert parse_workspaces({"workspaces": [{"name": "acme", "repos": ["a"]}]})[0].repositories == ["a"]

    def test_missing_name_rejected(self):
        with pytest.raises(ValueError):
            parse_workspaces({"workspaces": [{"repositories": ["a"]}]})


class TestWorkSchedule:
    # 2024-05-06 is a Monday, 2024-05-05 a Sunday.
    def _utc(self, **overrides):
        return WorkSchedule(timezone="UTC", **overrides)

    def test_within_hours_on_work_day(self):
        assert self._utc().is_working_time(datetime.fromisoformat("2024-05-06T12:00:00+00:00")) is True

    def test_before_start_hour(self):
        assert self._utc().is_working_time(datetime.fromisoformat("2024-05-06T09:59:00+00:00")) is False

    def test_end_hour_is_exclusive(self):
        assert self._utc().is_working_time(datetime.fromisoformat("2024-05-06T18:00:00+00:00")) is False

    def test_sunday_is_not_a_default_work_day(self):
        assert self._utc().is_working_time(datetime.fromisoformat("2024-05-05T12:00:00+00:00")) is False

    def test_sunday_numbered_zero(self):
        schedule = self._utc(work_days=frozenset({0}))
        assert schedule.is_working_time(datetime.fromisoformat("2024-05-05T12:00:00+00:00")) is True

    def test_timezone_conversion(self):
        # 07:30 UTC is 10:30 in Moscow (UTC+3).
        schedule = WorkSchedule(timezone="Europe/Moscow")
        assert schedule.is_working_time(datetime.fromisoformat("2024-05-06T07:30:00+00:00")) is True

    def test_load_from_config(self):
        schedule = load_work_schedule(
            {"work_schedule": {"work_days": [1, 2], "start_hour": 9, "end_hour": 17, "timezone": "UTC"}}
        )
        assert schedule == WorkSchedule(work_days=frozenset({1, 2}), start_hour=9, end_hour=17, timezone="UTC")

    def test_load_rejects_bad_days(self):
        with pytest.raises(ValueError):
            load_work_schedule({"work_schedule": {"work_days": [7]}})
