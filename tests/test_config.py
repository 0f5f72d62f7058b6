import os
from datetime import date
from pathlib import Path

import pytest

from config import ConfigError, last_day_of_month, load_settings

REQUIRED = {"APP_BASE_URL": "https://app.test", "APP_USERNAME": "tester", "APP_PASSWORD": "pw"}


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Replace the process environment and hand back an empty .env path."""
    environ: dict[str, str] = {}
    monkeypatch.setattr(os, "environ", environ)
    env_file = tmp_path / ".env"
    env_file.write_text("", encoding="utf-8")
    return environ, env_file


def test_defaults(env):
    environ, env_file = env
    environ.update(REQUIRED)
    settings = load_settings(env_file)
    assert settings.base_url == "https://app.test"
    assert settings.invoice_prefix == "ASH"
    assert settings.process == "BUDGET NEW"
    assert settings.ship_code == "TURC"
    assert settings.period_key == "2"
    assert settings.due_date == last_day_of_month()
    assert settings.create_credit_note is True
    assert settings.scenario_timeout_s == 300
    assert settings.capture_attempts == 3 and settings.capture_interval_ms == 3000
    assert settings.retries == 0
    assert settings.trace_mode == "on-first-retry"
    assert settings.video_mode == "retain-on-failure"
    assert settings.screenshot_mode == "only-on-failure"
    assert settings.output_dir == Path("data/runs")
    assert settings.email.host == "smtp.gmail.com" and settings.email.port == 587
    assert not settings.email.configured
    assert settings.sql.trust_server_certificate is True and settings.sql.encrypt is False


def test_values_come_from_env_file(env):
    environ, env_file = env
    env_file.write_text(
        "APP_BASE_URL=https://file.test\nAPP_USERNAME=file-user\nAPP_PASSWORD=file-pw\n"
        "FUND_REQUEST_DUE_DATE=2025-10-31\nEMAIL_USER=bot@example.com\nEMAIL_PASS=x\nEMAIL_TO=a@example.com, b@example.com\n",
        encoding="utf-8",
    )
    settings = load_settings(env_file)
    assert settings.base_url == "https://file.test"
    assert settings.due_date == date(2025, 10, 31)
    assert settings.email.to == ("a@example.com", "b@example.com")
    assert settings.email.sender == "bot@example.com"
    assert settings.email.configured


def test_missing_credentials_are_named(env):
    environ, env_file = env
    environ["APP_BASE_URL"] = "https://app.test"
    with pytest.raises(ConfigError, match="APP_USERNAME, APP_PASSWORD"):
        load_settings(env_file)


def test_missing_env_file(env, tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "nope.env")


def test_ci_and_recording_flags(env):
    environ, env_file = env
    environ.update(REQUIRED, CI="true", RECORD_ALL="1")
    settings = load_settings(env_file)
    assert settings.retries == 2
    assert settings.trace_mode == "on"
    assert settings.video_mode == "on"
    assert settings.screenshot_mode == "on"


def test_cli_overrides_win_and_none_is_ignored(env):
    environ, env_file = env
    environ.update(REQUIRED, SCENARIO_TIMEOUT_S="120")
    settings = load_settings(env_file, base_url="https://cli.test", headless=False, retries=None, scenario_timeout_s=None)
    assert settings.base_url == "https://cli.test"
    assert settings.headless is False
    assert settings.scenario_timeout_s == 120


def test_database_validation_needs_sql_settings(env):
    environ, env_file = env
    environ.update(REQUIRED)
    with pytest.raises(ConfigError, match="SQL_SERVER and SQL_DATABASE"):
        load_settings(env_file, validate_db=True)

    environ.update(SQL_SERVER="db.local", SQL_DATABASE="ShipNet")
    settings = load_settings(env_file, validate_db=True, send_email=False)
    assert settings.validate_db is True
    assert settings.send_email is False


def test_bad_integer(env):
    environ, env_file = env
    environ.update(REQUIRED, PROBE_TIMEOUT_MS="fast")
    with pytest.raises(ConfigError, match="PROBE_TIMEOUT_MS"):
        load_settings(env_file)


def test_bad_due_date(env):
    environ, env_file = env
    environ.update(REQUIRED, FUND_REQUEST_DUE_DATE="31/10/2025")
    with pytest.raises(ConfigError, match="FUND_REQUEST_DUE_DATE"):
        load_settings(env_file)


def test_last_day_of_month():
    assert last_day_of_month(date(2024, 2, 10)) == date(2024, 2, 29)
    assert last_day_of_month(date(2025, 10, 1)) == date(2025, 10, 31)
