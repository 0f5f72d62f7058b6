"""Runtime settings from the environment (and an optional .env file)."""

import calendar
import logging
import os
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    pass


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def last_day_of_month(today: date | None = None) -> date:
    today = today or date.today()
    return today.replace(day=calendar.monthrange(today.year, today.month)[1])


def _due_date() -> date:
    raw = os.environ.get("FUND_REQUEST_DUE_DATE", "").strip()
    if not raw:
        return last_day_of_month()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ConfigError(f"FUND_REQUEST_DUE_DATE must be YYYY-MM-DD, got {raw!r}")


@dataclass(frozen=True)
class EmailSettings:
    host: str = "smtp.gmail.com"
    port: int = 587
    user: str | None = None
    password: str | None = None
    to: tuple[str, ...] = ()
    sender: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user and self.password and self.to)


@dataclass(frozen=True)
class SqlSettings:
    server: str | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    encrypt: bool = False
    trust_server_certificate: bool = True
    driver: str = "ODBC Driver 18 for SQL Server"

    @property
    def configured(self) -> bool:
        return bool(self.server and self.database)


@dataclass(frozen=True)
class Settings:
    base_url: str
    username: str
    password: str
    invoice_prefix: str = "ASH"

    process: str = "BUDGET NEW"
    ship_code: str = "TURC"
    period_key: str = "2"
    due_date: date | None = None
    create_credit_note: bool = True

    scenario_timeout_s: int = 300
    probe_timeout_ms: int = 2000
    settle_ms: int = 2000
    capture_attempts: int = 3
    capture_interval_ms: int = 3000

    trace_mode: str = "on-first-retry"
    video_mode: str = "retain-on-failure"
    screenshot_mode: str = "only-on-failure"
    retries: int = 0

    headless: bool = True
    browser_channel: str | None = None
    output_dir: Path = Path("data/runs")
    selector_overrides: Path | None = None
    validate_db: bool = False
    send_email: bool = True

    email: EmailSettings = EmailSettings()
    sql: SqlSettings = SqlSettings()

    @property
    def effective_due_date(self) -> date:
        return self.due_date or last_day_of_month()

    def with_overrides(self, **overrides) -> "Settings":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_settings(env_file: str | Path | None = None, **overrides) -> Settings:
    """Build Settings from the environment after loading env_file (or ./.env).

    Keyword overrides (from CLI flags) win over the environment; None means
    "not given". Missing credentials, or database validation without the SQL
    settings, raise ConfigError.
    """
    if env_file and not Path(env_file).exists():
        raise ConfigError(f"Env file not found: {env_file}")
    load_dotenv(env_file or None)

    base_url = overrides.pop("base_url", None) or os.environ.get("APP_BASE_URL", "").strip()
    username = os.environ.get("APP_USERNAME", "").strip()
    password = os.environ.get("APP_PASSWORD", "")
    missing = [name for name, value in (("APP_BASE_URL", base_url), ("APP_USERNAME", username), ("APP_PASSWORD", password)) if not value]
    if missing:
        raise ConfigError(f"Missing required settings: {', '.join(missing)}")

    record_all = _flag("RECORD_ALL", False)
    in_ci = bool(os.environ.get("CI"))

    recipients = os.environ.get("EMAIL_TO", "")
    email = EmailSettings(
        host=os.environ.get("EMAIL_HOST", "smtp.gmail.com"),
        port=_int("EMAIL_PORT", 587),
        user=os.environ.get("EMAIL_USER") or None,
        password=os.environ.get("EMAIL_PASS") or None,
        to=tuple(r.strip() for r in recipients.split(",") if r.strip()),
        sender=os.environ.get("EMAIL_FROM") or os.environ.get("EMAIL_USER") or None,
    )
    sql = SqlSettings(
        server=os.environ.get("SQL_SERVER") or None,
        user=os.environ.get("SQL_USER") or None,
        password=os.environ.get("SQL_PASSWORD") or None,
        database=os.environ.get("SQL_DATABASE") or None,
        encrypt=_flag("SQL_ENCRYPT", False),
        trust_server_certificate=_flag("SQL_TRUST_SERVER_CERTIFICATE", True),
        driver=os.environ.get("SQL_DRIVER") or SqlSettings.driver,
    )
    overrides_path = os.environ.get("SELECTOR_OVERRIDES")

    settings = Settings(
        base_url=base_url,
        username=username,
        password=password,
        invoice_prefix=os.environ.get("INVOICE_PREFIX", "ASH"),
        process=os.environ.get("FUND_REQUEST_PROCESS", "BUDGET NEW"),
        ship_code=os.environ.get("FUND_REQUEST_SHIP_CODE", "TURC"),
        period_key=os.environ.get("FUND_REQUEST_PERIOD_KEY", "2"),
        due_date=_due_date(),
        create_credit_note=_flag("CREATE_CREDIT_NOTE", True),
        scenario_timeout_s=_int("SCENARIO_TIMEOUT_S", 300),
        probe_timeout_ms=_int("PROBE_TIMEOUT_MS", 2000),
        settle_ms=_int("SETTLE_MS", 2000),
        capture_attempts=_int("CAPTURE_ATTEMPTS", 3),
        capture_interval_ms=_int("CAPTURE_INTERVAL_MS", 3000),
        trace_mode="on" if record_all else "on-first-retry",
        video_mode="on" if record_all or _flag("RECORD_VIDEO", False) else "retain-on-failure",
        screenshot_mode="on" if record_all or _flag("RECORD_SCREENSHOTS", False) else "only-on-failure",
        retries=_int("RETRIES", 2 if in_ci else 0),
        headless=_flag("HEADLESS", True),
        browser_channel=os.environ.get("BROWSER_CHANNEL") or None,
        output_dir=Path(os.environ.get("OUTPUT_DIR", "data/runs")),
        selector_overrides=Path(overrides_path) if overrides_path else None,
        email=email,
        sql=sql,
    )
    settings = settings.with_overrides(**overrides)
    if settings.validate_db and not settings.sql.configured:
        raise ConfigError("Database validation needs SQL_SERVER and SQL_DATABASE")
    logger.debug(f"Settings loaded for {settings.base_url} (retries={settings.retries}, timeout={settings.scenario_timeout_s}s)")
    return settings
