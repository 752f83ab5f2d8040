"""Configuration constants, selectors and run settings for the Edyna portal scraper."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.engine import URL

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent

# ---------------------------------------------------------------------------
# Portal selectors (ASP.NET generated ids, unstable between releases)
# ---------------------------------------------------------------------------

LOGIN_USER_SEL = "#body_body_cLogin_txtUser"
LOGIN_PASSWORD_SEL = "#body_body_cLogin_txtPassword"
LOGIN_BUTTON_SEL = "#body_body_cLogin_btnLogin"
LOGIN_PANEL_SEL = "#body_body_cLogin_pnlLogin"
LOGIN_ENDPOINT_MARKER = "Login.tws"

MENU_CONSUMERS_SEL = "#body_ctl00_mMenu1_FirstLevelMenuRepeater_lnkLevelMenu_0"
CONSUMER_TABS_SEL = "#body_ctl00_ctl00_tcListUtenze"
CONSUMER_TABLE_SEL = "#body_ctl00_ctl00_tcListUtenze_TList_cUFListUtenze_gvUtenze"
CURVE_BUTTON_SEL = "#body_ctl00_ctl00_tcListUtenze_TList_cUFListUtenze_gvUtenze_btnCurve_0"

ACTIVE_ENERGY_GRID_SEL = "#body_ctl00_ctl00_tcListUtenze_TCurve_cCurve_gvCurveAttiva"
MONTH_LINK_ID_PREFIX = "body_ctl00_ctl00_tcListUtenze_TCurve_cCurve_gvCurveAttiva_btnCurve"
MONTH_LINK_SEL = f"{ACTIVE_ENERGY_GRID_SEL} tr:nth-child(2) a[id^='{MONTH_LINK_ID_PREFIX}']"

HOURLY_TABLE_ID_HINTS = ("gvDettaglio", "Consumi", "Giornalier")
HOURLY_MIN_COLUMNS = 24
PAGE_BODY_SEL = "body"

# ---------------------------------------------------------------------------
# Timeouts and delays (milliseconds)
# ---------------------------------------------------------------------------

LOGIN_FIELD_TIMEOUT_MS = 5_000
LOGIN_NAVIGATION_TIMEOUT_MS = 20_000
TYPE_DELAY_MS = 35

MENU_TIMEOUT_MS = 25_000
LISTING_IDLE_TIMEOUT_MS = 30_000
LANDMARK_POLL_ATTEMPTS = 5
LANDMARK_POLL_INTERVAL_MS = 2_000

CURVE_BUTTON_TIMEOUT_MS = 90_000
CURVE_IDLE_TIMEOUT_MS = 90_000
GRID_TIMEOUT_MS = 90_000

DAILY_IDLE_TIMEOUT_MS = 30_000
DAILY_SETTLE_DELAY_MS = 2_000

# ---------------------------------------------------------------------------
# Playwright defaults
# ---------------------------------------------------------------------------

PLAYWRIGHT_HEADLESS = True
PLAYWRIGHT_VIEWPORT = {"width": 1400, "height": 900}
PLAYWRIGHT_LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
)
PLAYWRIGHT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Safari/537.36"
)
PLAYWRIGHT_LOCALE = "it-IT"
SITE_TIMEZONE = "Europe/Rome"

# ---------------------------------------------------------------------------
# Output and storage
# ---------------------------------------------------------------------------

DEFAULT_DAILY_OUTPUT_FILE = "daily_usage.json"
SCREENSHOT_LOGIN_FAILURE = "login_failure.png"
SCREENSHOT_FLOW_FAILURE = "error_flow.png"
SCREENSHOT_DAILY_FAILURE = "error_daily.png"

READINGS_TABLE = "daily_hourly_consumption"
READINGS_TIMESTAMP_INDEX = "idx_daily_hourly_timestamp"
KWH_UPDATE_EPSILON = 0.001

DEFAULT_CRON_SCHEDULE = "0 12 * * *"


class ConfigurationError(ValueError):
    """Raised when a required setting is missing or malformed."""


@dataclass(slots=True, frozen=True)
class PortalCredentials:
    login_url: str
    username: str
    password: str = field(repr=False)


@dataclass(slots=True, frozen=True)
class DatabaseSettings:
    """Connection parameters for the PostgreSQL/TimescaleDB sink."""

    host: str = "localhost"
    port: int = 5432
    name: str = "edyna"
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    ssl: bool = False

    def url(self) -> URL:
        if not self.user or not self.password:
            raise ConfigurationError(
                "DB_USER and DB_PASSWORD environment variables are required for database mode"
            )
        return URL.create(
            "postgresql+psycopg",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.name,
            query={"sslmode": "require"} if self.ssl else {},
        )


@dataclass(slots=True, frozen=True)
class RunSettings:
    credentials: Optional[PortalCredentials]
    database: DatabaseSettings
    headless: bool = PLAYWRIGHT_HEADLESS
    debug_shots: bool = False
    output_file: Path = Path(DEFAULT_DAILY_OUTPUT_FILE)
    cron_schedule: str = DEFAULT_CRON_SCHEDULE
    run_on_start: bool = False
    timezone: str = SITE_TIMEZONE
    listing_settle_delay_ms: int = 0


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() == "true"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def load_credentials() -> PortalCredentials:
    """Read the portal login settings, failing on the first missing variable."""
    values = {}
    for name in ("LOGIN_URL", "USERNAME", "PASSWORD"):
        value = os.getenv(name)
        if not value:
            raise ConfigurationError(f"Missing required env variable: {name}")
        values[name] = value
    return PortalCredentials(
        login_url=values["LOGIN_URL"],
        username=values["USERNAME"],
        password=values["PASSWORD"],
    )


def load_settings(
    env_file: Optional[Path] = None,
    *,
    require_credentials: bool = True,
) -> RunSettings:
    """Resolve run settings from the environment (and an optional .env file)."""
    load_dotenv(env_file, override=False)

    credentials = load_credentials() if require_credentials else None
    database = DatabaseSettings(
        host=os.getenv("DB_HOST") or "localhost",
        port=_env_int("DB_PORT", 5432),
        name=os.getenv("DB_NAME") or "edyna",
        user=os.getenv("DB_USER") or None,
        password=os.getenv("DB_PASSWORD") or None,
        ssl=_env_flag("DB_SSL", False),
    )
    return RunSettings(
        credentials=credentials,
        database=database,
        headless=_env_flag("HEADLESS", PLAYWRIGHT_HEADLESS),
        debug_shots=_env_flag("DEBUG_SHOTS", False),
        output_file=Path(os.getenv("DAILY_OUTPUT_FILE") or DEFAULT_DAILY_OUTPUT_FILE),
        cron_schedule=os.getenv("CRON_SCHEDULE") or DEFAULT_CRON_SCHEDULE,
        run_on_start=_env_flag("RUN_ON_START", False),
        timezone=os.getenv("TZ") or SITE_TIMEZONE,
        listing_settle_delay_ms=_env_int("LISTING_SETTLE_DELAY_MS", 0),
    )
