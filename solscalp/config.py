"""SolScalp — application configuration.

Loads .env variables into a typed config object.
Validates required variables on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


_REQUIRED_VARS = [
    "JUPITER_API_KEY",
    "WALLET_ENCRYPTION_KEY",
]


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    jupiter_api_key: str
    wallet_encryption_key: str
    birdeye_api_key: str
    cron_secret: str
    db_path: str
    log_level: str
    health_port: int
    monitor_interval_seconds: int
    plan_delay_ms: int
    monitor_concurrency: int
    candle_interval: str  # Birdeye interval, e.g. "15m"
    candle_lookback_hours: int
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "SolScalp <alerts@localhost>"

    @property
    def email_enabled(self) -> bool:
        """Return ``True`` when an SMTP host has been configured."""
        return bool(self.smtp_host)

    @property
    def plan_delay_seconds(self) -> float:
        """Inter-plan spacing of the shared rate limiter, in seconds."""
        return self.plan_delay_ms / 1000.0


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    return Config(
        jupiter_api_key=os.environ["JUPITER_API_KEY"],
        wallet_encryption_key=os.environ["WALLET_ENCRYPTION_KEY"],
        birdeye_api_key=os.environ.get("BIRDEYE_API_KEY", ""),
        cron_secret=os.environ.get("CRON_SECRET", ""),
        db_path=os.environ.get("DB_PATH", "data/solscalp.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
        monitor_interval_seconds=int(os.environ.get("MONITOR_INTERVAL_SECONDS", "60")),
        plan_delay_ms=int(os.environ.get("PLAN_DELAY_MS", "500")),
        monitor_concurrency=int(os.environ.get("MONITOR_CONCURRENCY", "1")),
        candle_interval=os.environ.get("CANDLE_INTERVAL", "15m"),
        candle_lookback_hours=int(os.environ.get("CANDLE_LOOKBACK_HOURS", "24")),
        smtp_host=os.environ.get("SMTP_HOST", ""),
        smtp_port=int(os.environ.get("SMTP_PORT", "587")),
        smtp_username=os.environ.get("SMTP_USERNAME", ""),
        smtp_password=os.environ.get("SMTP_PASSWORD", ""),
        email_from=os.environ.get("EMAIL_FROM", "SolScalp <alerts@localhost>"),
    )
