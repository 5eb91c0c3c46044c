"""Configuration management from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

# Load .env file if it exists
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # python-dotenv not installed, use system env vars

from reengage.utils.constants import DEFAULT_INACTIVITY_THRESHOLDS


def parse_thresholds(raw: str | None) -> list[int]:
    """Parse a comma-separated threshold list.

    Non-numeric and non-positive entries are dropped. Falls back to the
    default thresholds when nothing valid remains.

    Examples:
        "5, 10, 20" -> [5, 10, 20]
        "5, invalid, -1, 10" -> [5, 10]
        "" -> [3, 7, 14, 30]
    """
    if not raw or not raw.strip():
        return list(DEFAULT_INACTIVITY_THRESHOLDS)

    thresholds = []
    for part in raw.split(","):
        try:
            value = int(part.strip())
        except ValueError:
            continue
        if value > 0:
            thresholds.append(value)

    return thresholds or list(DEFAULT_INACTIVITY_THRESHOLDS)


def parse_bool(raw: str | None, default: bool = True) -> bool:
    """Parse a boolean flag such as "true", "1", "no"."""
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ReengagementSettings:
    """Settings injected into detectors, senders and jobs."""

    jobs_enabled: bool = True
    inactivity_thresholds: tuple[int, ...] = DEFAULT_INACTIVITY_THRESHOLDS
    sms_max_per_day: int = 5
    device_token_stale_days: int = 60
    user_batch_size: int = 500


class Config:
    """Application configuration loaded from environment variables."""

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/reengage.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Re-engagement
    REENGAGEMENT_JOBS_ENABLED: bool = parse_bool(os.getenv("REENGAGEMENT_JOBS_ENABLED"), True)
    INACTIVITY_THRESHOLDS: list[int] = parse_thresholds(os.getenv("INACTIVITY_THRESHOLDS"))

    # Channels
    SMS_MAX_PER_DAY: int = int(os.getenv("SMS_MAX_PER_DAY", "5"))
    DEVICE_TOKEN_STALE_DAYS: int = int(os.getenv("DEVICE_TOKEN_STALE_DAYS", "60"))

    # Scanning
    USER_BATCH_SIZE: int = int(os.getenv("USER_BATCH_SIZE", "500"))

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if cls.SMS_MAX_PER_DAY < 0:
            raise ValueError("SMS_MAX_PER_DAY must not be negative")

        if cls.DEVICE_TOKEN_STALE_DAYS <= 0:
            raise ValueError("DEVICE_TOKEN_STALE_DAYS must be positive")

        if cls.USER_BATCH_SIZE <= 0:
            raise ValueError("USER_BATCH_SIZE must be positive")

        # Ensure database directory exists
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def settings(cls) -> ReengagementSettings:
        """Snapshot the re-engagement settings."""
        return ReengagementSettings(
            jobs_enabled=cls.REENGAGEMENT_JOBS_ENABLED,
            inactivity_thresholds=tuple(cls.INACTIVITY_THRESHOLDS),
            sms_max_per_day=cls.SMS_MAX_PER_DAY,
            device_token_stale_days=cls.DEVICE_TOKEN_STALE_DAYS,
            user_batch_size=cls.USER_BATCH_SIZE,
        )
