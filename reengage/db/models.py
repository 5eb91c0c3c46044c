"""Data models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from reengage.utils.constants import (
    DEFAULT_EVENING_REFLECTION_TIME,
    DEFAULT_MORNING_PLANNING_TIME,
    DEFAULT_QUIET_END,
    DEFAULT_QUIET_START,
    DEFAULT_TIMEZONE,
    SMS_MIN_INACTIVE_DAYS,
)


Channel = Literal["push", "email", "sms"]


@dataclass
class Family:
    """A family workspace; its timezone drives all deadline math."""

    name: str
    timezone: str = DEFAULT_TIMEZONE
    id: int | None = None


@dataclass(frozen=True)
class NotificationPreference:
    """Per-user channel and ritual settings."""

    push: bool = True
    email: bool = True
    sms: bool = False
    in_app: bool = True
    morning_planning: bool = True
    evening_reflection: bool = True
    reengagement_enabled: bool = True
    morning_planning_time: str = DEFAULT_MORNING_PLANNING_TIME  # HH:MM format
    evening_reflection_time: str = DEFAULT_EVENING_REFLECTION_TIME  # HH:MM format
    quiet_hours_start: str = DEFAULT_QUIET_START  # HH:MM format
    quiet_hours_end: str = DEFAULT_QUIET_END  # HH:MM format


# Used whenever a user has no preference record
DEFAULT_PREFERENCES = NotificationPreference()


@dataclass
class User:
    """An app user with their preference record and family memberships."""

    name: str
    email: str | None = None
    phone_number: str | None = None
    phone_verified: bool = False
    last_active_at: datetime | None = None  # UTC
    created_at: datetime | None = None
    preference: NotificationPreference | None = None
    families: list[Family] = field(default_factory=list)
    id: int | None = None

    @property
    def preferences(self) -> NotificationPreference:
        """Effective preferences, falling back to the defaults."""
        return self.preference or DEFAULT_PREFERENCES

    @property
    def has_verified_phone(self) -> bool:
        return bool(self.phone_number) and self.phone_verified


@dataclass
class DeviceToken:
    """A push notification token registered by a device."""

    user_id: int
    token: str
    platform: str = "android"
    last_used_at: datetime | None = None  # UTC
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class Reflection:
    """A reflection attached to a daily plan."""

    daily_plan_id: int
    reflection_type: str
    response_count: int = 0
    id: int | None = None

    @property
    def completed(self) -> bool:
        return self.response_count > 0


@dataclass
class DailyPlan:
    """A user's plan for one day in one family."""

    user_id: int
    family_id: int
    date: date
    intention: str | None = None
    task_count: int = 0
    evening_reflection: Reflection | None = None
    id: int | None = None

    @property
    def is_empty(self) -> bool:
        """No tasks and no intention counts the same as no plan."""
        return self.task_count == 0 and not (self.intention or "").strip()


class ReasonKind(str, Enum):
    """Why a user is being contacted."""

    MISSED_CHECKIN = "missed_checkin"
    MISSED_REFLECTION = "missed_reflection"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class Reason:
    """An outreach reason; inactivity reasons carry their threshold in days."""

    kind: ReasonKind
    days: int | None = None

    def __post_init__(self) -> None:
        if self.kind is ReasonKind.INACTIVE:
            if not isinstance(self.days, int) or self.days <= 0:
                raise ValueError(f"Inactivity reason needs a positive day count, got {self.days!r}")
        elif self.days is not None:
            raise ValueError(f"{self.kind.value} does not take a day count")

    @property
    def code(self) -> str:
        """String code, e.g. "missed_checkin" or "inactive_7_days"."""
        if self.kind is ReasonKind.INACTIVE:
            return f"inactive_{self.days}_days"
        return self.kind.value

    @property
    def is_high_priority(self) -> bool:
        """High-priority reasons may be delivered by SMS."""
        return self.kind is ReasonKind.INACTIVE and self.days >= SMS_MIN_INACTIVE_DAYS  # type: ignore

    @classmethod
    def parse(cls, value: "Reason | str") -> "Reason":
        """Parse a reason code.

        Raises:
            ValueError: If the code is not a known reason
        """
        if isinstance(value, Reason):
            return value

        code = str(value).strip()
        if code == ReasonKind.MISSED_CHECKIN.value:
            return MISSED_CHECKIN
        if code == ReasonKind.MISSED_REFLECTION.value:
            return MISSED_REFLECTION

        prefix, suffix = "inactive_", "_days"
        if code.startswith(prefix) and code.endswith(suffix):
            days = code[len(prefix):-len(suffix)]
            if days.isdigit() and int(days) > 0:
                return inactive(int(days))

        raise ValueError(f"Unknown outreach reason: {code!r}")

    def __str__(self) -> str:
        return self.code


MISSED_CHECKIN = Reason(ReasonKind.MISSED_CHECKIN)
MISSED_REFLECTION = Reason(ReasonKind.MISSED_REFLECTION)


def inactive(days: int) -> Reason:
    """Inactivity reason for a threshold in days."""
    return Reason(ReasonKind.INACTIVE, days)


@dataclass(frozen=True)
class OutreachCandidate:
    """One user eligible for one outreach message in the current run."""

    user: User
    reason: Reason
    priority: int  # 1 = most urgent
    family: Family | None = None


@dataclass
class OutreachHistory:
    """Audit trail of sent outreach; one row per user, type and local day."""

    user_id: int
    outreach_type: str
    channel: str
    sent_on: date  # Local day in the family timezone
    sent_at: datetime | None = None  # UTC
    id: int | None = None


@dataclass
class OutreachMessage:
    """Rendered outreach content."""

    title: str
    body: str
    link: str


@dataclass
class OutreachResult:
    """Outcome of a single send_outreach call."""

    success: bool
    channel: str | None = None
    skipped: bool = False
    reason: str | None = None  # Skip reason
    error: str | None = None  # Failure code

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.channel:
            result["channel"] = self.channel
        if self.skipped:
            result["skipped"] = True
            result["reason"] = self.reason
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class OutreachSummary:
    """Tally of a batch run."""

    sent: int = 0
    skipped: int = 0
    failed: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "details": list(self.details),
        }
