"""SMS delivery with phone validation and a per-user daily quota."""

import logging
import re
import secrets
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from reengage.db.models import User
from reengage.db.repository import Repository
from reengage.utils.constants import E164_PATTERN
from reengage.utils.time_utils import UTC, utc_now

logger = logging.getLogger(__name__)

E164_FORMAT = re.compile(E164_PATTERN)

# Receives (to, body) and returns {"success": bool, "message_sid": str} or an error
SmsTransport = Callable[[str, str], Awaitable[dict[str, Any]]]


class SmsError(Exception):
    """Base error for SMS delivery."""


class InvalidPhoneError(SmsError):
    """Phone number missing or not in E.164 format."""


class RateLimitError(SmsError):
    """Daily SMS quota exhausted for the user."""


def valid_phone_number(phone: str | None) -> bool:
    """Check if a phone number is in E.164 format (e.g. +14155551234)."""
    if not phone:
        return False
    return E164_FORMAT.match(phone) is not None


async def log_transport(to: str, body: str) -> dict[str, Any]:
    """Development transport: log the message instead of sending it."""
    logger.info(f"Would send SMS to {to}: {body}")
    return {"success": True, "message_sid": f"test_{secrets.token_hex(8)}"}


class SmsSender:
    """Sends SMS to users' verified phone numbers."""

    def __init__(
        self,
        repo: Repository,
        transport: SmsTransport | None = None,
        max_per_day: int = 5,
    ):
        self.repo = repo
        self.transport = transport or log_transport
        self.max_per_day = max_per_day

    async def sms_count_today(self, user: User, now: datetime | None = None) -> int:
        """Number of SMS sent to the user on the current UTC day."""
        now = now or utc_now()
        return await self.repo.count_sms_sent(user.id, now.astimezone(UTC).date())  # type: ignore

    async def remaining_quota(self, user: User, now: datetime | None = None) -> int:
        return max(self.max_per_day - await self.sms_count_today(user, now), 0)

    async def send_to_user(self, user: User, body: str, now: datetime | None = None) -> dict[str, Any]:
        """Send an SMS to a user's stored phone number.

        Returns:
            {"success": True, "message_sid": ...} or {"success": False, "error": ...}
        """
        if not user.has_verified_phone:
            return {"success": False, "error": "User has no verified phone number"}

        if not user.preferences.sms:
            return {"success": False, "error": "User has opted out of SMS"}

        now = now or utc_now()

        try:
            self._validate_phone_number(user.phone_number)
            await self._check_rate_limit(user, now)

            result = await self.transport(user.phone_number, body)  # type: ignore
        except SmsError as e:
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.error(f"Failed to send SMS to user {user.id}: {e}")
            return {"success": False, "error": str(e)}

        if result.get("success"):
            await self.repo.log_sms(user.id, user.phone_number, result["message_sid"], now)  # type: ignore

        return result

    def _validate_phone_number(self, phone: str | None) -> None:
        if not phone:
            raise InvalidPhoneError("Phone number is required")

        if not valid_phone_number(phone):
            raise InvalidPhoneError(
                "Invalid phone number format. Must be E.164 format (e.g., +14155551234)"
            )

    async def _check_rate_limit(self, user: User, now: datetime) -> None:
        if await self.sms_count_today(user, now) >= self.max_per_day:
            raise RateLimitError(
                f"SMS rate limit exceeded. Maximum {self.max_per_day} messages per day."
            )
