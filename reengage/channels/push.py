"""Push notifications to a user's registered devices."""

import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from reengage.db.models import DeviceToken, User
from reengage.db.repository import Repository
from reengage.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

# Receives (token, payload) and returns {"success": bool, "invalid_token": bool, ...}
PushTransport = Callable[[DeviceToken, dict[str, Any]], Awaitable[dict[str, Any]]]


async def log_transport(token: DeviceToken, payload: dict[str, Any]) -> dict[str, Any]:
    """Development transport: log the message instead of sending it."""
    logger.info(f"Would send push to {token.platform} device {token.id}: {payload['notification']}")
    return {"success": True, "message_id": f"test_{secrets.token_hex(8)}"}


class PushSender:
    """Fans a notification out to every active device token of a user."""

    def __init__(
        self,
        repo: Repository,
        transport: PushTransport | None = None,
        stale_after_days: int = 60,
    ):
        self.repo = repo
        self.transport = transport or log_transport
        self.stale_after_days = stale_after_days

    def active_since(self, now: datetime | None = None) -> datetime:
        """Tokens unused since before this instant are stale."""
        return (now or utc_now()) - timedelta(days=self.stale_after_days)

    async def has_active_device(self, user: User, now: datetime | None = None) -> bool:
        tokens = await self.repo.get_active_device_tokens(user.id, self.active_since(now))  # type: ignore
        return bool(tokens)

    async def send_to_user(
        self,
        user: User,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        link: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """Send a notification to all of a user's active devices.

        Returns:
            {"sent": n, "failed": n}; both zero when the user has no devices
        """
        tokens = await self.repo.get_active_device_tokens(user.id, self.active_since(now))  # type: ignore
        if not tokens:
            return {"sent": 0, "failed": 0}

        payload_data = dict(data or {})
        if link:
            payload_data["link"] = link

        sent = 0
        failed = 0
        invalid_token_ids = []

        for token in tokens:
            payload = {
                "notification": {"title": title, "body": body},
                "data": {key: str(value) for key, value in payload_data.items()},
            }

            try:
                result = await self.transport(token, payload)
            except Exception as e:
                logger.error(f"Push to device {token.id} failed: {e}")
                result = {"success": False, "error": str(e)}

            if result.get("success"):
                sent += 1
                await self.repo.touch_device_token(token.id, now)  # type: ignore
            else:
                failed += 1
                if result.get("invalid_token"):
                    invalid_token_ids.append(token.id)

        if invalid_token_ids:
            await self.repo.delete_device_tokens(invalid_token_ids)

        return {"sent": sent, "failed": failed}
