"""Outreach dispatch with a push -> email -> SMS channel cascade."""

import logging
from datetime import datetime
from typing import Iterable, List

from reengage.channels.mail import EmailSender
from reengage.channels.push import PushSender
from reengage.channels.sms import SmsSender
from reengage.db.models import (
    Family,
    OutreachCandidate,
    OutreachMessage,
    OutreachResult,
    OutreachSummary,
    Reason,
    ReasonKind,
    User,
)
from reengage.db.repository import Repository
from reengage.utils.constants import (
    DEFAULT_TIMEZONE,
    MESSAGE_TEMPLATES,
    TEMPLATE_INACTIVITY_TIERS,
    MessageTemplate,
)
from reengage.utils.time_utils import is_in_quiet_hours, local_now, utc_now

logger = logging.getLogger(__name__)


def get_template(reason: Reason) -> MessageTemplate:
    """Message template for a reason.

    Custom inactivity thresholds borrow the template of the largest built-in
    tier not above them, or the smallest tier for shorter absences.
    """
    if reason.kind is ReasonKind.INACTIVE:
        tier = TEMPLATE_INACTIVITY_TIERS[0]
        for days in TEMPLATE_INACTIVITY_TIERS:
            if reason.days >= days:  # type: ignore
                tier = days
        return MESSAGE_TEMPLATES[f"inactive_{tier}_days"]

    return MESSAGE_TEMPLATES[reason.code]


def build_message(user: User, reason: Reason, family: Family | None) -> OutreachMessage:
    """Render the title, personalized body and family-scoped deep link."""
    template = get_template(reason)
    link = f"/families/{family.id}{template.link}" if family else template.link
    return OutreachMessage(
        title=template.title,
        body=template.body.format(name=user.name),
        link=link,
    )


class OutreachService:
    """Sends re-engagement messages and records them in the history ledger."""

    def __init__(
        self,
        repo: Repository,
        push: PushSender,
        email: EmailSender,
        sms: SmsSender,
    ):
        self.repo = repo
        self.push = push
        self.email = email
        self.sms = sms

    async def send_outreach(
        self,
        user: User,
        reason: Reason | str,
        family: Family | None = None,
        now: datetime | None = None,
    ) -> OutreachResult:
        """Send one outreach message to a user.

        Skips (without touching any channel) when the reason is unknown, the
        family timezone can't be resolved, the same outreach already went out
        today, or the user is in quiet hours.
        """
        if now is None:
            now = utc_now()

        try:
            reason = Reason.parse(reason)
        except ValueError:
            return OutreachResult(success=False, skipped=True, reason="no_template")

        local_dt = local_now(family.timezone if family else DEFAULT_TIMEZONE, now)
        if local_dt is None:
            return OutreachResult(success=False, skipped=True, reason="invalid_timezone")
        today = local_dt.date()

        if await self.repo.outreach_sent_on(user.id, reason.code, today):  # type: ignore
            return OutreachResult(success=False, skipped=True, reason="already_sent_today")

        prefs = user.preferences
        try:
            quiet = is_in_quiet_hours(local_dt, prefs.quiet_hours_start, prefs.quiet_hours_end)
        except ValueError as e:
            logger.warning(f"Bad quiet hours for user {user.id}: {e}")
            quiet = True
        if quiet:
            return OutreachResult(success=False, skipped=True, reason="quiet_hours")

        channels = await self.available_channels(user, reason, now)
        if not channels:
            return OutreachResult(success=False, error="no_available_channel")

        message = build_message(user, reason, family)

        for channel in channels:
            if await self._deliver(channel, user, reason, message, family, now):
                recorded = await self.repo.record_outreach(
                    user.id, reason.code, channel, today, now  # type: ignore
                )
                if not recorded:
                    logger.warning(
                        f"Outreach {reason.code} for user {user.id} was recorded by a concurrent run"
                    )
                    return OutreachResult(success=False, skipped=True, reason="already_sent_today")
                logger.info(f"Sent {reason.code} outreach to user {user.id} via {channel}")
                return OutreachResult(success=True, channel=channel)

        return OutreachResult(success=False, error="delivery_failed")

    async def send_to_candidates(
        self, candidates: Iterable[OutreachCandidate], now: datetime | None = None
    ) -> OutreachSummary:
        """Send outreach to candidates in the given (priority) order."""
        summary = OutreachSummary()

        for candidate in candidates:
            user = candidate.user
            try:
                result = await self.send_outreach(user, candidate.reason, candidate.family, now)
            except Exception as e:
                logger.error(f"Outreach failed for user {user.id} ({candidate.reason}): {e}")
                result = OutreachResult(success=False, error="exception")

            if result.success:
                summary.sent += 1
            elif result.skipped:
                summary.skipped += 1
            else:
                summary.failed += 1

            summary.details.append(self._detail(candidate, result))

        return summary

    @staticmethod
    def _detail(candidate: OutreachCandidate, result: OutreachResult) -> dict:
        """Per-candidate batch record; the skip reason is kept apart from the outreach reason."""
        detail = {
            "user_id": candidate.user.id,
            "reason": str(candidate.reason),
            "success": result.success,
        }
        if result.channel:
            detail["channel"] = result.channel
        if result.skipped:
            detail["skipped"] = True
            detail["skip_reason"] = result.reason
        if result.error:
            detail["error"] = result.error
        return detail

    async def available_channels(
        self, user: User, reason: Reason, now: datetime | None = None
    ) -> List[str]:
        """Channels to try, in fallback order.

        SMS is reserved for high-priority reasons (7+ days inactive).
        """
        prefs = user.preferences
        channels = []

        if prefs.push and await self.push.has_active_device(user, now):
            channels.append("push")

        if prefs.email and user.email:
            channels.append("email")

        if reason.is_high_priority and prefs.sms and user.has_verified_phone:
            channels.append("sms")

        return channels

    async def _deliver(
        self,
        channel: str,
        user: User,
        reason: Reason,
        message: OutreachMessage,
        family: Family | None,
        now: datetime,
    ) -> bool:
        """Attempt one channel; failures are logged and reported as False."""
        try:
            if channel == "push":
                result = await self.push.send_to_user(
                    user,
                    title=message.title,
                    body=message.body,
                    data={"outreach_type": reason.code},
                    link=message.link,
                    now=now,
                )
                if result["sent"] == 0:
                    logger.error(f"Push failed for user {user.id}: no device accepted the message")
                    return False
                return True

            if channel == "email":
                await self.email.enqueue(reason.code, user, family, message)
                return True

            if channel == "sms":
                result = await self.sms.send_to_user(user, f"{message.title}: {message.body}", now)
                if not result.get("success"):
                    logger.error(f"SMS failed for user {user.id}: {result.get('error')}")
                    return False
                return True

        except Exception as e:
            logger.error(f"{channel.capitalize()} failed for user {user.id}: {e}")
            return False

        raise ValueError(f"Unknown channel: {channel}")
