"""Detection of users who need a re-engagement nudge."""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import List

from reengage.config import ReengagementSettings
from reengage.db.models import (
    MISSED_CHECKIN,
    MISSED_REFLECTION,
    DailyPlan,
    Family,
    OutreachCandidate,
    User,
    inactive,
)
from reengage.db.repository import Repository
from reengage.utils.constants import (
    INACTIVITY_PRIORITIES,
    MISSED_CHECKIN_DEADLINE_HOUR,
    MISSED_CHECKIN_PRIORITY,
    MISSED_REFLECTION_DEADLINE_HOUR,
    MISSED_REFLECTION_PRIORITY,
    SHORT_INACTIVITY_PRIORITY,
)
from reengage.utils.time_utils import is_in_quiet_hours, local_now, utc_now, whole_days_between

logger = logging.getLogger(__name__)


def validate_thresholds(thresholds: Iterable[int]) -> List[int]:
    """Validate caller-supplied inactivity thresholds.

    Raises:
        ValueError: If the list is empty or holds anything but positive integers
    """
    values = list(thresholds)
    if not values:
        raise ValueError("At least one inactivity threshold is required")

    for value in values:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"Inactivity thresholds must be positive integers, got {value!r}")

    return values


def inactivity_priority(threshold: int) -> int:
    """Fixed candidate priority for an inactivity threshold.

    Built-in tiers keep 30->3, 14->4, 7->5, 3->6 whatever else is configured.
    A custom threshold shares the priority of the largest tier not above it
    (the tier whose template it uses), e.g. 10->5, 60->3.
    """
    priority = SHORT_INACTIVITY_PRIORITY
    for days in sorted(INACTIVITY_PRIORITIES):
        if threshold >= days:
            priority = INACTIVITY_PRIORITIES[days]
    return priority


def select_inactivity_threshold(days_inactive: int, thresholds: Iterable[int]) -> int | None:
    """Pick the largest threshold the user's inactivity meets.

    Example: 10 days with [3, 7, 14] -> 7
    """
    for threshold in sorted(set(thresholds), reverse=True):
        if days_inactive >= threshold:
            return threshold
    return None


def due_local_day(
    user: User, family: Family, deadline_hour: int, now: datetime | None = None
) -> date | None:
    """Local day to check a ritual for, if its deadline has passed.

    Returns None when the family's local time is before the deadline, inside
    the user's quiet hours, or can't be resolved.

    Raises:
        ValueError: If the user's quiet hours are malformed
    """
    local_dt = local_now(family.timezone, now)
    if local_dt is None:
        return None

    # Only check after the deadline hour
    if local_dt.hour < deadline_hour:
        return None

    prefs = user.preferences
    if is_in_quiet_hours(local_dt, prefs.quiet_hours_start, prefs.quiet_hours_end):
        return None

    return local_dt.date()


def checkin_missed(plan: DailyPlan | None) -> bool:
    """No plan, or a plan with no tasks and no intention."""
    return plan is None or plan.is_empty


def reflection_missed(plan: DailyPlan | None) -> bool:
    """A plan exists but its evening reflection is missing or has no answers."""
    if plan is None:
        # No plan means no reflection expected
        return False

    reflection = plan.evening_reflection
    return reflection is None or not reflection.completed


class ReengagementDetector:
    """Scans users and produces prioritized outreach candidates."""

    def __init__(self, repo: Repository, settings: ReengagementSettings | None = None):
        self.repo = repo
        self.settings = settings or ReengagementSettings()

    async def detect_users_for_outreach(self, now: datetime | None = None) -> List[OutreachCandidate]:
        """Run every detector and order the results by priority.

        A user may appear once per reason; the dispatcher's history check
        handles deduplication.
        """
        if now is None:
            now = utc_now()

        candidates: List[OutreachCandidate] = []
        candidates.extend(await self.detect_missed_checkins(now))
        candidates.extend(await self.detect_missed_reflections(now))
        candidates.extend(await self.detect_inactive_users(now=now))

        # sorted() is stable, so ties keep detector order
        return sorted(candidates, key=lambda candidate: candidate.priority)

    async def detect_missed_checkins(self, now: datetime | None = None) -> List[OutreachCandidate]:
        """Users with morning planning on and no daily plan by noon."""
        if now is None:
            now = utc_now()

        candidates = []
        async for user in self.repo.iter_users(self.settings.user_batch_size):
            prefs = user.preferences
            if not (prefs.morning_planning and prefs.reengagement_enabled):
                continue

            family = await self._first_family_matching(
                user, MISSED_CHECKIN_DEADLINE_HOUR, checkin_missed, now
            )
            if family:
                candidates.append(
                    OutreachCandidate(
                        user=user,
                        reason=MISSED_CHECKIN,
                        priority=MISSED_CHECKIN_PRIORITY,
                        family=family,
                    )
                )

        logger.debug(f"Missed check-in candidates: {len(candidates)}")
        return candidates

    async def detect_missed_reflections(self, now: datetime | None = None) -> List[OutreachCandidate]:
        """Users who planned today but haven't reflected by 10pm."""
        if now is None:
            now = utc_now()

        candidates = []
        async for user in self.repo.iter_users(self.settings.user_batch_size):
            prefs = user.preferences
            if not (prefs.evening_reflection and prefs.reengagement_enabled):
                continue

            family = await self._first_family_matching(
                user, MISSED_REFLECTION_DEADLINE_HOUR, reflection_missed, now
            )
            if family:
                candidates.append(
                    OutreachCandidate(
                        user=user,
                        reason=MISSED_REFLECTION,
                        priority=MISSED_REFLECTION_PRIORITY,
                        family=family,
                    )
                )

        logger.debug(f"Missed reflection candidates: {len(candidates)}")
        return candidates

    async def detect_inactive_users(
        self, thresholds: Iterable[int] | None = None, now: datetime | None = None
    ) -> List[OutreachCandidate]:
        """Users with no activity for at least one of the thresholds (days).

        Users who have never been active are skipped.

        Raises:
            ValueError: If explicit thresholds are malformed
        """
        if now is None:
            now = utc_now()

        if thresholds is None:
            thresholds = list(self.settings.inactivity_thresholds)
        else:
            thresholds = validate_thresholds(thresholds)

        candidates = []
        async for user in self.repo.iter_users(self.settings.user_batch_size):
            if not user.preferences.reengagement_enabled:
                continue
            if user.last_active_at is None:
                continue

            days_inactive = whole_days_between(user.last_active_at, now)
            threshold = select_inactivity_threshold(days_inactive, thresholds)
            if threshold is None:
                continue

            candidates.append(
                OutreachCandidate(
                    user=user,
                    reason=inactive(threshold),
                    priority=inactivity_priority(threshold),
                    family=user.families[0] if user.families else None,
                )
            )

        logger.debug(f"Inactive user candidates: {len(candidates)}")
        return candidates

    async def _first_family_matching(self, user, deadline_hour, missed, now) -> Family | None:
        """First family where the ritual deadline passed and the ritual was missed."""
        for family in user.families:
            try:
                day = due_local_day(user, family, deadline_hour, now)
            except ValueError as e:
                logger.warning(f"Skipping user {user.id}: bad quiet hours ({e})")
                return None

            if day is None:
                continue

            plan = await self.repo.get_daily_plan(user.id, family.id, day)
            if missed(plan):
                return family

        return None
