"""Scheduled re-engagement jobs, each run once per cron tick."""

import logging
from collections.abc import Iterable
from datetime import datetime

from reengage.config import ReengagementSettings
from reengage.db.models import OutreachSummary
from reengage.engine.detection import ReengagementDetector
from reengage.engine.outreach import OutreachService

logger = logging.getLogger(__name__)


class ReengagementJobs:
    """Detection jobs that hand their candidates to the outreach service.

    Every job returns None when disabled or when nothing was detected,
    otherwise the batch summary.
    """

    def __init__(
        self,
        detector: ReengagementDetector,
        outreach: OutreachService,
        settings: ReengagementSettings,
    ):
        self.detector = detector
        self.outreach = outreach
        self.settings = settings

    async def missed_check_ins(self, now: datetime | None = None) -> OutreachSummary | None:
        """Nudge users who skipped their morning planning."""
        if not self._enabled("DetectMissedCheckIns"):
            return None

        logger.info("DetectMissedCheckIns: Starting missed check-in detection")
        candidates = await self.detector.detect_missed_checkins(now)
        return await self._send("DetectMissedCheckIns", "users with missed check-ins", candidates, now)

    async def missed_reflections(self, now: datetime | None = None) -> OutreachSummary | None:
        """Nudge users who planned but didn't reflect."""
        if not self._enabled("DetectMissedReflections"):
            return None

        logger.info("DetectMissedReflections: Starting missed reflection detection")
        candidates = await self.detector.detect_missed_reflections(now)
        return await self._send(
            "DetectMissedReflections", "users with missed reflections", candidates, now
        )

    async def inactive_users(
        self, thresholds: Iterable[int] | None = None, now: datetime | None = None
    ) -> OutreachSummary | None:
        """Win back users who stopped using the app."""
        if not self._enabled("DetectInactiveUsers"):
            return None

        if thresholds is None:
            thresholds = self.settings.inactivity_thresholds
        thresholds = list(thresholds)

        logger.info(
            f"DetectInactiveUsers: Starting inactive user detection with thresholds {thresholds}"
        )
        candidates = await self.detector.detect_inactive_users(thresholds, now)
        return await self._send("DetectInactiveUsers", "inactive users", candidates, now)

    async def all(self, now: datetime | None = None) -> OutreachSummary | None:
        """Run every detector and serve the most urgent users first."""
        if not self._enabled("Reengagement"):
            return None

        logger.info("Reengagement: Starting full re-engagement detection")
        candidates = await self.detector.detect_users_for_outreach(now)
        return await self._send("Reengagement", "outreach candidates", candidates, now)

    def _enabled(self, job_name: str) -> bool:
        if not self.settings.jobs_enabled:
            logger.info(f"{job_name}: Skipping - re-engagement jobs are disabled")
            return False
        return True

    async def _send(self, job_name, description, candidates, now) -> OutreachSummary | None:
        logger.info(f"{job_name}: Found {len(candidates)} {description}")
        if not candidates:
            return None

        summary = await self.outreach.send_to_candidates(candidates, now)
        logger.info(
            f"{job_name}: Completed - sent: {summary.sent}, "
            f"skipped: {summary.skipped}, failed: {summary.failed}"
        )
        return summary
