"""Main entry point: run one re-engagement job per invocation (cron-driven)."""

import asyncio
import logging
import os
import sys
from collections.abc import Awaitable, Callable

from reengage.channels.mail import EmailSender
from reengage.channels.push import PushSender
from reengage.channels.sms import SmsSender
from reengage.config import Config
from reengage.db.migrations import run_migrations
from reengage.db.repository import Repository
from reengage.engine.detection import ReengagementDetector
from reengage.engine.jobs import ReengagementJobs
from reengage.engine.outreach import OutreachService

logger = logging.getLogger(__name__)

JOB_REGISTRY: dict[str, Callable[[ReengagementJobs], Awaitable[object]]] = {
    "missed_check_ins": lambda jobs: jobs.missed_check_ins(),
    "missed_reflections": lambda jobs: jobs.missed_reflections(),
    "inactive_users": lambda jobs: jobs.inactive_users(),
    "reengagement": lambda jobs: jobs.all(),
}


def build_jobs(repo: Repository) -> ReengagementJobs:
    """Wire the detector, channel senders and outreach service together."""
    settings = Config.settings()

    outreach = OutreachService(
        repo,
        push=PushSender(repo, stale_after_days=settings.device_token_stale_days),
        email=EmailSender(repo),
        sms=SmsSender(repo, max_per_day=settings.sms_max_per_day),
    )
    return ReengagementJobs(ReengagementDetector(repo, settings), outreach, settings)


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or the WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "reengagement").strip().lower()


async def run_job(job_name: str) -> None:
    """Run a single job against the configured database."""
    name = job_name.strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown job '{name}'. Available jobs: {', '.join(sorted(JOB_REGISTRY))}"
        )

    await run_migrations(Config.DATABASE_PATH)

    repo = Repository(Config.DATABASE_PATH)
    await repo.connect()
    try:
        logger.info(f"Running job {name}")
        await JOB_REGISTRY[name](build_jobs(repo))
    finally:
        await repo.close()


def main() -> None:
    """Run the job named on the command line."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        stream=sys.stdout,
    )

    # Validate configuration
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    try:
        asyncio.run(run_job(_resolve_job_name()))
    except ValueError as e:
        logger.error(str(e))
        sys.exit(2)


if __name__ == "__main__":
    main()
