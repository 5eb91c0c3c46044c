"""Tests for the scheduled re-engagement jobs and the worker entry point."""

import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from reengage import main
from reengage.config import ReengagementSettings
from reengage.engine.detection import ReengagementDetector
from reengage.engine.jobs import ReengagementJobs

UTC = ZoneInfo("UTC")
NOW = datetime(2026, 1, 15, 13, 0, tzinfo=UTC)


@pytest.fixture
def make_jobs(repo, outreach):
    def _make(**settings):
        settings = ReengagementSettings(**settings)
        return ReengagementJobs(ReengagementDetector(repo, settings), outreach, settings)

    return _make


@pytest.mark.asyncio
async def test_inactive_users_job_sends_outreach(repo, make_jobs, make_member, caplog):
    user, _ = await make_member(last_active_at=NOW - timedelta(days=8))
    caplog.set_level(logging.INFO, logger="reengage.engine.jobs")

    summary = await make_jobs().inactive_users(now=NOW)

    assert summary.sent == 1
    assert summary.details[0]["reason"] == "inactive_7_days"
    assert "Starting inactive user detection with thresholds [3, 7, 14, 30]" in caplog.text
    assert "Found 1 inactive users" in caplog.text
    assert "Completed - sent: 1" in caplog.text


@pytest.mark.asyncio
async def test_inactive_users_job_thresholds(repo, make_jobs, make_member):
    await make_member(last_active_at=NOW - timedelta(days=6))

    from_settings = await make_jobs(inactivity_thresholds=(5, 10, 20)).inactive_users(now=NOW)
    explicit = await make_jobs().inactive_users([6], NOW)

    assert from_settings.details[0]["reason"] == "inactive_5_days"
    assert explicit.details[0]["reason"] == "inactive_6_days"


@pytest.mark.asyncio
async def test_job_with_no_candidates_sends_nothing(repo, make_jobs, make_member, monkeypatch):
    await make_member(last_active_at=NOW - timedelta(days=1))
    jobs = make_jobs()

    async def unexpected(*args, **kwargs):
        raise AssertionError("send_to_candidates should not run")

    monkeypatch.setattr(jobs.outreach, "send_to_candidates", unexpected)

    assert await jobs.inactive_users(now=NOW) is None


@pytest.mark.asyncio
async def test_disabled_jobs_do_nothing(repo, make_jobs, make_member, monkeypatch):
    await make_member(last_active_at=NOW - timedelta(days=30))
    jobs = make_jobs(jobs_enabled=False)

    async def unexpected(*args, **kwargs):
        raise AssertionError("detection should not run")

    monkeypatch.setattr(jobs.detector, "detect_inactive_users", unexpected)
    monkeypatch.setattr(jobs.detector, "detect_missed_checkins", unexpected)
    monkeypatch.setattr(jobs.detector, "detect_missed_reflections", unexpected)
    monkeypatch.setattr(jobs.detector, "detect_users_for_outreach", unexpected)

    assert await jobs.inactive_users(now=NOW) is None
    assert await jobs.missed_check_ins(now=NOW) is None
    assert await jobs.missed_reflections(now=NOW) is None
    assert await jobs.all(now=NOW) is None


@pytest.mark.asyncio
async def test_missed_check_ins_job(repo, make_jobs, make_member):
    user, _ = await make_member()

    summary = await make_jobs().missed_check_ins(NOW)

    assert summary.details == [
        {"user_id": user.id, "reason": "missed_checkin", "success": True, "channel": "email"}
    ]


@pytest.mark.asyncio
async def test_missed_reflections_job(repo, make_jobs, make_member):
    user, family = await make_member()
    late = datetime(2026, 1, 15, 22, 15, tzinfo=UTC)
    await repo.create_daily_plan(user.id, family.id, late.date(), intention="Focus")

    summary = await make_jobs().missed_reflections(late)

    assert summary.sent == 1
    assert summary.details[0]["reason"] == "missed_reflection"


@pytest.mark.asyncio
async def test_full_run_twice_is_idempotent(repo, make_jobs, make_member):
    """Running the same day's batch twice doesn't send twice."""
    user, _ = await make_member(last_active_at=NOW - timedelta(days=15))
    jobs = make_jobs()

    first = await jobs.all(NOW)
    second = await jobs.all(NOW + timedelta(minutes=30))

    assert (first.sent, first.skipped) == (2, 0)
    assert (second.sent, second.skipped) == (0, 2)
    assert len(await repo.get_outreach_history(user.id)) == 2


@pytest.mark.asyncio
async def test_run_job_unknown_name():
    with pytest.raises(ValueError):
        await main.run_job("missing")


@pytest.mark.asyncio
async def test_run_job_uses_registry(monkeypatch, tmp_path):
    called = {}

    async def fake_job(jobs):
        called["jobs"] = jobs

    monkeypatch.setattr(main.Config, "DATABASE_PATH", tmp_path / "worker.db")
    monkeypatch.setitem(main.JOB_REGISTRY, "fake", fake_job)

    await main.run_job("FAKE")

    assert isinstance(called["jobs"], ReengagementJobs)
