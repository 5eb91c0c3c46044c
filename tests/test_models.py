"""Tests for outreach reasons and preference defaults."""

from datetime import date

import pytest

from reengage.db.models import (
    DEFAULT_PREFERENCES,
    MISSED_CHECKIN,
    MISSED_REFLECTION,
    DailyPlan,
    NotificationPreference,
    OutreachResult,
    Reason,
    ReasonKind,
    Reflection,
    User,
    inactive,
)


def test_reason_codes():
    assert MISSED_CHECKIN.code == "missed_checkin"
    assert MISSED_REFLECTION.code == "missed_reflection"
    assert inactive(7).code == "inactive_7_days"
    assert str(inactive(45)) == "inactive_45_days"


def test_reason_parse():
    assert Reason.parse("missed_checkin") == MISSED_CHECKIN
    assert Reason.parse("inactive_14_days") == inactive(14)
    assert Reason.parse(inactive(5)) == inactive(5)


@pytest.mark.parametrize(
    "code", ["unknown", "inactive_days", "inactive_0_days", "inactive_-3_days", "inactive_x_days"]
)
def test_reason_parse_rejects_unknown_codes(code):
    with pytest.raises(ValueError):
        Reason.parse(code)


def test_reason_requires_positive_days_for_inactivity():
    with pytest.raises(ValueError):
        Reason(ReasonKind.INACTIVE)
    with pytest.raises(ValueError):
        Reason(ReasonKind.MISSED_CHECKIN, 3)


def test_high_priority_reasons():
    """Only inactivity of a week or more is high priority."""
    assert not MISSED_CHECKIN.is_high_priority
    assert not MISSED_REFLECTION.is_high_priority
    assert not inactive(3).is_high_priority
    assert not inactive(6).is_high_priority
    assert inactive(7).is_high_priority
    assert inactive(14).is_high_priority
    assert inactive(30).is_high_priority
    assert inactive(10).is_high_priority


def test_missing_preference_uses_defaults():
    user = User(name="Sam")

    assert user.preference is None
    assert user.preferences is DEFAULT_PREFERENCES
    assert user.preferences.reengagement_enabled
    assert user.preferences.push and user.preferences.email
    assert not user.preferences.sms


def test_stored_preference_wins():
    prefs = NotificationPreference(push=False)
    user = User(name="Sam", preference=prefs)

    assert user.preferences is prefs


def test_verified_phone():
    assert User(name="Sam", phone_number="+14155551234", phone_verified=True).has_verified_phone
    assert not User(name="Sam", phone_number="+14155551234").has_verified_phone
    assert not User(name="Sam", phone_verified=True).has_verified_phone


def test_empty_daily_plan():
    """A plan with no tasks and a blank intention counts as empty."""
    day = date(2026, 1, 15)

    assert DailyPlan(user_id=1, family_id=1, date=day).is_empty
    assert DailyPlan(user_id=1, family_id=1, date=day, intention="   ").is_empty
    assert not DailyPlan(user_id=1, family_id=1, date=day, intention="Focus").is_empty
    assert not DailyPlan(user_id=1, family_id=1, date=day, task_count=1).is_empty


def test_reflection_completed():
    assert not Reflection(daily_plan_id=1, reflection_type="evening").completed
    assert Reflection(daily_plan_id=1, reflection_type="evening", response_count=2).completed


def test_outreach_result_to_dict():
    assert OutreachResult(success=True, channel="email").to_dict() == {
        "success": True,
        "channel": "email",
    }
    assert OutreachResult(success=False, skipped=True, reason="already_sent_today").to_dict() == {
        "success": False,
        "skipped": True,
        "reason": "already_sent_today",
    }
    assert OutreachResult(success=False, error="no_available_channel").to_dict() == {
        "success": False,
        "error": "no_available_channel",
    }
