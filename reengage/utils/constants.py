"""Constants and default values."""

from dataclasses import dataclass


@dataclass(frozen=True)
class MessageTemplate:
    """Title, body and in-app path for one outreach reason."""

    title: str
    body: str  # Formatted with {name}
    link: str  # Path under the family, e.g. "/planner"


# Deadlines (local hour of day)
MISSED_CHECKIN_DEADLINE_HOUR = 12  # noon
MISSED_REFLECTION_DEADLINE_HOUR = 22  # 10pm

# Candidate priorities (1 = most urgent)
MISSED_CHECKIN_PRIORITY = 1
MISSED_REFLECTION_PRIORITY = 2
# Built-in inactivity tiers (days) and their fixed priorities
INACTIVITY_PRIORITIES = {30: 3, 14: 4, 7: 5, 3: 6}
SHORT_INACTIVITY_PRIORITY = 7  # Custom thresholds below the smallest tier

DEFAULT_INACTIVITY_THRESHOLDS = (3, 7, 14, 30)

# Inactivity tiers at or above this many days may be sent by SMS
SMS_MIN_INACTIVE_DAYS = 7

MESSAGE_TEMPLATES = {
    "missed_checkin": MessageTemplate(
        title="Time for Your Morning Check-in",
        body=(
            "Hi {name}! Don't forget to plan your day. "
            "A few minutes of morning planning sets you up for success."
        ),
        link="/planner",
    ),
    "missed_reflection": MessageTemplate(
        title="Take a Moment to Reflect",
        body=(
            "Hi {name}! Before the day ends, take a moment to reflect. "
            "What went well today?"
        ),
        link="/reflection",
    ),
    "inactive_3_days": MessageTemplate(
        title="We Miss You!",
        body=(
            "Hi {name}! It's been a few days since you checked in. "
            "Your family's goals are waiting for you."
        ),
        link="/dashboard",
    ),
    "inactive_7_days": MessageTemplate(
        title="Your Adventure Awaits",
        body=(
            "Hi {name}! A week has passed since your last visit. "
            "Ready to get back on track with your goals?"
        ),
        link="/dashboard",
    ),
    "inactive_14_days": MessageTemplate(
        title="Let's Pick Up Where We Left Off",
        body=(
            "Hi {name}! We noticed you've been away for a couple of weeks. "
            "Your family's journey is waiting."
        ),
        link="/dashboard",
    ),
    "inactive_30_days": MessageTemplate(
        title="Start Fresh Today",
        body=(
            "Hi {name}! It's been a while! Starting fresh is always possible. "
            "We're here when you're ready."
        ),
        link="/dashboard",
    ),
}

# Built-in inactivity tiers that own a template, ascending
TEMPLATE_INACTIVITY_TIERS = (3, 7, 14, 30)

# Default notification preferences (24-hour format)
DEFAULT_QUIET_START = "23:00"
DEFAULT_QUIET_END = "07:00"
DEFAULT_MORNING_PLANNING_TIME = "07:00"
DEFAULT_EVENING_REFLECTION_TIME = "20:00"

# Default timezone
DEFAULT_TIMEZONE = "UTC"

# E.164 phone numbers, e.g. +14155551234
E164_PATTERN = r"^\+[1-9]\d{1,14}$"
