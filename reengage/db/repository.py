"""Database repository - all SQL queries."""

import logging
import sqlite3
from collections.abc import AsyncIterator
from datetime import date, datetime
from pathlib import Path
from typing import Any, List

import aiosqlite

from reengage.db.models import (
    DailyPlan,
    DeviceToken,
    Family,
    NotificationPreference,
    OutreachHistory,
    Reflection,
    User,
)
from reengage.utils.time_utils import UTC, utc_now

logger = logging.getLogger(__name__)

PREFERENCE_COLUMNS = (
    "push",
    "email",
    "sms",
    "in_app",
    "morning_planning",
    "evening_reflection",
    "reengagement_enabled",
    "morning_planning_time",
    "evening_reflection_time",
    "quiet_hours_start",
    "quiet_hours_end",
)

BOOLEAN_PREFERENCES = PREFERENCE_COLUMNS[:7]


def _to_iso(dt: datetime | None) -> str | None:
    """Serialize a datetime as a UTC ISO string."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="seconds")


def _parse_dt(value: str | None) -> datetime | None:
    """Parse a stored timestamp; naive values are UTC."""
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


class Repository:
    """Database access layer."""

    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    # User operations

    async def create_user(self, user: User) -> User:
        """Create a new user."""
        async with self.db.execute(
            """
            INSERT INTO users (name, email, phone_number, phone_verified, last_active_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING *
            """,
            (
                user.name,
                user.email,
                user.phone_number,
                1 if user.phone_verified else 0,
                _to_iso(user.last_active_at),
            ),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()

            logger.info(f"Created user {row['id']}")
            return self._row_to_user(row)

    async def get_user_by_id(self, user_id: int) -> User | None:
        """Get a user with their preferences and families loaded."""
        async with self.db.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if not row:
                return None

        users = await self._load_users([row])
        return users[0]

    async def iter_users(self, batch_size: int = 500) -> AsyncIterator[User]:
        """Yield every user, fully loaded, one page at a time."""
        last_id = 0
        while True:
            async with self.db.execute(
                "SELECT * FROM users WHERE id > ? ORDER BY id LIMIT ?",
                (last_id, batch_size),
            ) as cursor:
                rows = await cursor.fetchall()

            if not rows:
                return

            for user in await self._load_users(rows):
                yield user

            last_id = rows[-1]["id"]

    async def update_last_active(self, user_id: int, at: datetime | None = None) -> None:
        """Record API activity for a user."""
        await self.db.execute(
            "UPDATE users SET last_active_at = ? WHERE id = ?",
            (_to_iso(at or utc_now()), user_id),
        )
        await self.db.commit()

    # Family operations

    async def create_family(self, family: Family) -> Family:
        """Create a new family."""
        async with self.db.execute(
            "INSERT INTO families (name, timezone) VALUES (?, ?) RETURNING *",
            (family.name, family.timezone),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()
            return Family(id=row["id"], name=row["name"], timezone=row["timezone"])

    async def add_family_member(self, family_id: int, user_id: int, role: str = "member") -> None:
        """Add a user to a family."""
        await self.db.execute(
            "INSERT INTO family_memberships (family_id, user_id, role) VALUES (?, ?, ?)",
            (family_id, user_id, role),
        )
        await self.db.commit()

    # Notification preference operations

    async def save_preferences(self, user_id: int, preference: NotificationPreference) -> None:
        """Create or replace a user's notification preferences."""
        values = [getattr(preference, column) for column in PREFERENCE_COLUMNS]
        values = [
            (1 if value else 0) if column in BOOLEAN_PREFERENCES else value
            for column, value in zip(PREFERENCE_COLUMNS, values)
        ]
        columns = ", ".join(PREFERENCE_COLUMNS)
        placeholders = ", ".join("?" for _ in PREFERENCE_COLUMNS)
        updates = ", ".join(f"{column} = excluded.{column}" for column in PREFERENCE_COLUMNS)

        await self.db.execute(
            f"""
            INSERT INTO notification_preferences (user_id, {columns})
            VALUES (?, {placeholders})
            ON CONFLICT(user_id) DO UPDATE SET {updates}, updated_at = datetime('now')
            """,
            (user_id, *values),
        )
        await self.db.commit()

    async def get_preferences(self, user_id: int) -> NotificationPreference | None:
        """Get a user's stored preferences, or None if never saved."""
        preferences = await self._preferences_by_user([user_id])
        return preferences.get(user_id)

    # Device token operations

    async def add_device_token(self, token: DeviceToken) -> DeviceToken:
        """Register a device token."""
        async with self.db.execute(
            """
            INSERT INTO device_tokens (user_id, token, platform, last_used_at, created_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING *
            """,
            (
                token.user_id,
                token.token,
                token.platform,
                _to_iso(token.last_used_at),
                _to_iso(token.created_at or utc_now()),
            ),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()
            return self._row_to_device_token(row)

    async def get_active_device_tokens(self, user_id: int, since: datetime) -> List[DeviceToken]:
        """Get tokens used (or registered) at or after `since`."""
        async with self.db.execute(
            """
            SELECT * FROM device_tokens
            WHERE user_id = ?
            AND COALESCE(last_used_at, created_at) >= ?
            ORDER BY id
            """,
            (user_id, _to_iso(since)),
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_device_token(row) for row in rows]

    async def touch_device_token(self, token_id: int, at: datetime | None = None) -> None:
        """Mark a token as used."""
        await self.db.execute(
            "UPDATE device_tokens SET last_used_at = ? WHERE id = ?",
            (_to_iso(at or utc_now()), token_id),
        )
        await self.db.commit()

    async def delete_device_tokens(self, token_ids: List[int]) -> None:
        """Delete tokens the push provider rejected."""
        if not token_ids:
            return
        placeholders = ", ".join("?" for _ in token_ids)
        await self.db.execute(
            f"DELETE FROM device_tokens WHERE id IN ({placeholders})", token_ids
        )
        await self.db.commit()
        logger.info(f"Deleted {len(token_ids)} invalid device tokens")

    # Daily plan operations

    async def create_daily_plan(
        self, user_id: int, family_id: int, day: date, intention: str | None = None
    ) -> DailyPlan:
        """Create a daily plan."""
        async with self.db.execute(
            """
            INSERT INTO daily_plans (user_id, family_id, date, intention)
            VALUES (?, ?, ?, ?)
            RETURNING *
            """,
            (user_id, family_id, day.isoformat(), intention),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()
            return DailyPlan(
                id=row["id"],
                user_id=row["user_id"],
                family_id=row["family_id"],
                date=date.fromisoformat(row["date"]),
                intention=row["intention"],
            )

    async def add_daily_task(self, daily_plan_id: int, title: str) -> None:
        """Add a task to a daily plan."""
        await self.db.execute(
            "INSERT INTO daily_tasks (daily_plan_id, title) VALUES (?, ?)",
            (daily_plan_id, title),
        )
        await self.db.commit()

    async def create_reflection(self, daily_plan_id: int, reflection_type: str = "evening") -> Reflection:
        """Create a reflection for a daily plan."""
        async with self.db.execute(
            """
            INSERT INTO reflections (daily_plan_id, reflection_type)
            VALUES (?, ?)
            RETURNING *
            """,
            (daily_plan_id, reflection_type),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()
            return Reflection(
                id=row["id"],
                daily_plan_id=row["daily_plan_id"],
                reflection_type=row["reflection_type"],
            )

    async def add_reflection_response(self, reflection_id: int, prompt: str, response: str) -> None:
        """Record an answer to a reflection prompt."""
        await self.db.execute(
            "INSERT INTO reflection_responses (reflection_id, prompt, response) VALUES (?, ?, ?)",
            (reflection_id, prompt, response),
        )
        await self.db.commit()

    async def get_daily_plan(self, user_id: int, family_id: int, day: date) -> DailyPlan | None:
        """Get a daily plan with its task count and evening reflection."""
        async with self.db.execute(
            """
            SELECT p.*,
                (SELECT COUNT(*) FROM daily_tasks t WHERE t.daily_plan_id = p.id) AS task_count
            FROM daily_plans p
            WHERE p.user_id = ? AND p.family_id = ? AND p.date = ?
            """,
            (user_id, family_id, day.isoformat()),
        ) as cursor:
            row = await cursor.fetchone()
            if not row:
                return None

        plan = DailyPlan(
            id=row["id"],
            user_id=row["user_id"],
            family_id=row["family_id"],
            date=date.fromisoformat(row["date"]),
            intention=row["intention"],
            task_count=row["task_count"],
        )

        async with self.db.execute(
            """
            SELECT r.*,
                (SELECT COUNT(*) FROM reflection_responses rr WHERE rr.reflection_id = r.id)
                    AS response_count
            FROM reflections r
            WHERE r.daily_plan_id = ? AND r.reflection_type = 'evening'
            """,
            (plan.id,),
        ) as cursor:
            reflection_row = await cursor.fetchone()
            if reflection_row:
                plan.evening_reflection = Reflection(
                    id=reflection_row["id"],
                    daily_plan_id=reflection_row["daily_plan_id"],
                    reflection_type=reflection_row["reflection_type"],
                    response_count=reflection_row["response_count"],
                )

        return plan

    # Outreach history operations

    async def outreach_sent_on(self, user_id: int, outreach_type: str, day: date) -> bool:
        """Check whether an outreach of this type was already sent on a local day."""
        async with self.db.execute(
            """
            SELECT 1 FROM outreach_histories
            WHERE user_id = ? AND outreach_type = ? AND sent_on = ?
            LIMIT 1
            """,
            (user_id, outreach_type, day.isoformat()),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def record_outreach(
        self,
        user_id: int,
        outreach_type: str,
        channel: str,
        sent_on: date,
        sent_at: datetime | None = None,
    ) -> bool:
        """Log a sent outreach.

        Returns:
            False if a row for the same user, type and day already exists
        """
        try:
            await self.db.execute(
                """
                INSERT INTO outreach_histories (user_id, outreach_type, channel, sent_on, sent_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, outreach_type, channel, sent_on.isoformat(), _to_iso(sent_at or utc_now())),
            )
        except sqlite3.IntegrityError:
            await self.db.rollback()
            return False

        await self.db.commit()
        return True

    async def get_outreach_history(self, user_id: int) -> List[OutreachHistory]:
        """Get outreach history for a user, newest first."""
        async with self.db.execute(
            "SELECT * FROM outreach_histories WHERE user_id = ? ORDER BY sent_at DESC, id DESC",
            (user_id,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [
                OutreachHistory(
                    id=row["id"],
                    user_id=row["user_id"],
                    outreach_type=row["outreach_type"],
                    channel=row["channel"],
                    sent_on=date.fromisoformat(row["sent_on"]),
                    sent_at=_parse_dt(row["sent_at"]),
                )
                for row in rows
            ]

    # Email outbox operations

    async def enqueue_email(
        self,
        user_id: int,
        family_id: int | None,
        outreach_type: str,
        to_address: str,
        subject: str,
        body: str,
        link: str,
    ) -> int:
        """Queue an email for asynchronous delivery."""
        async with self.db.execute(
            """
            INSERT INTO email_outbox (
                user_id, family_id, outreach_type, to_address, subject, body, link, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (user_id, family_id, outreach_type, to_address, subject, body, link, _to_iso(utc_now())),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()
            return row["id"]

    async def get_pending_emails(self) -> List[dict[str, Any]]:
        """Get queued emails that haven't been delivered."""
        async with self.db.execute(
            "SELECT * FROM email_outbox WHERE status = 'pending' ORDER BY id"
        ) as cursor:
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    # SMS log operations

    async def count_sms_sent(self, user_id: int, day: date) -> int:
        """Number of SMS sent to a user on a UTC day."""
        async with self.db.execute(
            "SELECT COUNT(*) AS total FROM sms_log WHERE user_id = ? AND sent_on = ?",
            (user_id, day.isoformat()),
        ) as cursor:
            row = await cursor.fetchone()
            return row["total"]

    async def log_sms(self, user_id: int, to_number: str, message_sid: str, sent_at: datetime) -> None:
        """Log a delivered SMS."""
        sent_at = sent_at.astimezone(UTC)
        await self.db.execute(
            """
            INSERT INTO sms_log (user_id, to_number, message_sid, sent_on, sent_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, to_number, message_sid, sent_at.date().isoformat(), _to_iso(sent_at)),
        )
        await self.db.commit()

    # Helper methods

    async def _load_users(self, rows: List[aiosqlite.Row]) -> List[User]:
        """Convert user rows and attach preferences and families."""
        users = [self._row_to_user(row) for row in rows]
        user_ids = [user.id for user in users]

        preferences = await self._preferences_by_user(user_ids)
        families = await self._families_by_user(user_ids)

        for user in users:
            user.preference = preferences.get(user.id)
            user.families = families.get(user.id, [])

        return users

    async def _preferences_by_user(self, user_ids: List[int]) -> dict[int, NotificationPreference]:
        if not user_ids:
            return {}
        placeholders = ", ".join("?" for _ in user_ids)
        async with self.db.execute(
            f"SELECT * FROM notification_preferences WHERE user_id IN ({placeholders})",
            user_ids,
        ) as cursor:
            rows = await cursor.fetchall()
            return {row["user_id"]: self._row_to_preference(row) for row in rows}

    async def _families_by_user(self, user_ids: List[int]) -> dict[int, List[Family]]:
        if not user_ids:
            return {}
        placeholders = ", ".join("?" for _ in user_ids)
        families: dict[int, List[Family]] = {}
        async with self.db.execute(
            f"""
            SELECT m.user_id, f.id, f.name, f.timezone
            FROM family_memberships m
            JOIN families f ON f.id = m.family_id
            WHERE m.user_id IN ({placeholders})
            ORDER BY m.id
            """,
            user_ids,
        ) as cursor:
            async for row in cursor:
                families.setdefault(row["user_id"], []).append(
                    Family(id=row["id"], name=row["name"], timezone=row["timezone"])
                )
        return families

    def _row_to_user(self, row: aiosqlite.Row) -> User:
        """Convert a database row to a User object."""
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone_number=row["phone_number"],
            phone_verified=bool(row["phone_verified"]),
            last_active_at=_parse_dt(row["last_active_at"]),
            created_at=_parse_dt(row["created_at"]),
        )

    def _row_to_preference(self, row: aiosqlite.Row) -> NotificationPreference:
        """Convert a database row to a NotificationPreference object."""
        values = {column: row[column] for column in PREFERENCE_COLUMNS}
        for column in BOOLEAN_PREFERENCES:
            values[column] = bool(values[column])
        return NotificationPreference(**values)

    def _row_to_device_token(self, row: aiosqlite.Row) -> DeviceToken:
        """Convert a database row to a DeviceToken object."""
        return DeviceToken(
            id=row["id"],
            user_id=row["user_id"],
            token=row["token"],
            platform=row["platform"],
            last_used_at=_parse_dt(row["last_used_at"]),
            created_at=_parse_dt(row["created_at"]),
        )
