from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from reengage.channels.mail import EmailSender
from reengage.channels.push import PushSender
from reengage.channels.sms import SmsSender
from reengage.db.migrations import run_migrations
from reengage.db.models import DeviceToken, Family, NotificationPreference, User
from reengage.db.repository import Repository
from reengage.engine.outreach import OutreachService

UTC = ZoneInfo("UTC")

# 13:00 UTC on a winter weekday: past noon in UTC, early morning on the US west coast
NOW = datetime(2026, 1, 15, 13, 0, tzinfo=UTC)


class FakePushTransport:
    def __init__(self, succeed: bool = True, error: Exception | None = None, invalid: bool = False):
        self.succeed = succeed
        self.error = error
        self.invalid = invalid
        self.calls: list[tuple[DeviceToken, dict]] = []

    async def __call__(self, token, payload):
        self.calls.append((token, payload))
        if self.error:
            raise self.error
        if self.succeed:
            return {"success": True, "message_id": f"msg-{len(self.calls)}"}
        return {"success": False, "error": "rejected", "invalid_token": self.invalid}


class FakeSmsTransport:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, to, body):
        self.calls.append((to, body))
        if self.succeed:
            return {"success": True, "message_sid": f"SM{len(self.calls)}"}
        return {"success": False, "error": "Invalid or undeliverable phone number"}


@pytest_asyncio.fixture
async def repo(tmp_path):
    db_path = tmp_path / "reengage.db"
    await run_migrations(db_path)

    repository = Repository(db_path)
    await repository.connect()
    yield repository
    await repository.close()


@pytest.fixture
def push_transport():
    return FakePushTransport()


@pytest.fixture
def sms_transport():
    return FakeSmsTransport()


@pytest.fixture
def outreach(repo, push_transport, sms_transport):
    return OutreachService(
        repo,
        push=PushSender(repo, transport=push_transport),
        email=EmailSender(repo),
        sms=SmsSender(repo, transport=sms_transport),
    )


@pytest.fixture
def make_member(repo):
    """Create a user in a family and return the reloaded (user, family)."""

    async def _make(
        name: str = "Alex",
        timezone: str = "UTC",
        preference: NotificationPreference | None = NotificationPreference(),
        device_token: bool = False,
        **user_fields,
    ) -> tuple[User, Family]:
        user_fields.setdefault("email", f"{name.lower()}@example.com")
        user = await repo.create_user(User(name=name, **user_fields))
        family = await repo.create_family(Family(name=f"{name}'s family", timezone=timezone))
        await repo.add_family_member(family.id, user.id, role="admin")

        if preference is not None:
            await repo.save_preferences(user.id, preference)

        if device_token:
            await repo.add_device_token(
                DeviceToken(user_id=user.id, token=f"token-{user.id}", created_at=NOW)
            )

        return await repo.get_user_by_id(user.id), family

    return _make
