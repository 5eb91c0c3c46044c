"""Outreach email enqueueing."""

import logging

from reengage.db.models import Family, OutreachMessage, User
from reengage.db.repository import Repository

logger = logging.getLogger(__name__)


class EmailSender:
    """Queues outreach mail in the outbox; a mailer drains it later."""

    def __init__(self, repo: Repository):
        self.repo = repo

    async def enqueue(
        self,
        outreach_type: str,
        user: User,
        family: Family | None,
        message: OutreachMessage,
    ) -> int:
        """Queue a re-engagement email.

        Raises:
            ValueError: If the user has no email address
        """
        if not user.email:
            raise ValueError(f"User {user.id} has no email address")

        email_id = await self.repo.enqueue_email(
            user_id=user.id,  # type: ignore
            family_id=family.id if family else None,
            outreach_type=outreach_type,
            to_address=user.email,
            subject=message.title,
            body=message.body,
            link=message.link,
        )
        logger.debug(f"Queued {outreach_type} email {email_id} for user {user.id}")
        return email_id
