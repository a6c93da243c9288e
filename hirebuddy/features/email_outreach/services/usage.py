"""
Email usage quota.
Counts a user's stored sends against their limit.
"""

from hirebuddy.config import settings
from hirebuddy.features.email_outreach.domain.models import EmailUsage
from hirebuddy.features.email_outreach.repository import EmailRecordRepository, EmailUsageRepository
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EmailUsageService:
    """Reads the send limit and the number of emails already sent."""

    async def get_usage(self, user_id: str) -> EmailUsage:
        limit = await EmailUsageRepository.fetch_limit(user_id)
        used = await EmailRecordRepository.count_sent(user_id)
        return EmailUsage(used=used, limit=limit if limit is not None else settings.DEFAULT_EMAIL_LIMIT)

    async def can_send(self, user_id: str, count: int = 1) -> tuple[bool, EmailUsage, str | None]:
        """
        Check whether `count` more emails fit in the user's quota.

        Returns:
            Tuple of (allowed, usage, message); message explains a refusal
        """
        usage = await self.get_usage(user_id)
        if usage.remaining >= count:
            return True, usage, None

        logger.info(
            "Email quota exhausted",
            user_id=user_id,
            used=usage.used,
            limit=usage.limit,
            requested=count,
        )
        message = (
            f"You can only send {usage.remaining} more emails. "
            f"You've used {usage.used} out of {usage.limit} emails."
        )
        return False, usage, message


email_usage_service = EmailUsageService()
