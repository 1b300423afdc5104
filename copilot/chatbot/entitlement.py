from loguru import logger

from copilot.common.exceptions import RateLimitExceededException
from copilot.common.policy import ChatPolicy
from copilot.conversation.messages.message_repositories import MessageRepository


class EntitlementGate:
    """Per-user message quota over a sliding window of the last `rate_limit_period_hours`."""

    def __init__(self, message_repository: MessageRepository, policy: ChatPolicy):
        self.message_repository = message_repository
        self.policy = policy

    async def check(self, user_id: str) -> None:
        period_hours = self.policy.rate_limit_period_hours
        count = await self.message_repository.count_user_messages_in_window(user_id, period_hours)
        if count >= self.policy.message_limit:
            logger.warning(f"User {user_id} is rate limited: {count}/{self.policy.message_limit} messages in {period_hours}h")
            raise RateLimitExceededException(limit=self.policy.message_limit, period_hours=period_hours, current_count=count)
