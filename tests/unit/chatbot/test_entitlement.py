from datetime import timedelta

import pytest

from copilot.chatbot.entitlement import EntitlementGate
from copilot.common.exceptions import RateLimitExceededException
from copilot.common.models import Role
from copilot.common.policy import ChatPolicy
from copilot.common.utils import utcnow
from copilot.conversation.messages import Message


def _fill(store, conversation_id: str, count: int, age: timedelta = timedelta(minutes=5), role: Role = Role.USER) -> None:
    created_at = utcnow() - age
    for i in range(count):
        store.messages.append(Message.text_message(conversation_id, role, f"question {i}").model_copy(update={"created_at": created_at}))


@pytest.mark.asyncio
async def test_one_below_limit_is_accepted(store, make_conversation, message_repository):
    make_conversation("conv-1", "user-1")
    _fill(store, "conv-1", 4)
    gate = EntitlementGate(message_repository, ChatPolicy(message_limit=5))

    await gate.check("user-1")


@pytest.mark.asyncio
async def test_exactly_at_limit_is_rejected(store, make_conversation, message_repository):
    make_conversation("conv-1", "user-1")
    _fill(store, "conv-1", 5)
    gate = EntitlementGate(message_repository, ChatPolicy(message_limit=5, rate_limit_period_hours=2))

    with pytest.raises(RateLimitExceededException) as exc_info:
        await gate.check("user-1")

    exc = exc_info.value
    assert exc.status_code == 429
    assert exc.data == {"limit": 5, "period_hours": 2, "current_count": 5}
    assert exc.message == "Rate limit exceeded. You have sent 5 messages in the last 2 hour(s). The limit is 5 messages per 2 hour(s)."


@pytest.mark.asyncio
async def test_window_slides_and_ignores_assistant_and_other_users(store, make_conversation, message_repository):
    make_conversation("conv-1", "user-1")
    make_conversation("conv-2", "user-2")
    _fill(store, "conv-1", 3, age=timedelta(hours=25))
    _fill(store, "conv-1", 3, role=Role.ASSISTANT)
    _fill(store, "conv-2", 10)
    _fill(store, "conv-1", 2)
    gate = EntitlementGate(message_repository, ChatPolicy(message_limit=3))

    await gate.check("user-1")
