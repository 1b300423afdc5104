from loguru import logger

from copilot.chatbot.summarizer import ConversationSummarizer
from copilot.common.models import Role
from copilot.common.policy import ChatPolicy
from copilot.conversation import Conversation
from copilot.conversation.conversation_repositories import ConversationRepository
from copilot.conversation.messages import Message
from copilot.conversation.messages.message_repositories import MessageRepository


def next_watermark(messages: list[Message]) -> str:
    """Id of the last user message in the batch, or of the last message when the batch has no user message."""
    for message in reversed(messages):
        if message.role is Role.USER:
            return message.id
    return messages[-1].id


class SummarizationEngine:
    """
    Keeps conversations inside the model's context window.

    Tokens are accumulated on every turn; once the total crosses the threshold the unsummarized history
    is folded into the rolling summary and the watermark advances. After `max_summaries` summaries the
    conversation is closed. Best-effort: nothing here raises to the caller.
    """

    def __init__(
        self,
        conversation_repository: ConversationRepository,
        message_repository: MessageRepository,
        summarizer: ConversationSummarizer,
        policy: ChatPolicy,
    ):
        self.conversation_repository = conversation_repository
        self.message_repository = message_repository
        self.summarizer = summarizer
        self.policy = policy

    async def maybe_summarize(self, conversation: Conversation, tokens_this_turn: int) -> Conversation:
        try:
            conversation = await self.conversation_repository.save(
                conversation.id, total_tokens_used=conversation.total_tokens_used + max(tokens_this_turn, 0)
            )
        except Exception:
            logger.exception(f"Could not record token usage for conversation {conversation.id}")
            return conversation

        if conversation.total_tokens_used < self.policy.summarization_threshold:
            return conversation
        if conversation.summary_count >= self.policy.max_summaries:
            return conversation

        try:
            if conversation.last_summarized_message_id is not None:
                messages = await self.message_repository.find_messages_after(conversation.id, conversation.last_summarized_message_id)
            else:
                messages = await self.message_repository.find_messages(conversation.id)
            if not messages:
                return conversation

            logger.info(
                f"Summarizing {len(messages)} messages of conversation {conversation.id} "
                f"({conversation.total_tokens_used} tokens >= {self.policy.summarization_threshold:.0f})"
            )
            summary = await self.summarizer.summarize(messages, conversation.summary)
            summary_count = conversation.summary_count + 1
            updated = await self.conversation_repository.save(
                conversation.id,
                summary=summary,
                last_summarized_message_id=next_watermark(messages),
                summary_count=summary_count,
                is_closed=summary_count >= self.policy.max_summaries,
                total_tokens_used=0,
            )
        except Exception:
            logger.exception(f"Summarization failed for conversation {conversation.id}")
            return conversation

        if updated.is_closed:
            logger.info(f"Conversation {conversation.id} reached {summary_count} summaries and is now closed")
        return updated
