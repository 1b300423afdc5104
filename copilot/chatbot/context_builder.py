from copilot.chatbot.prompts import SUMMARY_CARRIED_OVER_LABEL, SUMMARY_EARLIER_LABEL
from copilot.common.models import Role
from copilot.common.policy import ChatPolicy
from copilot.conversation import Conversation
from copilot.conversation.messages import Message
from copilot.conversation.messages.message_repositories import MessageRepository


class ContextBuilder:
    """
    Assembles the bounded message list sent to the model:
    the summaries (if any) as one assistant message, then the unsummarized tail, then the new message.

    Read-only: the conversation is never modified here.
    """

    def __init__(self, message_repository: MessageRepository, policy: ChatPolicy):
        self.message_repository = message_repository
        self.policy = policy

    @staticmethod
    def summary_message(conversation: Conversation) -> Message | None:
        sections = []
        if conversation.previous_summary is not None:
            sections.append(f"[{SUMMARY_CARRIED_OVER_LABEL}]\n{conversation.previous_summary}")
        if conversation.summary is not None:
            sections.append(f"[{SUMMARY_EARLIER_LABEL}]\n{conversation.summary}")
        if not sections:
            return None
        return Message.text_message(conversation.id, Role.ASSISTANT, "\n\n".join(sections))

    async def history(self, conversation: Conversation) -> list[Message]:
        if conversation.last_summarized_message_id is not None:
            return await self.message_repository.find_messages_after(conversation.id, conversation.last_summarized_message_id)
        return await self.message_repository.find_messages(conversation.id, limit=self.policy.message_history_limit)

    async def build(self, conversation: Conversation, new_message: Message) -> list[Message]:
        context: list[Message] = []
        summary = self.summary_message(conversation)
        if summary:
            context.append(summary)
        context.extend(await self.history(conversation))
        context.append(new_message)
        return context
