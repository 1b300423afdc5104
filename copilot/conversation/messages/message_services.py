from copilot.common.policy import ChatPolicy
from copilot.conversation.conversation_services import ConversationService
from copilot.conversation.messages import Message
from copilot.conversation.messages.message_models import MessageRequest
from copilot.conversation.messages.message_repositories import MessageRepository


class MessageService:
    def __init__(self, message_repository: MessageRepository, conversation_service: ConversationService, policy: ChatPolicy):
        self.repository = message_repository
        self.conversation_service = conversation_service
        self.policy = policy

    async def get_messages(self, user_id: str, conversation_id: str) -> list[Message]:
        await self.conversation_service.get_conversation(user_id, conversation_id)
        return await self.repository.find_messages(conversation_id)

    async def add_messages(self, user_id: str, conversation_id: str, requests: list[MessageRequest]) -> list[Message]:
        """Appends a batch of messages in order and refreshes the conversation's retention."""
        await self.conversation_service.get_conversation(user_id, conversation_id)
        messages = [
            Message(id=r.id, conversation_id=conversation_id, role=r.role, parts=r.parts)
            if r.id
            else Message(conversation_id=conversation_id, role=r.role, parts=r.parts)
            for r in requests
        ]
        created = await self.repository.create_messages(messages)
        await self.conversation_service.repository.touch_activity(conversation_id, self.policy.conversation_retention_days)
        return created
