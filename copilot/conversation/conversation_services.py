from datetime import timedelta

from loguru import logger

from copilot.common.exceptions import ErrorCodes, NotFoundException, ValidationException
from copilot.common.policy import ChatPolicy
from copilot.common.utils import utcnow
from copilot.conversation import ChatMode, Conversation, ResourceType
from copilot.conversation.conversation_models import ContinueConversationRequest, ConversationRequest
from copilot.conversation.conversation_repositories import ConversationRepository

SUMMARY_SEPARATOR = "\n\n---\n\n"


class ConversationService:
    """
    Service class for managing conversation-related operations.
    Every operation is scoped to the calling user; another user's conversation is reported as not found.
    """

    def __init__(self, conversation_repository: ConversationRepository, policy: ChatPolicy):
        self.repository = conversation_repository
        self.policy = policy

    def _new_conversation(self, user_id: str, request: ConversationRequest, title: str | None = None, previous_summary: str | None = None) -> Conversation:
        now = utcnow()
        return Conversation(
            id=request.id,
            user_id=user_id,
            title=title or request.title or self.policy.default_title,
            mode=request.mode,
            page_context=request.page_context,
            previous_summary=previous_summary,
            created_at=now,
            last_activity_at=now,
            expires_at=now + timedelta(days=self.policy.conversation_retention_days),
        )

    async def create_conversation(self, user_id: str, request: ConversationRequest) -> Conversation:
        if await self.repository.find_by_id(request.id) is not None:
            raise ValidationException(f"Conversation with ID: {request.id} already exists", code=ErrorCodes.INVALID_PARAMS)
        return await self.repository.create(self._new_conversation(user_id, request))

    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        conversation = await self.repository.find_by_id_and_user(conversation_id, user_id)
        if not conversation:
            raise NotFoundException(f"Conversation with ID: {conversation_id} was not found!", code=ErrorCodes.CONVERSATION_NOT_FOUND)
        return conversation

    async def get_all_conversations(self, user_id: str, mode: ChatMode | None = None, resource_type: ResourceType | None = None) -> list[Conversation]:
        return await self.repository.find_by_user(user_id, mode=mode, resource_type=resource_type)

    async def delete_conversation(self, user_id: str, conversation_id: str) -> None:
        if not await self.repository.delete_by_id_for_user(conversation_id, user_id):
            raise NotFoundException(f"Conversation with ID: {conversation_id} was not found!", code=ErrorCodes.CONVERSATION_NOT_FOUND)

    async def delete_all_conversations(self, user_id: str) -> int:
        deleted = await self.repository.delete_all_by_user(user_id)
        logger.info(f"Deleted {deleted} conversations for user {user_id}")
        return deleted

    async def continue_from_summary(self, user_id: str, request: ContinueConversationRequest) -> Conversation:
        """
        Creates a new conversation seeded with the summaries of a closed one.
        """
        previous = await self.get_conversation(user_id, request.previous_conversation_id)
        if not previous.is_closed:
            raise ValidationException("Can only continue from a closed conversation", code=ErrorCodes.CONVERSATION_CLOSED)
        if await self.repository.find_by_id(request.id) is not None:
            raise ValidationException(f"Conversation with ID: {request.id} already exists", code=ErrorCodes.INVALID_PARAMS)

        carried = [s for s in (previous.previous_summary, previous.summary) if s is not None]
        conversation = self._new_conversation(
            user_id,
            request,
            title=request.title or f"{previous.title} (continued)",
            previous_summary=SUMMARY_SEPARATOR.join(carried) if carried else None,
        )
        logger.info(f"Continuing conversation {previous.id} as {conversation.id}")
        return await self.repository.create(conversation)
