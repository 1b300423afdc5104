from fastapi import APIRouter, Depends

from copilot.common.config import ServiceFactory
from copilot.common.controller import BaseController, get_current_user
from copilot.common.models import AuthenticatedUser
from copilot.conversation.messages.message_models import CreateMessagesRequest, MessageResponse
from copilot.conversation.messages.message_services import MessageService


class MessageController(BaseController):
    """
    Controller for reading and appending the messages of a conversation.
    """

    prefix = "conversations/{conversation_id}/messages"
    tags = ["messages"]

    @property
    def router(self) -> APIRouter:
        @self.api_router.get(
            "",
            response_model=list[MessageResponse],
            responses={200: {"description": "List of all messages for the given Conversation Id"}},
        )
        async def get_messages(
            conversation_id: str,
            user: AuthenticatedUser = Depends(get_current_user),
            message_service: MessageService = Depends(ServiceFactory.get_message_service),
        ) -> list[MessageResponse]:
            messages = await message_service.get_messages(user.id, conversation_id)
            return [MessageResponse.from_message(m) for m in messages]

        @self.api_router.post("", response_model=list[MessageResponse])
        async def add_messages(
            conversation_id: str,
            body: CreateMessagesRequest,
            user: AuthenticatedUser = Depends(get_current_user),
            message_service: MessageService = Depends(ServiceFactory.get_message_service),
        ) -> list[MessageResponse]:
            messages = await message_service.add_messages(user.id, conversation_id, body.messages)
            return [MessageResponse.from_message(m) for m in messages]

        return self.api_router
