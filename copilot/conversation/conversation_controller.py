from typing import Optional

from fastapi import APIRouter, Depends

from copilot.common.config import ServiceFactory
from copilot.common.controller import BaseController, get_current_user
from copilot.common.models import AuthenticatedUser
from copilot.conversation import ChatMode, ResourceType
from copilot.conversation.conversation_models import ContinueConversationRequest, ConversationRequest, ConversationResponse, DeleteAllResponse
from copilot.conversation.conversation_services import ConversationService


class ConversationController(BaseController):
    prefix = "conversations"

    @property
    def router(self) -> APIRouter:
        """
        Returns the APIRouter instance for the ConversationController.
        This method defines the routes for the conversation API.
        """

        @self.api_router.post(
            "",
            response_model=ConversationResponse,
            responses={200: {"description": "Conversation created successfully"}},
        )
        async def create_conversation(
            body: ConversationRequest,
            user: AuthenticatedUser = Depends(get_current_user),
            conversation_service: ConversationService = Depends(ServiceFactory.get_conversation_service),
        ) -> ConversationResponse:
            conversation = await conversation_service.create_conversation(user.id, body)
            return ConversationResponse.from_conversation(conversation)

        @self.api_router.post(
            "/continue",
            response_model=ConversationResponse,
            responses={200: {"description": "New conversation seeded with the summary of a closed one"}},
        )
        async def continue_conversation(
            body: ContinueConversationRequest,
            user: AuthenticatedUser = Depends(get_current_user),
            conversation_service: ConversationService = Depends(ServiceFactory.get_conversation_service),
        ) -> ConversationResponse:
            conversation = await conversation_service.continue_from_summary(user.id, body)
            return ConversationResponse.from_conversation(conversation)

        @self.api_router.get(
            "",
            response_model=list[ConversationResponse],
            responses={200: {"description": "Returns the caller's conversations, most recently active first"}},
        )
        async def get_conversations(
            mode: Optional[ChatMode] = None,
            resource_type: Optional[ResourceType] = None,
            user: AuthenticatedUser = Depends(get_current_user),
            conversation_service: ConversationService = Depends(ServiceFactory.get_conversation_service),
        ) -> list[ConversationResponse]:
            conversations = await conversation_service.get_all_conversations(user.id, mode=mode, resource_type=resource_type)
            return [ConversationResponse.from_conversation(conversation) for conversation in conversations]

        @self.api_router.get("/{conversation_id}", response_model=ConversationResponse)
        async def get_conversation(
            conversation_id: str,
            user: AuthenticatedUser = Depends(get_current_user),
            conversation_service: ConversationService = Depends(ServiceFactory.get_conversation_service),
        ) -> ConversationResponse:
            conversation = await conversation_service.get_conversation(user.id, conversation_id)
            return ConversationResponse.from_conversation(conversation)

        @self.api_router.delete(
            "/{conversation_id}",
            responses={204: {"description": "Conversation deleted successfully"}},
            status_code=204,
        )
        async def delete_conversation(
            conversation_id: str,
            user: AuthenticatedUser = Depends(get_current_user),
            conversation_service: ConversationService = Depends(ServiceFactory.get_conversation_service),
        ) -> None:
            await conversation_service.delete_conversation(user.id, conversation_id)

        @self.api_router.delete("", response_model=DeleteAllResponse)
        async def delete_all_conversations(
            user: AuthenticatedUser = Depends(get_current_user),
            conversation_service: ConversationService = Depends(ServiceFactory.get_conversation_service),
        ) -> DeleteAllResponse:
            deleted = await conversation_service.delete_all_conversations(user.id)
            return DeleteAllResponse(deleted=deleted)

        return self.api_router
