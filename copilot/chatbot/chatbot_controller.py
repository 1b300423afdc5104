from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from loguru import logger

from copilot.chatbot.chatbot_models import ChatRequest
from copilot.chatbot.chatbot_services import ChatbotService
from copilot.common.config import ServiceFactory
from copilot.common.controller import BaseController, get_current_user
from copilot.common.models import AuthenticatedUser


class ChatbotController(BaseController):
    prefix = "chat"

    @property
    def router(self) -> APIRouter:
        """
        Returns the APIRouter instance for the ChatbotController.
        """

        @self.api_router.post(
            "/stream",
            responses={
                200: {"description": "Server-sent events for the assistant turn", "content": {"text/event-stream": {}}},
                400: {"description": "Mode or page context does not match the conversation"},
                404: {"description": "Conversation not found"},
                429: {"description": "Message quota exceeded"},
            },
        )
        async def stream_chat(
            chat_request: ChatRequest,
            user: AuthenticatedUser = Depends(get_current_user),
            chatbot_service: ChatbotService = Depends(ServiceFactory.get_chatbot_service),
        ) -> StreamingResponse:
            """
            Streams the assistant's answer to a new user message.
            Ownership, mode and quota errors are returned as regular HTTP errors before the stream opens.
            """
            logger.info(f"Chat request for conversation {chat_request.conversation_id} in {chat_request.mode.value} mode")
            turn = await chatbot_service.prepare_turn(user, chat_request)
            return StreamingResponse(chatbot_service.stream_turn(turn), media_type="text/event-stream")

        return self.api_router
