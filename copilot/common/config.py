import os
from functools import lru_cache
from typing import Literal

from sqlalchemy.orm import Session

from copilot.chatbot import BaseChatbot, ClaudeSonnetChatbot, GeminiChatbot
from copilot.chatbot.chatbot_services import ChatbotService
from copilot.chatbot.classifier import ClassificationGate, IntentClassifier
from copilot.chatbot.context_builder import ContextBuilder
from copilot.chatbot.entitlement import EntitlementGate
from copilot.chatbot.summarization import SummarizationEngine
from copilot.chatbot.summarizer import ConversationSummarizer, TitleGenerator
from copilot.chatbot.tools import DashboardGateway
from copilot.common.db_connect import get_session_factory
from copilot.common.policy import ChatPolicy
from copilot.conversation.conversation_repositories import ConversationRepository
from copilot.conversation.conversation_services import ConversationService
from copilot.conversation.messages.message_repositories import MessageRepository
from copilot.conversation.messages.message_services import MessageService


# Application configuration settings
class AppConfig:
    """Global application configuration settings"""

    STAGE = os.getenv("STAGE", "local").lower()

    # Model provider: 'anthropic' (Bedrock) or 'google'
    CHAT_MODEL_OWNER: Literal["anthropic", "google"] = os.getenv("CHAT_MODEL_OWNER", "anthropic").lower()  # type: ignore[assignment]
    CHAT_MODEL_NAME = os.getenv("CHAT_MODEL_NAME", "")
    ROUTER_MODEL_NAME = os.getenv("ROUTER_MODEL_NAME", "")

    DASHBOARD_API_URL = os.getenv("DASHBOARD_API_URL", "http://localhost:8080")
    DASHBOARD_API_TIMEOUT_SECONDS = float(os.getenv("DASHBOARD_API_TIMEOUT_SECONDS", "30"))


@lru_cache(maxsize=1)
def get_policy() -> ChatPolicy:
    """Loaded once per process."""
    return ChatPolicy.from_env()


class SessionFactory:
    @staticmethod
    def get_session() -> Session:
        return get_session_factory()()


class ServiceFactory:
    @staticmethod
    def get_conversation_service() -> ConversationService:
        return ConversationService(conversation_repository=RepositoryFactory.get_conversation_repository(), policy=get_policy())

    @staticmethod
    def get_message_service() -> MessageService:
        return MessageService(
            message_repository=RepositoryFactory.get_message_repository(),
            conversation_service=ServiceFactory.get_conversation_service(),
            policy=get_policy(),
        )

    @staticmethod
    def get_chatbot_service() -> ChatbotService:
        policy = get_policy()
        session = SessionFactory.get_session()
        conversation_repository = ConversationRepository(session=session)
        message_repository = MessageRepository(session=session)
        chatbot = ChatbotFactory.create_chatbot(owner=AppConfig.CHAT_MODEL_OWNER, model_name=AppConfig.CHAT_MODEL_NAME)
        router = ChatbotFactory.create_chatbot(owner=AppConfig.CHAT_MODEL_OWNER, model_name=AppConfig.ROUTER_MODEL_NAME)
        return ChatbotService(
            chatbot=chatbot,
            conversation_repository=conversation_repository,
            message_repository=message_repository,
            entitlement_gate=EntitlementGate(message_repository, policy),
            classification_gate=ClassificationGate(IntentClassifier(router), policy),
            context_builder=ContextBuilder(message_repository, policy),
            summarization_engine=SummarizationEngine(conversation_repository, message_repository, ConversationSummarizer(chatbot), policy),
            title_generator=TitleGenerator(router, policy.default_title),
            gateway=DashboardGateway(AppConfig.DASHBOARD_API_URL, AppConfig.DASHBOARD_API_TIMEOUT_SECONDS),
            policy=policy,
        )


class RepositoryFactory:
    @staticmethod
    def get_conversation_repository() -> ConversationRepository:
        return ConversationRepository(session=SessionFactory.get_session())

    @staticmethod
    def get_message_repository() -> MessageRepository:
        return MessageRepository(session=SessionFactory.get_session())


class ChatbotFactory:
    @staticmethod
    def create_chatbot(owner: str, model_name: str = "", temperature: float = 0.0) -> BaseChatbot:
        if owner == "google":
            return GeminiChatbot(model_name=model_name or "gemini-2.0-flash", temperature=temperature)
        elif owner == "anthropic":
            return ClaudeSonnetChatbot(model_name=model_name, temperature=temperature) if model_name else ClaudeSonnetChatbot(temperature=temperature)
        raise ValueError(f"Unknown chatbot: {owner} {model_name}")
