import asyncio
from datetime import timedelta
from typing import Any, AsyncGenerator, Callable, Generator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from copilot.chatbot import BaseChatbot
from copilot.chatbot.chatbot_models import ModelEvent, ModelEventKind
from copilot.common.controller import BaseController
from copilot.common.entities import BaseEntity
from copilot.common.exceptions import NotFoundException
from copilot.common.middlewares import register_exception_handlers
from copilot.common.models import Role
from copilot.common.policy import ChatPolicy
from copilot.common.utils import utcnow
from copilot.conversation import ChatMode, Conversation, ResourceType
from copilot.conversation.conversation_entities import ConversationEntity  # noqa: F401
from copilot.conversation.messages import Message
from copilot.conversation.messages.message_entities import MessageEntity  # noqa: F401


@pytest.fixture(scope="module")
def build_app() -> Callable[[list[type[BaseController]]], FastAPI]:
    def _make_app(controllers: list[type[BaseController]]) -> FastAPI:
        """Builds a FastAPI application with the provided controller."""
        app = FastAPI()
        register_exception_handlers(app)
        for controller in controllers:
            app.include_router(controller().router)
        return app

    return _make_app


def _patch_service(name: str) -> Generator[AsyncMock, None, None]:
    """
    Patch ServiceFactory.<name> with a real async function that returns an AsyncMock,
    so FastAPI still sees a proper coroutine for the dependency.
    """
    fake_service = AsyncMock()

    async def _fake_get_service() -> AsyncMock:
        return fake_service

    with patch(f"copilot.common.config.ServiceFactory.{name}", new=_fake_get_service):
        yield fake_service


@pytest.fixture
def mock_conversation_service() -> Generator[AsyncMock, None, None]:
    yield from _patch_service("get_conversation_service")


@pytest.fixture
def mock_message_service() -> Generator[AsyncMock, None, None]:
    yield from _patch_service("get_message_service")


@pytest.fixture
def mock_chatbot_service() -> Generator[AsyncMock, None, None]:
    yield from _patch_service("get_chatbot_service")


@pytest.fixture
def policy() -> ChatPolicy:
    return ChatPolicy()


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    engine = create_engine("sqlite://", future=True)
    BaseEntity.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False, future=True)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


class InMemoryStore:
    def __init__(self) -> None:
        self.conversations: dict[str, Conversation] = {}
        self.messages: list[Message] = []
        self.calls: list[str] = []


class InMemoryConversationRepository:
    """Stands in for ConversationRepository; every call yields to the event loop like real I/O would."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def find_by_id(self, conversation_id: str) -> Conversation | None:
        await asyncio.sleep(0)
        self.store.calls.append("find_by_id")
        conversation = self.store.conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def find_by_id_and_user(self, conversation_id: str, user_id: str) -> Conversation | None:
        conversation = await self.find_by_id(conversation_id)
        return conversation if conversation and conversation.user_id == user_id else None

    async def find_by_user(self, user_id: str, mode: ChatMode | None = None, resource_type: ResourceType | None = None) -> list[Conversation]:
        conversations = [c for c in self.store.conversations.values() if c.user_id == user_id]
        if mode is not None:
            conversations = [c for c in conversations if c.mode is mode]
        if resource_type is not None:
            conversations = [c for c in conversations if c.page_context and c.page_context.type is resource_type]
        return sorted(conversations, key=lambda c: c.last_activity_at, reverse=True)

    async def create(self, conversation: Conversation) -> Conversation:
        await asyncio.sleep(0)
        self.store.calls.append("create")
        self.store.conversations[conversation.id] = conversation.model_copy(deep=True)
        return conversation.model_copy(deep=True)

    async def save(self, conversation_id: str, **changes: Any) -> Conversation:
        await asyncio.sleep(0)
        self.store.calls.append("save")
        current = self.store.conversations.get(conversation_id)
        if current is None:
            raise NotFoundException(f"Conversation with ID: {conversation_id} was not found!")
        updated = current.model_copy(update=changes)
        self.store.conversations[conversation_id] = updated
        return updated.model_copy(deep=True)

    async def touch_activity(self, conversation_id: str, retention_days: int) -> Conversation:
        now = utcnow()
        return await self.save(conversation_id, last_activity_at=now, expires_at=now + timedelta(days=retention_days))

    async def delete_by_id_for_user(self, conversation_id: str, user_id: str) -> bool:
        conversation = self.store.conversations.get(conversation_id)
        if not conversation or conversation.user_id != user_id:
            return False
        del self.store.conversations[conversation_id]
        self.store.messages = [m for m in self.store.messages if m.conversation_id != conversation_id]
        return True

    async def delete_all_by_user(self, user_id: str) -> int:
        ids = [c.id for c in self.store.conversations.values() if c.user_id == user_id]
        for conversation_id in ids:
            await self.delete_by_id_for_user(conversation_id, user_id)
        return len(ids)


class InMemoryMessageRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def count_user_messages_in_window(self, user_id: str, period_hours: int) -> int:
        await asyncio.sleep(0)
        self.store.calls.append("count_user_messages_in_window")
        since = utcnow() - timedelta(hours=period_hours)
        owned = {c.id for c in self.store.conversations.values() if c.user_id == user_id}
        return sum(1 for m in self.store.messages if m.conversation_id in owned and m.role is Role.USER and m.created_at >= since)

    async def find_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        await asyncio.sleep(0)
        messages = [m for m in self.store.messages if m.conversation_id == conversation_id]
        return messages[-limit:] if limit is not None else messages

    async def find_messages_after(self, conversation_id: str, message_id: str) -> list[Message]:
        messages = await self.find_messages(conversation_id)
        ids = [m.id for m in messages]
        if message_id not in ids:
            return messages
        return messages[ids.index(message_id) + 1 :]

    async def create_messages(self, messages: list[Message]) -> list[Message]:
        await asyncio.sleep(0)
        self.store.calls.append("create_messages")
        base = utcnow()
        created = [m.model_copy(update={"created_at": base + timedelta(microseconds=i)}) for i, m in enumerate(messages)]
        self.store.messages.extend(created)
        return created


class ScriptedChatbot(BaseChatbot):
    """Replays a fixed list of model events instead of calling a provider."""

    def __init__(self, events: list[ModelEvent] | None = None, error: Exception | None = None, text_response: str = "Revenue Today"):
        self.events = events if events is not None else [
            ModelEvent(kind=ModelEventKind.TEXT, text="Your revenue today is "),
            ModelEvent(kind=ModelEventKind.TEXT, text="NGN 120,000."),
            ModelEvent(kind=ModelEventKind.USAGE, total_tokens=1200),
        ]
        self.error = error
        self.text_response = text_response
        self.stream_calls: list[dict[str, Any]] = []

    async def get_text_response_async(self, prompt) -> str:
        return self.text_response

    async def stream_with_tools(self, system_prompt, messages, tools, tool_context=None, max_steps=5) -> AsyncGenerator[ModelEvent, None]:
        self.stream_calls.append({"system_prompt": system_prompt, "messages": messages, "tools": tools, "tool_context": tool_context})
        for event in self.events:
            await asyncio.sleep(0)
            yield event
        if self.error is not None:
            raise self.error


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def conversation_repository(store: InMemoryStore) -> InMemoryConversationRepository:
    return InMemoryConversationRepository(store)


@pytest.fixture
def message_repository(store: InMemoryStore) -> InMemoryMessageRepository:
    return InMemoryMessageRepository(store)


@pytest.fixture
def make_conversation(store: InMemoryStore) -> Callable[..., Conversation]:
    def _make(conversation_id: str = "conv-1", user_id: str = "user-1", **fields: Any) -> Conversation:
        conversation = Conversation(id=conversation_id, user_id=user_id, **fields)
        store.conversations[conversation_id] = conversation
        return conversation.model_copy(deep=True)

    return _make


@pytest.fixture
def add_messages(store: InMemoryStore) -> Callable[..., list[Message]]:
    def _add(conversation_id: str, *turns: tuple[Role, str]) -> list[Message]:
        base = utcnow() - timedelta(minutes=len(turns))
        created = []
        for i, (role, text) in enumerate(turns):
            message = Message.text_message(conversation_id, role, text).model_copy(update={"created_at": base + timedelta(seconds=i)})
            store.messages.append(message)
            created.append(message)
        return created

    return _add


@pytest.fixture
def scripted_chatbot() -> type[ScriptedChatbot]:
    return ScriptedChatbot
