from datetime import datetime
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from copilot.common.models import AuthenticatedUser, MessageIntent, RequestModel, Role, StreamStep
from copilot.common.utils import utcnow
from copilot.conversation import ChatMode, Conversation, PageContext
from copilot.conversation.messages import Message, MessagePart, TextPart


class ModelEventKind(Enum):
    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    USAGE = "usage"


class ModelEvent(BaseModel):
    """One item of the model/tool runtime stream."""

    kind: ModelEventKind
    text: str = Field(default="")
    tool_call_id: str | None = Field(default=None)
    tool_name: str | None = Field(default=None)
    data: Any = Field(default=None)
    is_error: bool = Field(default=False)
    total_tokens: int = Field(default=0)


class Classification(BaseModel):
    """Intent assigned to the latest user turn."""

    intent: MessageIntent = Field(description="The single best matching intent")
    confidence: float = Field(ge=0.0, le=1.0, description="How sure the router is, between 0 and 1")


class GateDecision(BaseModel):
    classification: Classification
    refusal_text: str | None = Field(default=None)

    @property
    def refused(self) -> bool:
        return self.refusal_text is not None


# Requests
class ChatMessageRequest(RequestModel):
    """The new user turn as sent by the client."""

    id: str | None = Field(default=None, description="Client supplied message id")
    role: Role = Field(default=Role.USER)
    parts: list[MessagePart] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _user_text_required(self) -> Self:
        if self.role is not Role.USER:
            raise ValueError("only user messages can be sent to the assistant")
        if not any(isinstance(part, TextPart) and part.text.strip() for part in self.parts):
            raise ValueError("message must contain a non-empty text part")
        return self


class ChatRequest(RequestModel):
    """Body of a chat turn, e.g. `{"conversationId", "message", "mode", "pageContext": {"type", "resourceId", "resourceData"}}`."""

    conversation_id: str = Field(..., min_length=1)
    message: ChatMessageRequest
    mode: ChatMode = Field(default=ChatMode.GLOBAL)
    page_context: PageContext | None = Field(default=None)

    @model_validator(mode="after")
    def _page_context_matches_mode(self) -> Self:
        if self.mode is ChatMode.PAGE and self.page_context is None:
            raise ValueError("page_context is required when mode is 'page'")
        if self.mode is ChatMode.GLOBAL and self.page_context is not None:
            raise ValueError("page_context is only allowed when mode is 'page'")
        return self

    @property
    def resource_data(self) -> dict[str, Any] | None:
        return self.page_context.resource_data if self.page_context else None

    @property
    def message_text(self) -> str:
        return "".join(part.text for part in self.message.parts if isinstance(part, TextPart))

    def to_message(self) -> Message:
        if self.message.id:
            return Message(id=self.message.id, conversation_id=self.conversation_id, role=Role.USER, parts=self.message.parts)
        return Message(conversation_id=self.conversation_id, role=Role.USER, parts=self.message.parts)


class ChatTurn(BaseModel):
    """Everything resolved before the first byte of the stream is sent."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    user: AuthenticatedUser
    request: ChatRequest
    conversation: Conversation
    is_new: bool = Field(default=False)


# Responses
class AgentStreamResponse(BaseModel):
    """Represents a streamed response from an agent."""

    content: str
    step: StreamStep
    timestamp: datetime = Field(default_factory=utcnow)

    def stream_response(self) -> str:
        """Returns a string representation for streaming responses."""
        return f"data: {self.model_dump_json()}\n\n"


class ChatStreamFinalResponse(BaseModel):
    conversation_id: str
    title: str
    user_message_id: str | None = None
    assistant_message_id: str | None = None
    intent: MessageIntent | None = None
    total_tokens: int = 0
    timestamp: datetime = Field(default_factory=utcnow)
