from datetime import datetime
from typing import Optional, Self
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from copilot.common.models import RequestModel
from copilot.conversation import ChatMode, Conversation, PageContext


class ConversationRequest(RequestModel):
    """
    Request model for creating a conversation.
    The id is supplied by the client so the first chat request can refer to it.
    """

    id: str = Field(default_factory=lambda: str(uuid4()), min_length=1)
    title: Optional[str] = Field(default=None, max_length=255)
    mode: ChatMode = Field(default=ChatMode.GLOBAL)
    page_context: Optional[PageContext] = Field(default=None)

    @model_validator(mode="after")
    def _page_context_matches_mode(self) -> Self:
        if (self.mode is ChatMode.PAGE) != (self.page_context is not None):
            raise ValueError("page_context must be set if and only if mode is 'page'")
        return self


class ContinueConversationRequest(ConversationRequest):
    """Starts a fresh conversation that carries the summary of a closed one."""

    previous_conversation_id: str = Field(..., min_length=1)


class ConversationResponse(BaseModel):
    """
    Response model for conversation operations.
    """

    id: str
    title: str
    mode: ChatMode
    page_context: Optional[PageContext]
    is_closed: bool
    summary_count: int
    summary: Optional[str]
    previous_summary: Optional[str]
    total_tokens_used: int
    created_at: datetime
    last_activity_at: datetime
    expires_at: Optional[datetime]

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> Self:
        return cls(**conversation.model_dump(exclude={"user_id", "last_summarized_message_id"}))


class DeleteAllResponse(BaseModel):
    deleted: int
