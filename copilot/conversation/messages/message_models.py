from datetime import datetime
from typing import Optional, Self

from pydantic import BaseModel, Field

from copilot.common.models import RequestModel, Role
from copilot.conversation.messages import Message, MessagePart


class MessageRequest(RequestModel):
    id: Optional[str] = Field(default=None)
    role: Role
    parts: list[MessagePart] = Field(..., min_length=1)


class CreateMessagesRequest(RequestModel):
    messages: list[MessageRequest] = Field(..., min_length=1)


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    role: Role
    parts: list[MessagePart]
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> Self:
        return cls(id=message.id, conversation_id=message.conversation_id, role=message.role, parts=message.parts, created_at=message.created_at)
