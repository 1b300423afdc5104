from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from copilot.common.entities import BaseEntity
from copilot.common.utils import utcnow
from copilot.conversation.conversation_entities import JsonType


class MessageEntity(BaseEntity):
    """
    Represents a message in a conversation.
    """

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_conversation_id_created_at", "conversation_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(128), primary_key=True, doc="Unique Identifier of the Message")
    conversation_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, doc="ID of the Conversation to which this Message belongs"
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False, doc="Role of the sender (e.g., user, assistant, system)")
    parts: Mapped[list] = mapped_column(JsonType, nullable=False, default=list, doc="Ordered content blocks (text, tool-call, tool-result)")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, doc="Timestamp when the Message was created")
