from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from copilot.common.entities import BaseEntity
from copilot.common.utils import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


class ConversationEntity(BaseEntity):
    """
    Represents a conversation in the system.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_user_id", "user_id"),
        Index("ix_conversations_expires_at", "expires_at"),
        Index("ix_conversations_last_activity_at", "last_activity_at"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True, doc="Caller supplied identifier of the Conversation")
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, doc="ID of the User who owns the Conversation")
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="New Conversation", doc="Title of the Conversation")
    mode: Mapped[str] = mapped_column(String(16), nullable=False, default="global", doc="global or page")
    page_context: Mapped[dict | None] = mapped_column(JsonType, nullable=True, doc="Pinned resource ({type, resource_id}) for page mode")

    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    summary_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True, doc="Latest rolling summary")
    previous_summary: Mapped[str | None] = mapped_column(Text, nullable=True, doc="Summary carried over from a closed conversation")
    last_summarized_message_id: Mapped[str | None] = mapped_column(String(128), nullable=True, doc="Summarization watermark")
    total_tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, doc="Timestamp when the Conversation was created")
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
