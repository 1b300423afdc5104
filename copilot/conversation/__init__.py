from datetime import datetime
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from copilot.common.models import RequestModel
from copilot.common.utils import utcnow


class ChatMode(Enum):
    """Whether a conversation is general purpose or pinned to one dashboard resource."""

    GLOBAL = "global"
    PAGE = "page"


class ResourceType(Enum):
    TRANSACTION = "transaction"
    CUSTOMER = "customer"
    REFUND = "refund"
    PAYOUT = "payout"
    DISPUTE = "dispute"


class PageContext(RequestModel):
    """
    The dashboard resource a page-scoped conversation is pinned to.

    `resource_data` is the snapshot the client shows on the page. It travels with a chat request only
    and is never stored with the conversation.
    """

    model_config = ConfigDict(frozen=True)

    type: ResourceType
    resource_id: str = Field(..., min_length=1)
    resource_data: dict[str, Any] | None = Field(default=None, exclude=True)

    def pinned(self) -> "PageContext":
        return PageContext(type=self.type, resource_id=self.resource_id)

    def same_resource(self, other: "PageContext") -> bool:
        return self.type == other.type and self.resource_id == other.resource_id


class Conversation(BaseModel):
    id: str
    user_id: str
    title: str = Field(default="New Conversation")
    mode: ChatMode = Field(default=ChatMode.GLOBAL)
    page_context: PageContext | None = Field(default=None)

    is_closed: bool = Field(default=False)
    summary_count: int = Field(default=0, ge=0)
    summary: str | None = Field(default=None, description="Latest rolling summary")
    previous_summary: str | None = Field(default=None, description="Summary carried over from a closed conversation")
    last_summarized_message_id: str | None = Field(default=None, description="Watermark: messages up to this id live only in the summary")
    total_tokens_used: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = Field(default=None)

    @field_validator("page_context")
    @classmethod
    def _pin_only(cls, value: PageContext | None) -> PageContext | None:
        return value.pinned() if value is not None and value.resource_data is not None else value

    @model_validator(mode="after")
    def _mode_matches_page_context(self) -> Self:
        if (self.mode is ChatMode.PAGE) != (self.page_context is not None):
            raise ValueError("page_context must be set if and only if mode is 'page'")
        return self

    @property
    def has_summary(self) -> bool:
        return self.summary is not None or self.previous_summary is not None
