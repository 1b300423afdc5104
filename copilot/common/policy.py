import os
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from copilot.common.models import MessageIntent

RESOURCE_TYPE_PLACEHOLDER = "{{RESOURCE_TYPE}}"

DEFAULT_REFUSAL_TEXT = (
    "I can only help with questions about your merchant dashboard (transactions, refunds, customers, disputes, payouts) "
    "and product usage. Ask me something like “What’s my revenue today?”"
)

DEFAULT_PAGE_REFUSAL_TEMPLATE = (
    "I can only help with questions about this {{RESOURCE_TYPE}} and the records related to it. "
    "For anything else, open the assistant from the dashboard home."
)

DEFAULT_CLOSED_TEXT = (
    "This conversation has reached its length limit and is now closed. "
    "Start a new conversation, or continue from this one to carry its summary forward."
)


class ChatPolicy(BaseModel):
    """
    Process-wide chat policy: scope rules, thresholds and canned texts.

    Loaded once at startup and passed by reference into every component, so tests
    can hand a component an alternate policy without touching the environment.
    """

    model_config = ConfigDict(frozen=True)

    low_confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_summaries: int = Field(default=2, ge=1)
    context_window_size: int = Field(default=128_000, gt=0)
    token_threshold_percentage: float = Field(default=0.6)
    message_history_limit: int = Field(default=40, gt=0)
    message_limit: int = Field(default=100, gt=0)
    rate_limit_period_hours: int = Field(default=24, gt=0)
    conversation_retention_days: int = Field(default=30, gt=0)
    max_tool_steps: int = Field(default=5, gt=0)

    allowed_intents: frozenset[MessageIntent] = Field(
        default=frozenset(
            {
                MessageIntent.DASHBOARD_INSIGHT,
                MessageIntent.PRODUCT_FAQ,
                MessageIntent.ACCOUNT_HELP,
                MessageIntent.ASSISTANT_CAPABILITIES,
            }
        )
    )
    refusal_text: str = DEFAULT_REFUSAL_TEXT
    page_refusal_template: str = DEFAULT_PAGE_REFUSAL_TEMPLATE
    closed_conversation_text: str = DEFAULT_CLOSED_TEXT
    default_title: str = "New Conversation"

    @field_validator("token_threshold_percentage")
    @classmethod
    def _fraction(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("token_threshold_percentage must be within (0, 1]")
        return value

    @model_validator(mode="after")
    def _refusal_intents_never_allowed(self) -> Self:
        if any(intent.is_refusal for intent in self.allowed_intents):
            raise ValueError("refusal intents cannot be part of the allowed intent set")
        return self

    @property
    def summarization_threshold(self) -> float:
        return self.context_window_size * self.token_threshold_percentage

    def page_refusal_text(self, resource_type: str) -> str:
        return self.page_refusal_template.replace(RESOURCE_TYPE_PLACEHOLDER, resource_type)

    @classmethod
    def from_env(cls) -> Self:
        """Build the policy from environment variables, falling back to defaults for unset ones."""
        mappings = {
            "low_confidence_threshold": "LOW_CONFIDENCE_THRESHOLD",
            "max_summaries": "MAX_SUMMARIES",
            "context_window_size": "CONTEXT_WINDOW_SIZE",
            "token_threshold_percentage": "TOKEN_THRESHOLD_PERCENTAGE",
            "message_history_limit": "MESSAGE_HISTORY_LIMIT",
            "message_limit": "MESSAGE_LIMIT",
            "rate_limit_period_hours": "RATE_LIMIT_PERIOD_HOURS",
            "conversation_retention_days": "CONVERSATION_RETENTION_DAYS",
            "max_tool_steps": "MAX_TOOL_STEPS",
            "refusal_text": "REFUSAL_TEXT",
            "page_refusal_template": "PAGE_REFUSAL_TEMPLATE",
        }
        overrides = {field: os.environ[env] for field, env in mappings.items() if os.getenv(env)}
        return cls(**overrides)
