from enum import Enum

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Role(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class StreamStep(Enum):
    """Enum for the kinds of events emitted on the chat stream."""

    FINAL_RESPONSE = "final_response"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    REFUSAL = "refusal"
    CLOSED = "closed"
    END = "end"
    ERROR = "error"


class RequestModel(BaseModel):
    """Request body: clients send camelCase keys, the snake_case field names are accepted as well."""

    model_config = ConfigDict(alias_generator=AliasGenerator(validation_alias=to_camel), populate_by_name=True)


class AuthenticatedUser(BaseModel):
    """The caller as resolved from the request headers."""

    id: str = Field(..., min_length=1, description="Owner id used to scope every store operation")
    bearer_token: str | None = Field(default=None, description="Token forwarded to dashboard data tools")


class MessageIntent(Enum):
    """Intents the classifier may assign to the latest user turn."""

    DASHBOARD_INSIGHT = "DASHBOARD_INSIGHT"
    PRODUCT_FAQ = "PRODUCT_FAQ"
    ACCOUNT_HELP = "ACCOUNT_HELP"
    ASSISTANT_CAPABILITIES = "ASSISTANT_CAPABILITIES"
    OUT_OF_SCOPE = "OUT_OF_SCOPE"
    OUT_OF_PAGE_SCOPE = "OUT_OF_PAGE_SCOPE"

    @property
    def is_refusal(self) -> bool:
        return self in (MessageIntent.OUT_OF_SCOPE, MessageIntent.OUT_OF_PAGE_SCOPE)
