import json
from datetime import datetime
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter

from copilot.common.models import Role
from copilot.common.utils import utcnow


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallPart(BaseModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    output: Any = None
    is_error: bool = False


MessagePart = Annotated[Union[TextPart, ToolCallPart, ToolResultPart], Field(discriminator="type")]
MESSAGE_PARTS_ADAPTER: TypeAdapter[list[MessagePart]] = TypeAdapter(list[MessagePart])


class Message(BaseModel):
    """
    Represents a message in a conversation.
    Content is an ordered list of typed parts; messages are never mutated once persisted.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    conversation_id: str
    role: Role
    parts: list[MessagePart] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def render(self, max_tool_output_chars: int = 2000) -> str:
        """Flatten the parts into plain text for prompts (history, classification, summaries)."""
        lines: list[str] = []
        for part in self.parts:
            if isinstance(part, TextPart):
                lines.append(part.text)
            elif isinstance(part, ToolCallPart):
                lines.append(f"[called {part.tool_name} with {json.dumps(part.input, default=str)}]")
            elif isinstance(part, ToolResultPart):
                output = json.dumps(part.output, default=str)
                if len(output) > max_tool_output_chars:
                    output = output[:max_tool_output_chars] + "…"
                status = "error" if part.is_error else "result"
                lines.append(f"[{part.tool_name} {status}: {output}]")
        return "\n".join(line for line in lines if line)

    def dump_parts(self) -> list[dict[str, Any]]:
        return MESSAGE_PARTS_ADAPTER.dump_python(self.parts, mode="json")

    @classmethod
    def text_message(cls, conversation_id: str, role: Role, text: str) -> "Message":
        return cls(conversation_id=conversation_id, role=role, parts=[TextPart(text=text)])
