from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SimpleTool:
    """Minimal tool wrapper: a name, a description, a pydantic input schema and an async callable."""

    def __init__(self, name: str, description: str, func: Callable[..., Awaitable[Any]], args_schema: Optional[type[BaseModel]] = None):
        self.name = name
        self.description = description
        self.func = func
        self.args_schema = args_schema or type("EmptySchema", (BaseModel,), {})
        self.coroutine = func

    async def invoke(self, context: Any, input_data: dict[str, Any] | BaseModel) -> Any:
        """Validate the raw arguments against the schema and run the tool."""
        params = input_data if isinstance(input_data, BaseModel) else self.args_schema.model_validate(input_data or {})
        return await self.func(context, params)

    def to_openai_tool(self) -> dict[str, Any]:
        """Function-calling schema accepted by LangChain's ``bind_tools``."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_schema.model_json_schema(),
            },
        }


def tool(name: str, description: str = "", args_schema: Optional[type[BaseModel]] = None):
    """Decorator to create a simple tool"""

    def decorator(func: Callable[..., Awaitable[Any]]) -> SimpleTool:
        tool_description = description or func.__doc__ or "No description available"
        return SimpleTool(name, tool_description, func, args_schema)

    return decorator
