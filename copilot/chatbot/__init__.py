import asyncio
import json
import os
from abc import ABC
from typing import Any, AsyncGenerator, Optional, TypeVar
from uuid import uuid4

from langchain_aws import ChatBedrock
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessageChunk, BaseMessage, SystemMessage, ToolMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from loguru import logger
from pydantic import BaseModel

from copilot.chatbot.chatbot_models import ModelEvent, ModelEventKind
from copilot.common.utils import SimpleTool

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def content_text(content: Any) -> str:
    """Text carried by a message or chunk; providers send either a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for block in content:
            if isinstance(block, str):
                texts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                texts.append(block.get("text", ""))
        return "".join(texts)
    return ""


class BaseChatbot(ABC):
    llm: BaseChatModel

    async def get_text_response_async(self, prompt: str | list[BaseMessage]) -> str:
        response = await self.llm.ainvoke(prompt)
        return content_text(response.content)

    async def get_structured_response_async(self, messages: list[BaseMessage], schema: type[SchemaT]) -> SchemaT:
        structured_llm = self.llm.with_structured_output(schema)
        result = await structured_llm.ainvoke(messages)
        if isinstance(result, schema):
            return result
        return schema.model_validate(result)

    async def stream_response(self, prompt: str) -> AsyncGenerator[str, None]:
        async for chunk in self.llm.astream(prompt):
            yield content_text(chunk.content)

    async def stream_with_tools(
        self,
        system_prompt: str,
        messages: list[BaseMessage],
        tools: list[SimpleTool],
        tool_context: Any = None,
        max_steps: int = 5,
    ) -> AsyncGenerator[ModelEvent, None]:
        """
        Streams a tool-augmented generation.

        Each step streams one model response; tool calls requested in that response run concurrently
        and their results are fed back for the next step. Every completed step is followed by a USAGE
        event carrying that step's tokens, so usage survives a later step failing.
        """
        llm = self.llm.bind_tools([t.to_openai_tool() for t in tools]) if tools else self.llm
        tools_by_name = {t.name: t for t in tools}
        history: list[BaseMessage] = [SystemMessage(content=system_prompt), *messages]

        for step in range(max_steps):
            aggregate: Optional[AIMessageChunk] = None
            async for chunk in llm.astream(history):
                aggregate = chunk if aggregate is None else aggregate + chunk
                text = content_text(chunk.content)
                if text:
                    yield ModelEvent(kind=ModelEventKind.TEXT, text=text)

            if aggregate is None:
                break
            step_tokens = aggregate.usage_metadata.get("total_tokens", 0) if aggregate.usage_metadata else 0
            yield ModelEvent(kind=ModelEventKind.USAGE, total_tokens=step_tokens)

            tool_calls = aggregate.tool_calls
            if not tool_calls:
                break

            history.append(aggregate)
            for call in tool_calls:
                call["id"] = call.get("id") or str(uuid4())
                yield ModelEvent(kind=ModelEventKind.TOOL_CALL, tool_call_id=call["id"], tool_name=call["name"], data=call["args"])

            results = await asyncio.gather(*(self._run_tool(tools_by_name.get(call["name"]), call, tool_context) for call in tool_calls))
            for call, (output, is_error) in zip(tool_calls, results):
                yield ModelEvent(kind=ModelEventKind.TOOL_RESULT, tool_call_id=call["id"], tool_name=call["name"], data=output, is_error=is_error)
                history.append(ToolMessage(content=json.dumps(output, default=str), tool_call_id=call["id"], name=call["name"], status="error" if is_error else "success"))
        else:
            logger.warning(f"Stopped after {max_steps} tool steps without a final answer")

    @staticmethod
    async def _run_tool(tool: Optional[SimpleTool], call: dict[str, Any], tool_context: Any) -> tuple[Any, bool]:
        if tool is None:
            return {"error": f"Unknown tool: {call['name']}"}, True
        try:
            return await tool.invoke(tool_context, call.get("args") or {}), False
        except Exception as e:
            logger.exception(f"Tool {call['name']} failed")
            return {"error": str(e)}, True


class GeminiChatbot(BaseChatbot):
    def __init__(self, model_name: str = "gemini-2.0-flash", temperature: float = 0):
        self.llm = ChatGoogleGenerativeAI(model=model_name, temperature=temperature)


class ClaudeSonnetChatbot(BaseChatbot):
    def __init__(self, model_name: str = "us.anthropic.claude-3-7-sonnet-20250219-v1:0", temperature: float = 0):
        stage = os.getenv("STAGE", "local").lower()

        bedrock_kwargs = {
            "model": model_name,
            "model_kwargs": {"temperature": temperature},
            "region": os.getenv("AWS_REGION", "us-east-1"),
        }

        # Only use profile for local development if AWS_PROFILE is explicitly set
        if stage == "local" and os.getenv("AWS_PROFILE"):
            bedrock_kwargs["credentials_profile_name"] = os.getenv("AWS_PROFILE")

        self.llm = ChatBedrock(**bedrock_kwargs)
