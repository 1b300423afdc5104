from typing import Any

import pytest
from langchain_core.messages import AIMessageChunk, HumanMessage, ToolMessage
from pydantic import BaseModel

from copilot.chatbot import BaseChatbot, content_text
from copilot.chatbot.chatbot_models import ModelEventKind
from copilot.common.utils import tool


class ScriptedLLM:
    """Minimal stand-in for a LangChain chat model: each astream call replays the next list of chunks, or raises the next exception."""

    def __init__(self, responses: list[list[AIMessageChunk] | Exception]):
        self.responses = list(responses)
        self.calls: list[list[Any]] = []
        self.bound_tools: list[dict] | None = None

    def bind_tools(self, tools: list[dict]) -> "ScriptedLLM":
        self.bound_tools = tools
        return self

    async def astream(self, messages):
        self.calls.append(list(messages))
        if isinstance(self.responses[0], Exception):
            raise self.responses.pop(0)
        for chunk in self.responses.pop(0):
            yield chunk


class FakeChatbot(BaseChatbot):
    def __init__(self, llm: ScriptedLLM):
        self.llm = llm


class LookupParams(BaseModel):
    reference: str


@tool("lookupTransaction", description="Looks up one transaction", args_schema=LookupParams)
async def lookup_transaction(context: dict, params: LookupParams) -> dict:
    return {"reference": params.reference, "status": context["status"]}


@tool("brokenTool", description="Always fails", args_schema=LookupParams)
async def broken_tool(context: dict, params: LookupParams) -> dict:
    raise RuntimeError("backend down")


def _usage(total: int) -> dict:
    return {"input_tokens": total - 10, "output_tokens": 10, "total_tokens": total}


@pytest.mark.asyncio
async def test_streams_text_and_reports_usage():
    llm = ScriptedLLM([[AIMessageChunk(content="Hello "), AIMessageChunk(content="there", usage_metadata=_usage(42))]])

    events = [e async for e in FakeChatbot(llm).stream_with_tools("system", [HumanMessage(content="hi")], tools=[])]

    assert [e.kind for e in events] == [ModelEventKind.TEXT, ModelEventKind.TEXT, ModelEventKind.USAGE]
    assert "".join(e.text for e in events) == "Hello there"
    assert events[-1].total_tokens == 42
    assert llm.bound_tools is None


@pytest.mark.asyncio
async def test_tool_calls_run_and_feed_results_back():
    tool_call = AIMessageChunk(
        content="",
        tool_call_chunks=[
            {"name": "lookupTransaction", "args": '{"reference": "ref_1"}', "id": "call-1", "index": 0},
            {"name": "brokenTool", "args": '{"reference": "ref_2"}', "id": "call-2", "index": 1},
        ],
        usage_metadata=_usage(100),
    )
    llm = ScriptedLLM([[tool_call], [AIMessageChunk(content="Done", usage_metadata=_usage(50))]])

    events = [
        e
        async for e in FakeChatbot(llm).stream_with_tools(
            "system", [HumanMessage(content="check ref_1")], tools=[lookup_transaction, broken_tool], tool_context={"status": "success"}
        )
    ]

    kinds = [e.kind for e in events]
    assert kinds == [
        ModelEventKind.USAGE,
        ModelEventKind.TOOL_CALL,
        ModelEventKind.TOOL_CALL,
        ModelEventKind.TOOL_RESULT,
        ModelEventKind.TOOL_RESULT,
        ModelEventKind.TEXT,
        ModelEventKind.USAGE,
    ]
    ok, failed = events[3], events[4]
    assert ok.data == {"reference": "ref_1", "status": "success"}
    assert not ok.is_error
    assert failed.is_error
    assert failed.data == {"error": "backend down"}
    assert [e.total_tokens for e in events if e.kind is ModelEventKind.USAGE] == [100, 50]
    assert [t["function"]["name"] for t in llm.bound_tools] == ["lookupTransaction", "brokenTool"]
    second_call = llm.calls[1]
    tool_messages = [m for m in second_call if isinstance(m, ToolMessage)]
    assert [m.tool_call_id for m in tool_messages] == ["call-1", "call-2"]


@pytest.mark.asyncio
async def test_stops_after_max_steps():
    def call(i: int) -> list[AIMessageChunk]:
        return [AIMessageChunk(content="", tool_call_chunks=[{"name": "lookupTransaction", "args": '{"reference": "r"}', "id": f"c{i}", "index": 0}])]

    llm = ScriptedLLM([call(i) for i in range(3)])

    events = [e async for e in FakeChatbot(llm).stream_with_tools("system", [], tools=[lookup_transaction], tool_context={"status": "x"}, max_steps=2)]

    assert len(llm.calls) == 2
    assert [e.kind for e in events].count(ModelEventKind.USAGE) == 2


def test_content_text_handles_block_lists():
    assert content_text("plain") == "plain"
    assert content_text([{"type": "text", "text": "a"}, {"type": "tool_use", "id": "x"}, "b"]) == "ab"
    assert content_text(None) == ""


@pytest.mark.asyncio
async def test_usage_of_completed_steps_is_reported_when_a_later_step_fails():
    tool_call = AIMessageChunk(
        content="Let me check. ",
        tool_call_chunks=[{"name": "lookupTransaction", "args": '{"reference": "ref_1"}', "id": "call-1", "index": 0}],
        usage_metadata=_usage(100),
    )
    llm = ScriptedLLM([[tool_call], RuntimeError("throttled")])
    events = []

    with pytest.raises(RuntimeError, match="throttled"):
        async for event in FakeChatbot(llm).stream_with_tools("system", [], tools=[lookup_transaction], tool_context={"status": "success"}):
            events.append(event)

    assert [e.kind for e in events] == [ModelEventKind.TEXT, ModelEventKind.USAGE, ModelEventKind.TOOL_CALL, ModelEventKind.TOOL_RESULT]
    assert events[1].total_tokens == 100
