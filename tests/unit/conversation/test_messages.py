from copilot.common.models import Role
from copilot.conversation import ChatMode, Conversation, PageContext
from copilot.conversation.messages import MESSAGE_PARTS_ADAPTER, Message, TextPart, ToolCallPart, ToolResultPart


def test_parts_are_parsed_by_type():
    parts = MESSAGE_PARTS_ADAPTER.validate_python(
        [
            {"type": "tool-call", "tool_call_id": "c1", "tool_name": "getRefunds", "input": {"status": "pending"}},
            {"type": "tool-result", "tool_call_id": "c1", "tool_name": "getRefunds", "output": {"refunds": []}},
            {"type": "text", "text": "No pending refunds."},
        ]
    )

    assert [type(p) for p in parts] == [ToolCallPart, ToolResultPart, TextPart]
    assert parts[1].is_error is False


def test_text_joins_only_text_parts():
    message = Message(
        conversation_id="conv-1",
        role=Role.ASSISTANT,
        parts=[TextPart(text="Checking. "), ToolCallPart(tool_call_id="c1", tool_name="getPayouts"), TextPart(text="Done.")],
    )

    assert message.text == "Checking. Done."


def test_render_flattens_tool_activity_and_truncates_large_outputs():
    message = Message(
        conversation_id="conv-1",
        role=Role.ASSISTANT,
        parts=[
            ToolCallPart(tool_call_id="c1", tool_name="getTransactions", input={"status": "failed"}),
            ToolResultPart(tool_call_id="c1", tool_name="getTransactions", output="x" * 50, is_error=True),
            TextPart(text="The call failed."),
        ],
    )

    rendered = message.render(max_tool_output_chars=10).splitlines()

    assert rendered[0] == '[called getTransactions with {"status": "failed"}]'
    assert rendered[1] == '[getTransactions error: "xxxxxxxxx…]'
    assert rendered[2] == "The call failed."


def test_conversation_never_keeps_the_page_snapshot():
    context = PageContext.model_validate({"type": "refund", "resourceId": "rf_1", "resourceData": {"amount": 100}})
    conversation = Conversation(id="conv-1", user_id="user-1", mode=ChatMode.PAGE, page_context=context)

    assert context.resource_data == {"amount": 100}
    assert conversation.page_context.resource_data is None
    assert conversation.page_context.same_resource(context)
    assert conversation.model_dump(mode="json")["page_context"] == {"type": "refund", "resource_id": "rf_1"}
