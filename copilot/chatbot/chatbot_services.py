import asyncio
import json
from datetime import timedelta
from typing import AsyncGenerator, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from loguru import logger

from copilot.chatbot import BaseChatbot
from copilot.chatbot.chatbot_models import AgentStreamResponse, ChatRequest, ChatStreamFinalResponse, ChatTurn, ModelEventKind
from copilot.chatbot.classifier import ClassificationGate
from copilot.chatbot.context_builder import ContextBuilder
from copilot.chatbot.entitlement import EntitlementGate
from copilot.chatbot.prompts import CHAT_AGENT_SYSTEM_PROMPT, PAGE_CONTEXT_PROMPT, RESOURCE_DATA_PROMPT
from copilot.chatbot.summarization import SummarizationEngine
from copilot.chatbot.summarizer import TitleGenerator
from copilot.chatbot.tools import DashboardGateway, ToolContext, get_tools
from copilot.common.exceptions import ErrorCodes, NotFoundException, ValidationException
from copilot.common.models import AuthenticatedUser, Role, StreamStep
from copilot.common.policy import ChatPolicy
from copilot.common.utils import utcnow
from copilot.conversation import ChatMode, Conversation
from copilot.conversation.conversation_repositories import ConversationRepository
from copilot.conversation.messages import Message, MessagePart, TextPart, ToolCallPart, ToolResultPart
from copilot.conversation.messages.message_repositories import MessageRepository

# Generation tasks outlive a disconnected client; hold a reference until they finish.
_background_tasks: set[asyncio.Task] = set()


def to_langchain_messages(messages: list[Message]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        text = message.render()
        if message.role is Role.ASSISTANT:
            converted.append(AIMessage(content=text))
        elif message.role is Role.SYSTEM:
            converted.append(HumanMessage(content=f"[system] {text}"))
        else:
            converted.append(HumanMessage(content=text))
    # Chat APIs expect the first turn to come from the user; a leading summary is an assistant turn.
    if converted and isinstance(converted[0], AIMessage):
        converted.insert(0, HumanMessage(content="Let's continue our conversation."))
    return converted


def build_system_prompt(request: ChatRequest) -> str:
    prompt = CHAT_AGENT_SYSTEM_PROMPT
    if request.mode is ChatMode.PAGE and request.page_context:
        resource_type = request.page_context.type.value
        prompt += PAGE_CONTEXT_PROMPT.format(resource_type=resource_type, resource_id=request.page_context.resource_id)
        if request.resource_data:
            prompt += RESOURCE_DATA_PROMPT.format(resource_type=resource_type, resource_data=json.dumps(request.resource_data, indent=2, default=str))
    return prompt


class ChatbotService:
    """
    Runs one chat turn: entitlement, classification, generation, persistence and summarization.

    `prepare_turn` does everything that may still fail as a plain HTTP error. `stream_turn` yields
    server-sent events; from there on failures are reported as `error` events.
    """

    def __init__(
        self,
        chatbot: BaseChatbot,
        conversation_repository: ConversationRepository,
        message_repository: MessageRepository,
        entitlement_gate: EntitlementGate,
        classification_gate: ClassificationGate,
        context_builder: ContextBuilder,
        summarization_engine: SummarizationEngine,
        title_generator: TitleGenerator,
        gateway: DashboardGateway,
        policy: ChatPolicy,
    ) -> None:
        self.chatbot = chatbot
        self.conversation_repository = conversation_repository
        self.message_repository = message_repository
        self.entitlement_gate = entitlement_gate
        self.classification_gate = classification_gate
        self.context_builder = context_builder
        self.summarization_engine = summarization_engine
        self.title_generator = title_generator
        self.gateway = gateway
        self.policy = policy

    @staticmethod
    def validate_mode(conversation: Conversation, request: ChatRequest) -> None:
        """A conversation keeps the mode and page context it was created with."""
        if conversation.mode is ChatMode.PAGE and request.mode is ChatMode.GLOBAL:
            raise ValidationException("A page-scoped conversation cannot be continued in global mode", code=ErrorCodes.CONVERSATION_MODE_LOCKED)
        if conversation.mode is ChatMode.GLOBAL and request.mode is ChatMode.PAGE:
            raise ValidationException("A global conversation cannot be switched to page mode", code=ErrorCodes.CONVERSATION_MODE_LOCKED)
        if conversation.page_context and request.page_context and not conversation.page_context.same_resource(request.page_context):
            raise ValidationException(
                "The page context does not match the resource this conversation was started on",
                code=ErrorCodes.CONTEXT_MISMATCH,
                data={"expected": conversation.page_context.model_dump(mode="json"), "received": request.page_context.model_dump(mode="json")},
            )

    async def prepare_turn(self, user: AuthenticatedUser, request: ChatRequest) -> ChatTurn:
        with logger.contextualize(user_id=user.id, conversation_id=request.conversation_id):
            conversation = await self.conversation_repository.find_by_id(request.conversation_id)
            if conversation is not None:
                if conversation.user_id != user.id:
                    raise NotFoundException(f"Conversation with ID: {request.conversation_id} was not found!", code=ErrorCodes.CONVERSATION_NOT_FOUND)
                if conversation.is_closed:
                    logger.info("Conversation is closed, skipping the turn")
                    return ChatTurn(user=user, request=request, conversation=conversation)
                self.validate_mode(conversation, request)
                await self.entitlement_gate.check(user.id)
                return ChatTurn(user=user, request=request, conversation=conversation)

            await self.entitlement_gate.check(user.id)
            now = utcnow()
            conversation = await self.conversation_repository.create(
                Conversation(
                    id=request.conversation_id,
                    user_id=user.id,
                    title=self.policy.default_title,
                    mode=request.mode,
                    page_context=request.page_context,
                    created_at=now,
                    last_activity_at=now,
                    expires_at=now + timedelta(days=self.policy.conversation_retention_days),
                )
            )
            logger.info(f"Created {conversation.mode.value} conversation")
            return ChatTurn(user=user, request=request, conversation=conversation, is_new=True)

    async def stream_turn(self, turn: ChatTurn) -> AsyncGenerator[str, None]:
        conversation = turn.conversation
        log = logger.bind(user_id=turn.user.id, conversation_id=conversation.id)

        if conversation.is_closed:
            yield AgentStreamResponse(content=self.policy.closed_conversation_text, step=StreamStep.CLOSED).stream_response()
            yield self._end_event(ChatStreamFinalResponse(conversation_id=conversation.id, title=conversation.title))
            return

        title_task: Optional[asyncio.Task] = None
        if turn.is_new:
            title_task = self._spawn(self._generate_title(conversation.id, turn.request.message_text))

        try:
            user_message = turn.request.to_message()
            context = await self.context_builder.build(conversation, user_message)
            decision = await self.classification_gate.evaluate(context, conversation.page_context)

            if decision.refused:
                refusal = Message.text_message(conversation.id, Role.ASSISTANT, decision.refusal_text)
                await self.message_repository.create_messages([user_message, refusal])
                conversation = await self.conversation_repository.touch_activity(conversation.id, self.policy.conversation_retention_days)
                yield AgentStreamResponse(content=decision.refusal_text, step=StreamStep.REFUSAL).stream_response()
                yield self._end_event(
                    ChatStreamFinalResponse(
                        conversation_id=conversation.id,
                        title=self._current_title(conversation, title_task),
                        user_message_id=user_message.id,
                        assistant_message_id=refusal.id,
                        intent=decision.classification.intent,
                    )
                )
                return

            # Persisted before generation so the user turn survives a failed stream.
            await self.message_repository.create_messages([user_message])
            conversation = await self.conversation_repository.touch_activity(conversation.id, self.policy.conversation_retention_days)

            queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
            driver = self._spawn(self._drive_generation(turn, conversation, context, user_message, decision.classification.intent, queue, title_task))
            try:
                while True:
                    event = await queue.get()
                    if event is None:
                        break
                    yield event
            finally:
                await asyncio.shield(driver)
        except Exception as e:
            log.exception("Chat turn failed")
            yield AgentStreamResponse(content=json.dumps({"code": ErrorCodes.UPSTREAM_ERROR, "message": str(e)}), step=StreamStep.ERROR).stream_response()
        finally:
            if title_task is not None:
                await asyncio.shield(title_task)

    async def _drive_generation(self, turn, conversation, context, user_message, intent, queue, title_task) -> None:
        """Consumes the model stream, forwards it to the queue, persists the reply and summarizes."""
        with logger.contextualize(user_id=turn.user.id, conversation_id=conversation.id):
            parts: list[MessagePart] = []
            text_buffer: list[str] = []
            total_tokens = 0
            failure: Optional[Exception] = None
            assistant_message: Optional[Message] = None

            def flush_text() -> None:
                if text_buffer:
                    parts.append(TextPart(text="".join(text_buffer)))
                    text_buffer.clear()

            try:
                try:
                    async for event in self.chatbot.stream_with_tools(
                        system_prompt=build_system_prompt(turn.request),
                        messages=to_langchain_messages(context),
                        tools=get_tools(conversation.mode, conversation.page_context),
                        tool_context=ToolContext(gateway=self.gateway, bearer_token=turn.user.bearer_token),
                        max_steps=self.policy.max_tool_steps,
                    ):
                        if event.kind is ModelEventKind.TEXT:
                            text_buffer.append(event.text)
                            await queue.put(AgentStreamResponse(content=event.text, step=StreamStep.FINAL_RESPONSE).stream_response())
                        elif event.kind is ModelEventKind.TOOL_CALL:
                            flush_text()
                            parts.append(ToolCallPart(tool_call_id=event.tool_call_id, tool_name=event.tool_name, input=event.data or {}))
                            payload = {"tool_call_id": event.tool_call_id, "tool_name": event.tool_name, "input": event.data}
                            await queue.put(AgentStreamResponse(content=json.dumps(payload, default=str), step=StreamStep.TOOL_CALL).stream_response())
                        elif event.kind is ModelEventKind.TOOL_RESULT:
                            parts.append(ToolResultPart(tool_call_id=event.tool_call_id, tool_name=event.tool_name, output=event.data, is_error=event.is_error))
                            payload = {"tool_call_id": event.tool_call_id, "tool_name": event.tool_name, "is_error": event.is_error}
                            await queue.put(AgentStreamResponse(content=json.dumps(payload), step=StreamStep.TOOL_RESULT).stream_response())
                        elif event.kind is ModelEventKind.USAGE:
                            total_tokens += event.total_tokens
                except Exception as e:
                    logger.exception("Generation failed, keeping partial output")
                    failure = e
                flush_text()

                if parts:
                    try:
                        (assistant_message,) = await self.message_repository.create_messages(
                            [Message(conversation_id=conversation.id, role=Role.ASSISTANT, parts=parts)]
                        )
                        conversation = await self.conversation_repository.touch_activity(conversation.id, self.policy.conversation_retention_days)
                    except Exception:
                        logger.exception("Could not persist the assistant message")
                        assistant_message = None

                if failure is not None:
                    error = {"code": ErrorCodes.UPSTREAM_ERROR, "message": str(failure)}
                    await queue.put(AgentStreamResponse(content=json.dumps(error), step=StreamStep.ERROR).stream_response())
                await queue.put(
                    self._end_event(
                        ChatStreamFinalResponse(
                            conversation_id=conversation.id,
                            title=self._current_title(conversation, title_task),
                            user_message_id=user_message.id,
                            assistant_message_id=assistant_message.id if assistant_message else None,
                            intent=intent,
                            total_tokens=total_tokens,
                        )
                    )
                )
            finally:
                # Unblocks the stream reader on every path.
                await queue.put(None)

            if assistant_message is not None:
                await self.summarization_engine.maybe_summarize(conversation, total_tokens)

    async def _generate_title(self, conversation_id: str, first_message: str) -> str:
        title = await self.title_generator.generate(first_message)
        if title == self.policy.default_title:
            return title
        try:
            await self.conversation_repository.save(conversation_id, title=title)
        except Exception:
            logger.exception(f"Could not store generated title for conversation {conversation_id}")
        return title

    @staticmethod
    def _spawn(coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return task

    @staticmethod
    def _current_title(conversation: Conversation, title_task: Optional[asyncio.Task]) -> str:
        if title_task is not None and title_task.done() and not title_task.cancelled() and title_task.exception() is None:
            return title_task.result()
        return conversation.title

    @staticmethod
    def _end_event(response: ChatStreamFinalResponse) -> str:
        return AgentStreamResponse(content=response.model_dump_json(), step=StreamStep.END).stream_response()
