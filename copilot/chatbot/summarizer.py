from langchain_core.messages import HumanMessage, SystemMessage
from loguru import logger

from copilot.chatbot import BaseChatbot
from copilot.chatbot.prompts import CONVERSATION_TITLE_GENERATION_PROMPT, SUMMARIZER_SYSTEM_PROMPT, get_summarizer_user_prompt
from copilot.common.exceptions import UpstreamException
from copilot.conversation.messages import Message

MAX_TITLE_LENGTH = 80


def render_transcript(messages: list[Message]) -> str:
    return "\n\n".join(f"{m.role.value}: {m.render()}" for m in messages)


class ConversationSummarizer:
    """Folds a batch of messages and the previous rolling summary into a new summary."""

    def __init__(self, chatbot: BaseChatbot):
        self.chatbot = chatbot

    async def summarize(self, messages: list[Message], previous_summary: str | None = None) -> str:
        prompt = [
            SystemMessage(content=SUMMARIZER_SYSTEM_PROMPT),
            HumanMessage(content=get_summarizer_user_prompt(render_transcript(messages), previous_summary)),
        ]
        summary = (await self.chatbot.get_text_response_async(prompt)).strip()
        if not summary:
            raise UpstreamException("Summarizer returned an empty summary")
        return summary


class TitleGenerator:
    def __init__(self, chatbot: BaseChatbot, default_title: str):
        self.chatbot = chatbot
        self.default_title = default_title

    async def generate(self, first_message: str) -> str:
        """Never raises; any failure falls back to the default title."""
        try:
            prompt = [SystemMessage(content=CONVERSATION_TITLE_GENERATION_PROMPT), HumanMessage(content=first_message)]
            title = (await self.chatbot.get_text_response_async(prompt)).strip().strip("\"'")
        except Exception:
            logger.exception("Title generation failed, keeping the default title")
            return self.default_title
        return title[:MAX_TITLE_LENGTH] if title else self.default_title
