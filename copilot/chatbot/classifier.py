from langchain_core.messages import HumanMessage, SystemMessage
from loguru import logger

from copilot.chatbot import BaseChatbot
from copilot.chatbot.chatbot_models import Classification, GateDecision
from copilot.chatbot.prompts import CLASSIFIER_PAGE_CONTEXT_PROMPT, CLASSIFIER_SYSTEM_PROMPT, get_classifier_user_prompt
from copilot.common.models import MessageIntent, Role
from copilot.common.policy import ChatPolicy
from copilot.conversation import PageContext
from copilot.conversation.messages import Message

CLASSIFIER_MAX_MESSAGES = 15


def build_classifier_conversation(messages: list[Message], max_messages: int = CLASSIFIER_MAX_MESSAGES) -> tuple[str, str]:
    """
    Most-recent-first transcript of the trimmed history and the latest user message text.
    """
    recent = list(reversed(messages[-max_messages:]))
    conversation = "\n".join(f"{m.role.value}: {m.render()}".strip() for m in recent)
    latest_user = next((m for m in recent if m.role is Role.USER), None)
    return conversation, latest_user.text if latest_user else ""


class IntentClassifier:
    """LLM router that assigns an intent and a confidence to the latest user turn."""

    def __init__(self, chatbot: BaseChatbot):
        self.chatbot = chatbot

    async def classify(self, history: list[Message], page_context: PageContext | None = None) -> Classification:
        conversation, latest_user_message = build_classifier_conversation(history)
        system_prompt = CLASSIFIER_SYSTEM_PROMPT
        if page_context:
            system_prompt += "\n\n" + CLASSIFIER_PAGE_CONTEXT_PROMPT.format(resource_type=page_context.type.value, resource_id=page_context.resource_id)
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=get_classifier_user_prompt(conversation, latest_user_message))]
        return await self.chatbot.get_structured_response_async(messages, Classification)


class ClassificationGate:
    """
    Applies the scope policy to a classification.

    Refusal intents short-circuit the turn only when the classifier is confident; anything else lets
    generation proceed. The classifier never fails the turn: errors become OUT_OF_SCOPE with confidence 0.
    """

    def __init__(self, classifier: IntentClassifier, policy: ChatPolicy):
        self.classifier = classifier
        self.policy = policy

    async def classify(self, history: list[Message], page_context: PageContext | None = None) -> Classification:
        try:
            classification = await self.classifier.classify(history, page_context)
        except Exception:
            logger.exception("Intent classification failed, treating as out of scope")
            return Classification(intent=MessageIntent.OUT_OF_SCOPE, confidence=0.0)

        if not classification.intent.is_refusal and classification.intent not in self.policy.allowed_intents:
            logger.info(f"Intent {classification.intent.value} is not allowed by policy, treating as out of scope")
            return Classification(intent=MessageIntent.OUT_OF_SCOPE, confidence=classification.confidence)
        if classification.intent is MessageIntent.OUT_OF_PAGE_SCOPE and page_context is None:
            return Classification(intent=MessageIntent.OUT_OF_SCOPE, confidence=classification.confidence)
        return classification

    def decide(self, classification: Classification, page_context: PageContext | None = None) -> GateDecision:
        if not classification.intent.is_refusal or classification.confidence < self.policy.low_confidence_threshold:
            if classification.intent.is_refusal:
                logger.info(f"Low confidence {classification.intent.value} ({classification.confidence:.2f}), letting the model answer")
            return GateDecision(classification=classification)

        if classification.intent is MessageIntent.OUT_OF_PAGE_SCOPE and page_context is not None:
            refusal_text = self.policy.page_refusal_text(page_context.type.value)
        else:
            refusal_text = self.policy.refusal_text
        logger.info(f"Refusing turn as {classification.intent.value} ({classification.confidence:.2f})")
        return GateDecision(classification=classification, refusal_text=refusal_text)

    async def evaluate(self, history: list[Message], page_context: PageContext | None = None) -> GateDecision:
        classification = await self.classify(history, page_context)
        return self.decide(classification, page_context)
