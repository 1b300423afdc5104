from copilot.common.controller import BaseController


def get_controllers() -> list[type[BaseController]]:
    from copilot.chatbot.chatbot_controller import ChatbotController
    from copilot.conversation.conversation_controller import ConversationController
    from copilot.conversation.messages.message_controller import MessageController

    return [ChatbotController, ConversationController, MessageController]
