"""Business logic behind the HTTP handlers."""

from agent_relay.services.conversation_service import ConversationService

__all__ = ["ConversationService"]
