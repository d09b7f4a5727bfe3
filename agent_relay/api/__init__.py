"""API routers."""

from agent_relay.api.conversation import router as conversation_router
from agent_relay.api.health import router as health_router

__all__ = [
    "conversation_router",
    "health_router",
]
