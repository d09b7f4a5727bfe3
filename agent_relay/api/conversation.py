"""Conversation relay endpoints.

Routing is anonymous; each handler enforces the bearer token itself and
exchanges it before anything reaches the agent service. A turn is cancelled
when the caller disconnects before it completes.
"""

import json
from typing import Any

from fastapi import APIRouter, Depends, Request

from agent_relay.auth.dependencies import require_bearer_token
from agent_relay.core.envelope import EnvelopeResponse, success_response
from agent_relay.core.logging import get_logger
from agent_relay.services.conversation_service import ConversationService

logger = get_logger(__name__)
router = APIRouter(tags=["conversation"])


def get_conversation_service(request: Request) -> ConversationService:
    return request.app.state.conversation_service


async def _read_json_body(request: Request) -> Any:
    """Decode the request body, or None when it is empty or not JSON."""
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Request body is not valid JSON")
        return None


@router.post("/StartConversation")
async def start_conversation(
    request: Request,
    inbound_token: str = Depends(require_bearer_token),
    service: ConversationService = Depends(get_conversation_service),
) -> EnvelopeResponse:
    """Start a new conversation with the agent."""
    logger.info("Starting new conversation with agent")
    result = await service.start_conversation(inbound_token, request.is_disconnected)
    return success_response("Conversation started successfully", result)


@router.post("/SendMessage")
async def send_message(
    request: Request,
    inbound_token: str = Depends(require_bearer_token),
    service: ConversationService = Depends(get_conversation_service),
) -> EnvelopeResponse:
    """Relay a user message within an existing conversation."""
    logger.info("Processing message request")
    payload = await _read_json_body(request)
    result = await service.send_message(inbound_token, payload, request.is_disconnected)
    return success_response("Message processed successfully", result)
