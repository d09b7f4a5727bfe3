"""Conversation relay service.

Drives one conversational turn per call: exchange the caller's token, carry
the exchanged token while the agent client streams activities, and normalize
what comes back. Turns are all-or-nothing: if the stream fails part way, the
activities collected so far are dropped.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from agent_relay.auth.carrier import TokenCarrier
from agent_relay.auth.token_exchange import TokenExchangeService
from agent_relay.core.exceptions import (
    AuthExchangeFailedError,
    ClientDisconnectedError,
    RelayError,
    UpstreamFailureError,
    ValidationFailedError,
)
from agent_relay.core.logging import get_logger
from agent_relay.models import (
    ActivityInfo,
    ConversationResponse,
    MessageResponse,
    SendMessageRequest,
    SuggestedActionInfo,
)
from agent_relay.providers.copilot_studio import CopilotStudioClient

logger = get_logger(__name__)

MESSAGE_ACTIVITY_TYPE = "message"
MISSING_FIELDS_MESSAGE = "Message and ConversationId are required"
INVALID_ACTIVITY_MESSAGE = "Agent service returned an invalid activity"

ActivityStream = AsyncIterator[Optional[Dict[str, Any]]]
DisconnectCheck = Callable[[], Awaitable[bool]]


def map_activity(activity: Dict[str, Any]) -> ActivityInfo:
    """Reduce a raw activity to type, text, format and suggested actions."""
    suggested = activity.get("suggestedActions")
    actions = suggested.get("actions") if isinstance(suggested, dict) else None

    suggested_actions = None
    if isinstance(actions, list):
        suggested_actions = [
            SuggestedActionInfo(text=action.get("text"), value=action.get("value"))
            for action in actions
            if isinstance(action, dict)
        ]

    return ActivityInfo(
        type=activity.get("type"),
        text=activity.get("text"),
        text_format=activity.get("textFormat"),
        suggested_actions=suggested_actions,
    )


def conversation_id_of(activity: Dict[str, Any]) -> Optional[str]:
    conversation = activity.get("conversation")
    if isinstance(conversation, dict):
        return conversation.get("id") or None
    return None


class ConversationService:
    """Relays conversation turns to the agent service on the caller's behalf."""

    def __init__(
        self,
        agent_client: CopilotStudioClient,
        token_exchanger: TokenExchangeService,
        carrier: TokenCarrier,
        turn_timeout_seconds: Optional[float] = None,
        disconnect_poll_seconds: float = 0.5,
    ):
        self.agent_client = agent_client
        self.token_exchanger = token_exchanger
        self.carrier = carrier
        self.turn_timeout_seconds = turn_timeout_seconds
        self.disconnect_poll_seconds = disconnect_poll_seconds

    async def _exchange(self, inbound_token: str) -> str:
        exchanged = await self.token_exchanger.exchange_token(inbound_token)
        if not exchanged:
            logger.warning("Token exchange failed or returned no token")
            raise AuthExchangeFailedError()
        return exchanged

    async def _drain(self, stream: ActivityStream) -> List[Dict[str, Any]]:
        """Consume the whole stream in order, skipping null activities."""
        activities: List[Dict[str, Any]] = []
        async with aclosing(stream):
            async with asyncio.timeout(self.turn_timeout_seconds):
                async for activity in stream:
                    if activity is not None:
                        activities.append(activity)
        return activities

    async def _wait_for_disconnect(self, is_disconnected: DisconnectCheck) -> None:
        while not await is_disconnected():
            await asyncio.sleep(self.disconnect_poll_seconds)

    async def _drain_while_connected(
        self,
        stream: ActivityStream,
        is_disconnected: Optional[DisconnectCheck],
    ) -> List[Dict[str, Any]]:
        """Drain ``stream``, cancelling it as soon as the caller disconnects."""
        if is_disconnected is None:
            return await self._drain(stream)

        drain = asyncio.create_task(self._drain(stream))
        watcher = asyncio.create_task(self._wait_for_disconnect(is_disconnected))
        try:
            await asyncio.wait({drain, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            if not drain.done():
                drain.cancel()
            await asyncio.gather(drain, watcher, return_exceptions=True)

        if drain.cancelled():
            if not watcher.cancelled() and watcher.exception() is not None:
                raise watcher.exception()
            logger.info("Client disconnected; agent turn cancelled")
            raise ClientDisconnectedError()
        return drain.result()

    async def _run_turn(
        self,
        open_stream: Callable[[], ActivityStream],
        failure_message: str,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> List[Dict[str, Any]]:
        try:
            return await self._drain_while_connected(open_stream(), is_disconnected)
        except RelayError:
            raise
        except TimeoutError as exc:
            if self.turn_timeout_seconds is None:
                raise UpstreamFailureError(failure_message, str(exc) or "Timed out") from exc
            logger.error(
                failure_message,
                data={"timeout_seconds": self.turn_timeout_seconds},
            )
            raise UpstreamFailureError(
                failure_message,
                f"Agent service did not complete the turn within {self.turn_timeout_seconds:g} seconds",
            ) from exc
        except Exception as exc:
            logger.error(
                failure_message,
                data={"error_type": type(exc).__name__},
                exc_info=True,
            )
            raise UpstreamFailureError(failure_message, str(exc) or type(exc).__name__) from exc

    def _map_activities(
        self, raw: List[Dict[str, Any]], failure_message: str
    ) -> List[ActivityInfo]:
        try:
            return [map_activity(activity) for activity in raw]
        except Exception as exc:
            logger.error(
                failure_message,
                data={"error_type": type(exc).__name__, "reason": INVALID_ACTIVITY_MESSAGE},
            )
            raise UpstreamFailureError(failure_message, INVALID_ACTIVITY_MESSAGE) from exc

    async def start_conversation(
        self,
        inbound_token: str,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> ConversationResponse:
        """Start a conversation; the id comes from the first activity carrying one.

        ``is_disconnected`` is polled while the turn streams; when it reports
        True the downstream call is cancelled.
        """
        exchanged = await self._exchange(inbound_token)

        with self.carrier.scope(exchanged):
            failure_message = "Error starting conversation"
            raw = await self._run_turn(
                lambda: self.agent_client.start_conversation(emit_start_conversation_event=True),
                failure_message,
                is_disconnected,
            )
            activities = self._map_activities(raw, failure_message)

        conversation_id = next(
            (cid for cid in (conversation_id_of(activity) for activity in raw) if cid),
            None,
        )
        logger.info(
            "Conversation started",
            data={"conversation_id": conversation_id, "activity_count": len(activities)},
        )
        return ConversationResponse(conversation_id=conversation_id, activities=activities)

    def _parse_send_message(self, payload: Any) -> SendMessageRequest:
        if not isinstance(payload, dict):
            raise ValidationFailedError(MISSING_FIELDS_MESSAGE)
        try:
            request = SendMessageRequest.model_validate(payload)
        except ValidationError as exc:
            raise ValidationFailedError(MISSING_FIELDS_MESSAGE) from exc
        if not request.message or not request.conversation_id:
            raise ValidationFailedError(MISSING_FIELDS_MESSAGE)
        return request

    async def send_message(
        self,
        inbound_token: str,
        payload: Any,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> MessageResponse:
        """Relay one user message and return the agent's reply activities.

        ``payload`` is the decoded JSON body (None when it could not be
        decoded). With ``onlyReturnMessages`` only ``message`` activities are
        returned, in their original order.
        """
        exchanged = await self._exchange(inbound_token)

        with self.carrier.scope(exchanged):
            request = self._parse_send_message(payload)

            failure_message = "Error processing message"
            raw = await self._run_turn(
                lambda: self.agent_client.ask_question(request.message, request.conversation_id),
                failure_message,
                is_disconnected,
            )
            if request.only_return_messages:
                raw = [activity for activity in raw if activity.get("type") == MESSAGE_ACTIVITY_TYPE]
            activities = self._map_activities(raw, failure_message)

        logger.info(
            "Message processed",
            data={
                "conversation_id": request.conversation_id,
                "activity_count": len(activities),
                "only_return_messages": request.only_return_messages,
            },
        )
        return MessageResponse(activities=activities)
