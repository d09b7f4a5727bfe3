"""Streaming client for Copilot Studio published agents."""

import json
from collections.abc import AsyncIterator
from typing import Any, Dict, Optional
from urllib.parse import quote, urlsplit, urlunsplit

import httpx

from agent_relay.auth.carrier import TokenCarrier
from agent_relay.config import Settings
from agent_relay.core.logging import get_logger
from agent_relay.providers.cloud import environment_host
from agent_relay.providers.transport import PassThroughTokenTransport
from agent_relay.streaming.sse import parse_sse_events

logger = get_logger(__name__)

API_VERSION = "2022-03-01-preview"
USER_AGENT = "agent-relay/0.1.0"

_EVENT_ACTIVITY = "activity"
_EVENT_END = "end"


class AgentServiceError(Exception):
    """The agent service answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def build_connection_url(settings: Settings) -> str:
    """Return the agent base URL that ``/conversations`` is appended to."""
    if settings.direct_connect_url:
        parts = urlsplit(settings.direct_connect_url.strip())
        path = parts.path.rstrip("/")
        if path.endswith("/conversations"):
            path = path[: -len("/conversations")]
        return urlunsplit((parts.scheme, parts.netloc, path, "", ""))

    host = environment_host(settings.cloud, settings.environment_id)
    segment = "dataverse-backed" if settings.agent_type == "published" else "prebuilt"
    return f"https://{host}/copilotstudio/{segment}/authenticated/bots/{settings.schema_name}"


class CopilotStudioClient:
    """Starts conversations and relays questions to one agent.

    Outbound requests go through ``PassThroughTokenTransport``, so they carry
    whatever token the current request put on the carrier. Activities are
    yielded as raw dicts (or None for null entries) in stream order.
    """

    def __init__(
        self,
        base_url: str,
        carrier: TokenCarrier,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._carrier = carrier
        self._inner_transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        carrier: TokenCarrier,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CopilotStudioClient":
        return cls(
            base_url=build_connection_url(settings),
            carrier=carrier,
            timeout=settings.agent_timeout_seconds,
            transport=transport,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=PassThroughTokenTransport(self._carrier, self._inner_transport),
                headers={"Accept": "text/event-stream", "User-Agent": USER_AGENT},
            )
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def start_conversation(
        self, emit_start_conversation_event: bool = True
    ) -> AsyncIterator[Optional[Dict[str, Any]]]:
        """Start a new conversation and stream the agent's opening activities."""
        payload = {"emitStartConversationEvent": emit_start_conversation_event}
        return self._stream_activities("/conversations", payload)

    def ask_question(
        self, text: str, conversation_id: str
    ) -> AsyncIterator[Optional[Dict[str, Any]]]:
        """Send a user message and stream the agent's reply activities."""
        payload = {
            "activity": {
                "type": "message",
                "text": text,
                "conversation": {"id": conversation_id},
            }
        }
        path = f"/conversations/{quote(conversation_id, safe='')}"
        return self._stream_activities(path, payload)

    async def _stream_activities(
        self, path: str, payload: Dict[str, Any]
    ) -> AsyncIterator[Optional[Dict[str, Any]]]:
        async with self.client.stream(
            "POST",
            path,
            params={"api-version": API_VERSION},
            json=payload,
        ) as response:
            if response.is_error:
                await response.aread()
                logger.warning(
                    "Agent service returned an error",
                    data={"status_code": response.status_code, "path": path},
                )
                raise AgentServiceError(
                    f"Agent service returned HTTP {response.status_code} {response.reason_phrase}".strip(),
                    status_code=response.status_code,
                )

            async for event in parse_sse_events(response.aiter_lines()):
                if event.event == _EVENT_END:
                    break
                if event.event != _EVENT_ACTIVITY:
                    continue

                try:
                    activity = json.loads(event.data)
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed activity from agent service")
                    continue

                yield activity if isinstance(activity, dict) else None
