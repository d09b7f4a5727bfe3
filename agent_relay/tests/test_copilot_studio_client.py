"""Tests for the Copilot Studio client and its connection settings."""

import httpx
import pytest

from agent_relay.auth import TokenCarrier
from agent_relay.providers.cloud import environment_host, scope_from_cloud
from agent_relay.providers.copilot_studio import (
    AgentServiceError,
    CopilotStudioClient,
    build_connection_url,
)

from agent_relay.conftest import AGENT_BASE_URL, SSE_END, sse_activity


async def collect(stream):
    return [activity async for activity in stream]


class TestCloudEndpoints:
    def test_prod_environment_host(self):
        host = environment_host("prod", "0F1E2D3C-4B5A-6978-8796-A5B4C3D2E1F0")

        assert host == "0f1e2d3c4b5a69788796a5b4c3d2e1.f0.environment.api.powerplatform.com"

    def test_gov_environment_host_uses_single_char_suffix(self):
        host = environment_host("gov", "abc-def")

        assert host == "abcde.f.environment.api.gov.powerplatform.microsoft.us"

    def test_unknown_cloud_rejected(self):
        with pytest.raises(ValueError, match="Unknown"):
            environment_host("moon", "abcdef")

    def test_short_environment_id_rejected(self):
        with pytest.raises(ValueError):
            environment_host("prod", "a1")

    @pytest.mark.parametrize(
        "cloud, scope",
        [
            ("prod", "https://api.powerplatform.com/.default"),
            ("GOV", "https://api.gov.powerplatform.microsoft.us/.default"),
            ("mooncake", "https://api.powerplatform.partner.microsoftonline.cn/.default"),
        ],
    )
    def test_scope_from_cloud(self, cloud, scope):
        assert scope_from_cloud(cloud) == scope


class TestBuildConnectionUrl:
    def test_published_agent(self, settings):
        url = build_connection_url(settings)

        assert url == (
            "https://0f1e2d3c4b5a69788796a5b4c3d2e1.f0.environment.api.powerplatform.com"
            "/copilotstudio/dataverse-backed/authenticated/bots/cr_agent"
        )

    def test_prebuilt_agent(self, settings):
        url = build_connection_url(settings.model_copy(update={"agent_type": "prebuilt"}))

        assert "/copilotstudio/prebuilt/authenticated/bots/cr_agent" in url

    def test_direct_connect_url_wins(self, settings):
        configured = settings.model_copy(
            update={
                "direct_connect_url": (
                    "https://direct.agent.test/copilotstudio/dataverse-backed/authenticated"
                    "/bots/cr_other/conversations?api-version=2022-03-01-preview"
                )
            }
        )

        assert build_connection_url(configured) == (
            "https://direct.agent.test/copilotstudio/dataverse-backed/authenticated/bots/cr_other"
        )


class TestCopilotStudioClient:
    @staticmethod
    def make_client(handler, carrier=None):
        return CopilotStudioClient(
            base_url=AGENT_BASE_URL,
            carrier=carrier or TokenCarrier(),
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_start_conversation_streams_activities_in_order(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = (
                b": keep-alive\n\n"
                + sse_activity({"type": "event", "name": "startConversation"})
                + sse_activity(None)
                + b"event: activity\ndata: {not json}\n\n"
                + b"event: trace\ndata: {}\n\n"
                + sse_activity({"type": "message", "text": "Hi"})
                + SSE_END
                + sse_activity({"type": "message", "text": "after end"})
            )
            return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=body)

        client = self.make_client(handler)
        activities = await collect(client.start_conversation())
        await client.aclose()

        assert activities == [
            {"type": "event", "name": "startConversation"},
            None,
            {"type": "message", "text": "Hi"},
        ]
        request = seen[0]
        assert str(request.url) == f"{AGENT_BASE_URL}/conversations?api-version=2022-03-01-preview"
        assert request.headers["Accept"] == "text/event-stream"

    @pytest.mark.asyncio
    async def test_ask_question_quotes_conversation_id(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=SSE_END)

        client = self.make_client(handler)
        activities = await collect(client.ask_question("hello", "a/b c"))
        await client.aclose()

        assert activities == []
        assert seen[0].url.raw_path.decode().split("?")[0].endswith("/conversations/a%2Fb%20c")

    @pytest.mark.asyncio
    async def test_carried_token_is_sent(self):
        seen = []
        carrier = TokenCarrier()

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, content=SSE_END)

        client = self.make_client(handler, carrier)
        with carrier.scope("obo-token"):
            await collect(client.start_conversation())
        await client.aclose()

        assert seen == ["Bearer obo-token"]

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "unauthorized"})

        client = self.make_client(handler)
        with pytest.raises(AgentServiceError) as exc_info:
            await collect(client.start_conversation())
        await client.aclose()

        assert exc_info.value.status_code == 401
        assert "HTTP 401 Unauthorized" in str(exc_info.value)

    def test_from_settings(self, settings, carrier):
        client = CopilotStudioClient.from_settings(settings, carrier)

        assert client.base_url == build_connection_url(settings)
        assert client.timeout == settings.agent_timeout_seconds
