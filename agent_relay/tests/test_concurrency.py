"""Concurrent requests must never see each other's exchanged token."""

import asyncio
import random

import httpx
import pytest

from agent_relay.conftest import AGENT_BASE_URL, SSE_END, sse_activity
from agent_relay.main import create_app
from agent_relay.providers.copilot_studio import CopilotStudioClient

pytestmark = [pytest.mark.concurrency, pytest.mark.security]

PARALLEL_REQUESTS = 25


async def echo_authorization(request: httpx.Request) -> httpx.Response:
    """Agent stand-in that replies with the credential it received."""
    await asyncio.sleep(random.uniform(0, 0.01))
    body = sse_activity(
        {"type": "message", "text": request.headers.get("Authorization", "<none>")}
    )
    return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=body + SSE_END)


@pytest.fixture
def echo_app(settings, carrier, token_exchanger):
    agent_client = CopilotStudioClient(
        base_url=AGENT_BASE_URL,
        carrier=carrier,
        transport=httpx.MockTransport(echo_authorization),
    )
    return create_app(
        settings,
        token_carrier=carrier,
        token_exchanger=token_exchanger,
        agent_client=agent_client,
    )


@pytest.mark.asyncio
async def test_parallel_requests_forward_their_own_token(echo_app, carrier):
    transport = httpx.ASGITransport(app=echo_app)

    async def send(index: int) -> str:
        res = await client.post(
            "/SendMessage",
            headers={"Authorization": f"Bearer user-{index}"},
            json={"message": f"question {index}", "conversationId": f"conv-{index}"},
        )
        assert res.status_code == 200
        return res.json()["data"]["activities"][0]["text"]

    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as client:
        results = await asyncio.gather(*(send(i) for i in range(PARALLEL_REQUESTS)))

    assert results == [f"Bearer obo-user-{i}" for i in range(PARALLEL_REQUESTS)]
    assert carrier.get() is None


@pytest.mark.asyncio
async def test_failed_exchange_does_not_reuse_another_requests_token(echo_app, token_exchanger):
    transport = httpx.ASGITransport(app=echo_app)

    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as client:
        ok = await client.post("/StartConversation", headers={"Authorization": "Bearer user-ok"})
        token_exchanger.fail = True
        denied = await client.post("/StartConversation", headers={"Authorization": "Bearer user-bad"})

    assert ok.status_code == 200
    assert ok.json()["data"]["activities"][0]["text"] == "Bearer obo-user-ok"
    assert denied.status_code == 401
