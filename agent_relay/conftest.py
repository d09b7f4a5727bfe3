"""Pytest configuration and fixtures for agent relay tests.

This module sets up the test environment before any tests run, ensuring
that settings are properly configured for the test context.
"""

import asyncio
import json
import os
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

AGENT_BASE_URL = "https://agent.test/copilotstudio/dataverse-backed/authenticated/bots/cr_agent"


def pytest_configure(config):
    """Configure test environment before any tests run.

    IMPORTANT: Set environment variables BEFORE importing the app so that
    settings load with the test environment.
    """
    config.addinivalue_line("markers", "security: Security-related tests (required gate)")
    config.addinivalue_line("markers", "concurrency: Request isolation under concurrent load")

    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("TENANT_ID", "00000000-0000-0000-0000-000000000001")
    os.environ.setdefault("APP_CLIENT_ID", "00000000-0000-0000-0000-000000000002")
    os.environ.setdefault("APP_CLIENT_SECRET", "test-client-secret")
    os.environ.setdefault("ENVIRONMENT_ID", "0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0")
    os.environ.setdefault("SCHEMA_NAME", "cr_agent")

    cors_origins = os.environ.get("CORS_ORIGINS", "")
    if "localhost:3000" not in cors_origins:
        cors_origins = f"{cors_origins},http://localhost:3000" if cors_origins else "http://localhost:3000"
        os.environ["CORS_ORIGINS"] = cors_origins


def sse_activity(activity: Any) -> bytes:
    return f"event: activity\ndata: {json.dumps(activity)}\n\n".encode()


SSE_END = b"event: end\ndata: end\n\n"


class FakeTokenExchanger:
    """Stands in for the MSAL exchanger: ``user-x`` becomes ``obo-user-x``."""

    def __init__(self):
        self.calls: List[str] = []
        self.fail = False

    async def exchange_token(self, incoming_access_token: str) -> Optional[str]:
        self.calls.append(incoming_access_token)
        await asyncio.sleep(0)
        if self.fail:
            return None
        return f"obo-{incoming_access_token}"


class FakeAgentService:
    """Scripted Copilot Studio endpoint served through ``httpx.MockTransport``.

    Each turn replies with ``activities`` as an event stream. Requests are
    recorded so tests can inspect the forwarded credential and payload.
    """

    def __init__(self):
        self.activities: List[Any] = []
        self.fail_after: Optional[int] = None
        self.status_code = 200
        self.requests: List[httpx.Request] = []

    @property
    def authorization_headers(self) -> List[Optional[str]]:
        return [request.headers.get("Authorization") for request in self.requests]

    def payload(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)

    async def _body(self):
        for index, activity in enumerate(self.activities):
            if self.fail_after is not None and index >= self.fail_after:
                raise httpx.ReadError("Connection reset by agent service")
            yield sse_activity(activity)
        yield SSE_END

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"error": "denied"})
        return httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=self._body(),
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def settings():
    from agent_relay.config import get_settings

    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def carrier():
    from agent_relay.auth import TokenCarrier

    return TokenCarrier()


@pytest.fixture
def token_exchanger():
    return FakeTokenExchanger()


@pytest.fixture
def agent_service():
    return FakeAgentService()


@pytest.fixture
def agent_client(carrier, agent_service):
    from agent_relay.providers.copilot_studio import CopilotStudioClient

    return CopilotStudioClient(
        base_url=AGENT_BASE_URL,
        carrier=carrier,
        transport=agent_service.transport,
    )


@pytest.fixture
def app(settings, carrier, token_exchanger, agent_client):
    from agent_relay.main import create_app

    return create_app(
        settings,
        token_carrier=carrier,
        token_exchanger=token_exchanger,
        agent_client=agent_client,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer user-token"}
