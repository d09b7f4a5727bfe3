"""Outbound transport that forwards the request-scoped token."""

from typing import Optional

import httpx

from agent_relay.auth.carrier import TokenCarrier


class PassThroughTokenTransport(httpx.AsyncBaseTransport):
    """Wraps another transport and attaches the carried bearer token.

    Requests that already carry an Authorization header are left untouched.
    When the carrier is empty the request goes out unauthenticated and the
    agent service is left to reject it.
    """

    def __init__(self, carrier: TokenCarrier, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._carrier = carrier
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if "authorization" not in request.headers:
            token = self._carrier.get()
            if token:
                request.headers["Authorization"] = f"Bearer {token}"
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self._transport.aclose()
