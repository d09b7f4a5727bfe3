"""
Agent Relay Application.

FastAPI application that relays browser conversations to a Copilot Studio
agent on the signed-in user's behalf, with structured logging, envelope error
handling and security middleware.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agent_relay.api import conversation_router, health_router
from agent_relay.auth import TokenCarrier, TokenExchangeService
from agent_relay.config import Settings, get_settings
from agent_relay.core import (
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from agent_relay.core.startup_checks import run_startup_validations
from agent_relay.providers.copilot_studio import CopilotStudioClient
from agent_relay.services import ConversationService

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings: Settings = _app.state.settings

    logger.info(
        "Starting agent relay",
        data={
            "host": settings.host,
            "port": settings.port,
            "environment": settings.environment,
            "cloud": settings.cloud,
            "agent_url": _app.state.agent_base_url,
            "cors_origins": settings.cors_origins_list,
        },
    )
    _app.state.start_time = datetime.now(UTC)

    yield

    logger.info("Shutting down agent relay")
    aclose = getattr(_app.state.conversation_service.agent_client, "aclose", None)
    if aclose is not None:
        await aclose()


def create_app(
    settings: Optional[Settings] = None,
    *,
    token_carrier: Optional[TokenCarrier] = None,
    token_exchanger: Optional[TokenExchangeService] = None,
    agent_client: Optional[CopilotStudioClient] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to the real MSAL exchanger and Copilot Studio
    client built from settings; tests pass their own.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    settings = settings or get_settings()

    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    run_startup_validations(settings)

    carrier = token_carrier or TokenCarrier()
    exchanger = token_exchanger or TokenExchangeService.from_settings(settings)
    client = agent_client or CopilotStudioClient.from_settings(settings, carrier)

    app = FastAPI(
        title="Agent Relay",
        description="On-Behalf-Of relay between a browser SPA and a Copilot Studio agent",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=settings.docs_url,
        redoc_url=None,
        openapi_url=settings.openapi_url,
    )
    app.state.settings = settings
    app.state.token_carrier = carrier
    app.state.agent_base_url = getattr(client, "base_url", None)
    app.state.conversation_service = ConversationService(
        agent_client=client,
        token_exchanger=exchanger,
        carrier=carrier,
        turn_timeout_seconds=settings.agent_turn_timeout_seconds,
    )

    setup_exception_handlers(app)

    # Middleware order matters - last added = first executed
    app.add_middleware(
        RequestSizeLimitMiddleware,
        max_bytes=settings.max_request_bytes,
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    # The SPA sends its MSAL access token cross-origin in the Authorization header
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(conversation_router)

    return app


def run() -> None:
    """Console entry point: serve the relay with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


# Create application instance
app = create_app()
