"""
Health check endpoint.

Anonymous liveness probe used by the hosting platform and the browser UI.
"""

from fastapi import APIRouter

from agent_relay.core.envelope import EnvelopeResponse, success_response
from agent_relay.core.logging import get_logger
from agent_relay.models import HealthCheckResponse

logger = get_logger(__name__)
router = APIRouter(tags=["health"])


@router.get("/HealthCheck")
async def health_check() -> EnvelopeResponse:
    """
    Health check endpoint.

    Always reports ``Healthy`` with the current UTC time; it does not call
    the identity provider or the agent service.
    """
    logger.info("Health check requested")
    return success_response("Health check completed", HealthCheckResponse())
