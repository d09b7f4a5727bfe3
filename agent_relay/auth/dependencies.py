"""FastAPI dependencies for authentication."""

from typing import Optional

from fastapi import Request

from agent_relay.core.exceptions import AuthMissingError
from agent_relay.core.logging import get_logger

logger = get_logger(__name__)

_BEARER_SCHEME = "bearer"


def extract_bearer_token(request: Request) -> Optional[str]:
    """Return the bearer token from the Authorization header, if any.

    The scheme comparison is case-insensitive; an empty token counts as absent.
    """
    header = request.headers.get("Authorization")
    if not header:
        return None

    scheme, _, credentials = header.strip().partition(" ")
    if scheme.lower() != _BEARER_SCHEME:
        return None

    token = credentials.strip()
    return token or None


async def require_bearer_token(request: Request) -> str:
    """Get the caller's bearer token.

    Raises:
        AuthMissingError: If the header is missing or not a bearer credential.
    """
    token = extract_bearer_token(request)
    if not token:
        logger.warning(
            "Request missing or invalid Authorization header",
            data={"path": request.url.path},
        )
        raise AuthMissingError()
    return token
