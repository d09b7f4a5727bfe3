"""Exception types and handlers for the FastAPI application."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from agent_relay.core.envelope import EnvelopeResponse, error_response
from agent_relay.core.logging import get_logger

logger = get_logger(__name__)


class RelayError(Exception):
    """Base exception for errors reported through the response envelope."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error = error
        super().__init__(message)


class AuthMissingError(RelayError):
    """No usable bearer token on the inbound request."""

    def __init__(self, message: str = "Authorization header with Bearer token is required"):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED)


class AuthExchangeFailedError(RelayError):
    """The On-Behalf-Of exchange was rejected or errored."""

    def __init__(self, message: str = "Token exchange failed. Access denied."):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED)


class ValidationFailedError(RelayError):
    """Required request fields are missing or malformed."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST)


class UpstreamFailureError(RelayError):
    """The agent service call failed; ``error`` carries the underlying message."""

    def __init__(self, message: str, detail: str):
        super().__init__(
            message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error=detail,
        )


class ClientDisconnectedError(RelayError):
    """The caller went away before the agent finished the turn."""

    def __init__(self, message: str = "Client closed request"):
        super().__init__(message, status_code=499, error="ClientClosedRequest")


class RequestTooLargeError(RelayError):
    """The streamed request body grew past the configured limit."""

    def __init__(self, max_bytes: int, received_bytes: int):
        self.max_bytes = max_bytes
        self.received_bytes = received_bytes
        super().__init__(
            "Request body too large",
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )


class ConfigurationError(Exception):
    """Required settings are missing or invalid; the process must not start."""


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers that answer with the response envelope."""

    @app.exception_handler(RelayError)
    async def relay_exception_handler(request: Request, exc: RelayError) -> EnvelopeResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"Request failed: {exc.message}",
            data={"status_code": exc.status_code, "error_type": type(exc).__name__},
        )
        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return error_response(exc.status_code, exc.message, exc.error, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> EnvelopeResponse:
        logger.warning("Validation error", data={"errors": exc.errors()})
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> EnvelopeResponse:
        return error_response(
            exc.status_code,
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> EnvelopeResponse:
        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
            exc_info=True,
        )
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
