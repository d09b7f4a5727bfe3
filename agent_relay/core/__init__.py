"""Core module with logging, middleware, envelopes and exception handling."""

from agent_relay.core.envelope import (
    ResponseEnvelope,
    build_error_envelope,
    build_success_envelope,
    error_response,
    success_response,
)
from agent_relay.core.exceptions import (
    AuthExchangeFailedError,
    AuthMissingError,
    ClientDisconnectedError,
    ConfigurationError,
    RelayError,
    RequestTooLargeError,
    UpstreamFailureError,
    ValidationFailedError,
    setup_exception_handlers,
)
from agent_relay.core.logging import get_logger, setup_logging
from agent_relay.core.middleware import (
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)

__all__ = [
    "AuthExchangeFailedError",
    "AuthMissingError",
    "ClientDisconnectedError",
    "ConfigurationError",
    "RelayError",
    "RequestContextMiddleware",
    "RequestSizeLimitMiddleware",
    "RequestTooLargeError",
    "ResponseEnvelope",
    "SecurityHeadersMiddleware",
    "UpstreamFailureError",
    "ValidationFailedError",
    "build_error_envelope",
    "build_success_envelope",
    "error_response",
    "get_logger",
    "setup_exception_handlers",
    "setup_logging",
    "success_response",
]
