"""Inbound authentication and On-Behalf-Of token propagation."""

from agent_relay.auth.carrier import TokenCarrier
from agent_relay.auth.dependencies import extract_bearer_token, require_bearer_token
from agent_relay.auth.token_exchange import TokenExchangeService

__all__ = [
    "TokenCarrier",
    "TokenExchangeService",
    "extract_bearer_token",
    "require_bearer_token",
]
