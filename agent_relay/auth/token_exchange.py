"""On-Behalf-Of exchange of the caller's access token.

The browser signs in with MSAL and sends an access token issued for this API.
That token cannot be replayed against the agent service, so it is exchanged
for one scoped to the agent service using the confidential client
credentials of this API.
"""

import asyncio
import hashlib
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

import msal

from agent_relay.config import Settings
from agent_relay.core.logging import get_logger
from agent_relay.providers.cloud import scope_from_cloud

logger = get_logger(__name__)

AppFactory = Callable[[], msal.ConfidentialClientApplication]


class TokenExchangeService:
    """Exchanges inbound access tokens for agent-service tokens.

    MSAL caches every OBO result under the assertion that produced it, so the
    in-memory cache grows by one entry per distinct caller token. Once
    ``max_cached_assertions`` distinct assertions have been exchanged the
    application is rebuilt with an empty cache. Authority discovery responses
    live in a separate HTTP cache that survives the rebuild.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        authority: str,
        scopes: Sequence[str],
        max_cached_assertions: int = 1000,
        app_factory: Optional[AppFactory] = None,
    ):
        self.client_id = client_id
        self.authority = authority
        self.scopes: List[str] = list(scopes)
        self.max_cached_assertions = max_cached_assertions
        self._client_secret = client_secret
        self._app_factory = app_factory or self._build_app
        self._http_cache: Dict[Any, Any] = {}
        self._app: Optional[msal.ConfidentialClientApplication] = None
        self._cached_assertions: Set[str] = set()
        self._app_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenExchangeService":
        scope = settings.agent_scope or scope_from_cloud(settings.cloud)
        return cls(
            client_id=settings.app_client_id,
            client_secret=settings.app_client_secret,
            authority=settings.resolved_authority,
            scopes=[scope],
            max_cached_assertions=settings.obo_cache_max_assertions,
        )

    def _build_app(self) -> msal.ConfidentialClientApplication:
        return msal.ConfidentialClientApplication(
            self.client_id,
            authority=self.authority,
            client_credential=self._client_secret,
            http_cache=self._http_cache,
        )

    def _get_app(self, incoming_access_token: str) -> msal.ConfidentialClientApplication:
        # MSAL performs authority discovery over the network on construction,
        # so the application is built on first use inside the worker thread.
        key = hashlib.sha256(incoming_access_token.encode("utf-8")).hexdigest()
        with self._app_lock:
            is_new = key not in self._cached_assertions
            if self._app is None or (
                is_new and len(self._cached_assertions) >= self.max_cached_assertions
            ):
                if self._app is not None:
                    logger.info(
                        "Resetting token cache",
                        data={"cached_assertions": len(self._cached_assertions)},
                    )
                self._app = self._app_factory()
                self._cached_assertions = set()
            self._cached_assertions.add(key)
            return self._app

    def _acquire(self, incoming_access_token: str) -> Dict[str, Any]:
        app = self._get_app(incoming_access_token)
        return app.acquire_token_on_behalf_of(
            user_assertion=incoming_access_token,
            scopes=self.scopes,
        )

    async def exchange_token(self, incoming_access_token: str) -> Optional[str]:
        """Exchange ``incoming_access_token`` for an agent-service token.

        Returns:
            The new access token, or None when the identity provider rejects
            the assertion or cannot be reached.
        """
        try:
            result = await asyncio.to_thread(self._acquire, incoming_access_token)
        except Exception as exc:
            logger.error(
                "Unexpected error during token exchange",
                data={"error_type": type(exc).__name__},
            )
            return None

        if not result or "access_token" not in result:
            result = result or {}
            logger.warning(
                "Token exchange rejected by identity provider",
                data={
                    "error": result.get("error", "unknown_error"),
                    "error_codes": result.get("error_codes"),
                    "correlation_id": result.get("correlation_id"),
                },
            )
            return None

        logger.info(
            "Token exchange successful",
            data={"token_source": result.get("token_source", "identity_provider")},
        )
        return result["access_token"]
