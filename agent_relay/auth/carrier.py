"""Request-scoped storage for the exchanged downstream token."""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional


class TokenCarrier:
    """Holds the exchanged token for the request currently executing.

    Values live in a ``ContextVar``, so every asyncio task (one per inbound
    request) sees only the token it set itself. One carrier is created per
    application and handed to both the conversation service, which sets it,
    and the outbound transport, which reads it.
    """

    def __init__(self, name: str = "exchanged_token"):
        self._current: ContextVar[Optional[str]] = ContextVar(name, default=None)

    def set(self, token: Optional[str]) -> None:
        self._current.set(token)

    def get(self) -> Optional[str]:
        return self._current.get()

    def clear(self) -> None:
        self._current.set(None)

    @contextmanager
    def scope(self, token: str) -> Iterator[str]:
        """Carry ``token`` for the duration of the block, then clear it."""
        self.set(token)
        try:
            yield token
        finally:
            self.clear()
