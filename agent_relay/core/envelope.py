"""Canonical API response envelope helpers.

Every endpoint, successful or not, answers with the same JSON shape::

    {"success": bool, "message": str, "data": T | null, "error": str | null}
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Generic, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResponseEnvelope(CamelModel, Generic[T]):
    success: bool
    message: str = ""
    data: Optional[T] = None
    error: Optional[str] = None


class EnvelopeResponse(JSONResponse):
    """JSON response with an explicit UTF-8 charset."""

    media_type = "application/json; charset=utf-8"


def http_status_to_error(status_code: int) -> str:
    """Map an HTTP status to its short error name, e.g. 401 -> ``Unauthorized``."""
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        return f"Status{status_code}"
    return "".join(word.capitalize() for word in phrase.replace("-", " ").split())


def build_success_envelope(message: str, data: Any = None) -> dict[str, Any]:
    """Build a success payload; pydantic ``data`` is dumped with camelCase keys."""
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    envelope = ResponseEnvelope[Any](success=True, message=message, data=data)
    return envelope.model_dump(by_alias=True, mode="json")


def build_error_envelope(
    *,
    status_code: int,
    message: str,
    error: str | None = None,
) -> dict[str, Any]:
    """Build a failure payload; ``error`` defaults to the status name."""
    envelope = ResponseEnvelope[Any](
        success=False,
        message=message,
        error=error or http_status_to_error(status_code),
    )
    return envelope.model_dump(by_alias=True, mode="json")


def success_response(message: str, data: Any = None) -> EnvelopeResponse:
    return EnvelopeResponse(status_code=HTTPStatus.OK, content=build_success_envelope(message, data))


def error_response(
    status_code: int,
    message: str,
    error: str | None = None,
    headers: dict[str, str] | None = None,
) -> EnvelopeResponse:
    return EnvelopeResponse(
        status_code=status_code,
        content=build_error_envelope(status_code=status_code, message=message, error=error),
        headers=headers,
    )
