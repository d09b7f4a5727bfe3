"""Request and response models for the relay endpoints."""

from datetime import UTC, datetime
from typing import Any, List, Optional

from pydantic import Field, field_validator

from agent_relay.core.envelope import CamelModel


class SuggestedActionInfo(CamelModel):
    text: Optional[str] = None
    value: Any = None


class ActivityInfo(CamelModel):
    """A downstream activity reduced to what the browser renders."""

    type: Optional[str] = None
    text: Optional[str] = None
    text_format: Optional[str] = None
    suggested_actions: Optional[List[SuggestedActionInfo]] = None


class SendMessageRequest(CamelModel):
    message: Optional[str] = None
    conversation_id: Optional[str] = None
    only_return_messages: bool = True

    @field_validator("only_return_messages", mode="before")
    @classmethod
    def default_when_null(cls, v: Any) -> Any:
        return True if v is None else v


class ConversationResponse(CamelModel):
    conversation_id: Optional[str] = None
    activities: List[ActivityInfo] = Field(default_factory=list)


class MessageResponse(CamelModel):
    activities: List[ActivityInfo] = Field(default_factory=list)


class HealthCheckResponse(CamelModel):
    status: str = "Healthy"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
