"""Pydantic schemas for chat messages and the WebSocket protocol.

Learn: The wire format is camelCase (senderName, createdAt) because that's
what the chat UI already speaks; Python code uses snake_case. The
alias_generator bridges the two, and populate_by_name lets ORM rows and
Python callers use the snake_case names.

- MessageCreate: the send payload (WebSocket send_message and POST /messages)
- MessageRead: a persisted record as returned to clients
- ChatEvent: the {"type", "data"} envelope every WebSocket frame uses
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chatrelay.config import settings


# ─── Messages ────────────────────────────────────────────

class MessageCreate(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    sender_name: str = Field(..., min_length=1, max_length=100)
    sender_role: str = Field(..., min_length=1, max_length=50)
    receiver_name: str = Field(..., min_length=1, max_length=100)
    receiver_role: str = Field(..., min_length=1, max_length=50)
    message: str = Field(..., min_length=1)

    @field_validator("message")
    @classmethod
    def check_length(cls, v: str) -> str:
        if len(v) > settings.max_message_length:
            raise ValueError(
                f"message exceeds {settings.max_message_length} characters"
            )
        return v


class MessageRead(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: int
    sender_name: str
    sender_role: str
    receiver_name: str
    receiver_role: str
    message: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # SQLite hands timestamps back naive; they were written as UTC.
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ─── WebSocket protocol ──────────────────────────────────

class ChatEvent(BaseModel):
    """One WebSocket frame, in either direction."""
    type: str
    data: Any = None


class JoinPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=1, max_length=100)
    role: str = Field(..., min_length=1, max_length=50)


class HistoryRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=1, max_length=100)


class ErrorPayload(BaseModel):
    error: str
    detail: str = ""
