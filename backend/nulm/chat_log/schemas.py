"""Pydantic schema for persisted chat messages."""
from datetime import datetime, timezone

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the TIMESTAMP column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ChatLogEntry(BaseModel):
    """A single chat message as written to the log.

    Attributes:
        room_id: Room key the message was sent in.
        nickname: Sender nickname.
        user_ip: Sender address.
        message: Message body.
        timestamp: When the message was sent (UTC).
    """
    room_id: str = Field(..., description="Room key")
    nickname: str = Field(..., description="Sender nickname")
    user_ip: str = Field(..., description="Sender address")
    message: str = Field(..., description="Message body")
    timestamp: datetime = Field(default_factory=utc_now)
