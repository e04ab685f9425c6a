"""Chat Message Model - Defines the trip chat message schema."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from tripchat.config import settings


class SenderInfo(BaseModel):
    """Sender identity resolved at read/send time."""
    id: str
    name: str
    email: Optional[str] = None


class ChatMessage(BaseModel):
    """
    Chat message model for MongoDB.

    Append-only: trip and sender are fixed at creation and the document
    is never updated by the chat core.

    Fields:
    - message_id: ObjectId hex string, time-ordered, unique
    - trip_id: Parent trip
    - sender_id: Sending user
    - text: Trimmed message body (1-2000 characters)
    - created_at: Server-assigned creation time (millisecond precision)
    - is_deleted: Set only by external moderation tooling
    """
    message_id: str = Field(..., description="Unique time-ordered message ID")
    trip_id: str = Field(..., description="Parent trip ID")
    sender_id: str = Field(..., description="Sender user ID")
    text: str = Field(..., min_length=1, description="Message content")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_deleted: bool = Field(default=False)

    def to_document(self) -> dict:
        """Mongo document for insertion."""
        return self.model_dump()


class ChatMessageOut(BaseModel):
    """Message with resolved sender, as broadcast and returned by history."""
    id: str
    trip: str
    sender: SenderInfo
    text: str
    created_at: datetime

    def to_wire(self) -> dict:
        """Socket.IO payload for the newMessage event."""
        return {
            "id": self.id,
            "trip": self.trip,
            "sender": self.sender.model_dump(),
            "text": self.text,
            "createdAt": self.created_at.isoformat(),
        }


class ChatMessageCreate(BaseModel):
    """Data required to send a chat message over REST."""
    text: str = Field(..., description="Message text")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Message cannot be empty")
        if len(v) > settings.chat_message_max_length:
            raise ValueError(
                f"Message too long (max {settings.chat_message_max_length} characters)"
            )
        return v


class MessagePage(BaseModel):
    """One page of history, oldest first."""
    messages: List[ChatMessageOut]
    has_more: bool
    next_cursor: Optional[str] = None


class MessagePageResponse(BaseModel):
    """REST response for GET /trips/{trip_id}/messages."""
    messages: List[dict]
    hasMore: bool
    nextCursor: Optional[str] = None
