"""
Socket Event Schemas

Request models for every client->server event and builders for the
server->client payloads. Payloads are validated here before any
collaborator is touched.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from tripchat.exceptions import ValidationError

TRIP_ID_REQUIRED = "Trip ID is required"
INVALID_PAYLOAD = "Invalid payload"

E = TypeVar("E", bound="TripEvent")


# =============================================================================
# Client -> Server
# =============================================================================


class TripEvent(BaseModel):
    """Every chat event is scoped to a trip."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    trip_id: str = Field(..., alias="tripId")

    @field_validator("trip_id", mode="before")
    @classmethod
    def validate_trip_id(cls, v: Any) -> str:
        if v is None:
            raise ValueError(TRIP_ID_REQUIRED)
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError(TRIP_ID_REQUIRED)
        return v.strip()


class JoinRoomRequest(TripEvent):
    """joinRoom {tripId}"""


class LeaveRoomRequest(TripEvent):
    """leaveRoom {tripId}"""


class SendMessageRequest(TripEvent):
    """
    sendMessage {tripId, text}

    Text content rules are checked by the gateway after the room check,
    so only the type is enforced here.
    """

    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def validate_text_type(cls, v: Any) -> str:
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError(INVALID_PAYLOAD)
        return v


class TypingRequest(TripEvent):
    """typing {tripId, isTyping}"""

    is_typing: bool = Field(default=False, alias="isTyping")


def parse_event(model: Type[E], data: Any) -> E:
    """Validate a raw event payload, raising the chat ValidationError."""
    if not isinstance(data, dict):
        raise ValidationError(INVALID_PAYLOAD)

    if "tripId" not in data:
        raise ValidationError(TRIP_ID_REQUIRED)

    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        for err in e.errors():
            if err.get("loc") and err["loc"][0] == "tripId":
                raise ValidationError(TRIP_ID_REQUIRED)
        raise ValidationError(INVALID_PAYLOAD)


# =============================================================================
# Server -> Client
# =============================================================================


def join_ack(room: str, online_user_ids: Optional[list] = None) -> Dict[str, Any]:
    ack: Dict[str, Any] = {"success": True, "room": room}
    if online_user_ids is not None:
        ack["onlineUserIds"] = online_user_ids
    return ack


def leave_ack() -> Dict[str, Any]:
    return {"success": True}


def send_ack(message_id: str, created_at: datetime) -> Dict[str, Any]:
    return {
        "success": True,
        "messageId": message_id,
        "createdAt": created_at.isoformat(),
    }


def presence_event(
    trip_id: str,
    user_id: str,
    timestamp: datetime,
    reason: Optional[str] = None,
    email: Optional[str] = None,
) -> Dict[str, Any]:
    """Payload for userJoinedRoom / userLeftRoom."""
    payload: Dict[str, Any] = {
        "tripId": trip_id,
        "userId": user_id,
        "timestamp": timestamp.isoformat(),
    }
    if reason:
        payload["reason"] = reason
    if email:
        payload["userEmail"] = email
    return payload


def typing_event(trip_id: str, user_id: str, is_typing: bool) -> Dict[str, Any]:
    return {"tripId": trip_id, "userId": user_id, "isTyping": is_typing}
