"""TripChat Models Package"""

from tripchat.models.chat_message import (
    ChatMessage,
    ChatMessageCreate,
    ChatMessageOut,
    MessagePage,
    SenderInfo,
)
from tripchat.models.trip import Trip, TripAccess
from tripchat.models.user import User

__all__ = [
    "ChatMessage", "ChatMessageCreate", "ChatMessageOut", "MessagePage", "SenderInfo",
    "Trip", "TripAccess",
    "User",
]
