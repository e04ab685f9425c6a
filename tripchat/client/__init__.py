"""Client-side chat state and session."""

from tripchat.client.timeline import ChatTimeline, OptimisticMessage, preserve_scroll_offset
from tripchat.client.trip_chat import TripChatClient

__all__ = [
    "ChatTimeline",
    "OptimisticMessage",
    "preserve_scroll_offset",
    "TripChatClient",
]
