"""Real-time chat: room registry and Socket.IO gateway."""

from tripchat.realtime.gateway import ChatGateway, create_socket_server
from tripchat.realtime.room_registry import Connection, RoomRegistry, room_name
from tripchat.realtime.throttle import SendThrottle

__all__ = [
    "ChatGateway",
    "create_socket_server",
    "Connection",
    "RoomRegistry",
    "room_name",
    "SendThrottle",
]
