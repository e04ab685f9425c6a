"""
Chat Gateway

Socket.IO protocol handler for trip chat rooms.

Events from client:
- joinRoom {tripId}            -> ack {success, room} | {error}
- leaveRoom {tripId}           -> ack {success} | {error}
- sendMessage {tripId, text}   -> ack {success, messageId, createdAt} | {error}
- typing {tripId, isTyping}    -> no ack

Events sent to clients:
- newMessage: Persisted message, to every connection in the room (sender included)
- userJoinedRoom / userLeftRoom: Presence changes, to the other occupants
- userTyping: Typing indicator, to the other occupants
- error: Connection-level problem with a fire-and-forget event
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import socketio
from socketio.exceptions import ConnectionRefusedError as SocketConnectionRefused

from tripchat.config import settings
from tripchat.exceptions import (
    ChatError,
    NotJoinedError,
    RateLimitedError,
    StorageUnavailableError,
)
from tripchat.models.chat_message import ChatMessageOut
from tripchat.models.events import (
    INVALID_PAYLOAD,
    JoinRoomRequest,
    LeaveRoomRequest,
    SendMessageRequest,
    TypingRequest,
    join_ack,
    leave_ack,
    parse_event,
    presence_event,
    send_ack,
    typing_event,
)
from tripchat.realtime.room_registry import RoomRegistry, room_name
from tripchat.realtime.throttle import SendThrottle
from tripchat.services.auth_service import AuthService
from tripchat.services.membership_service import MembershipService
from tripchat.services.message_service import MessageService, validate_text
from tripchat.services.user_service import UserService
from tripchat.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

AUTH_FAILED = "Authentication failed"
MUST_JOIN_FIRST = "You must join the room first"
SLOW_DOWN = "Too many messages, slow down"
NOT_CONNECTED = "Connection is not authenticated"

JOIN_FAILED = "Failed to join room"
SEND_FAILED = "Failed to send message"


def create_socket_server() -> socketio.AsyncServer:
    """Build the ASGI Socket.IO server with the configured CORS origins."""
    origins = settings.cors_origins_list
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins="*" if origins == ["*"] else origins,
        logger=False,
        engineio_logger=False,
    )


def unavailable_ack(reason: str) -> Dict[str, Any]:
    """Generic retryable failure, distinct from validation errors."""
    return {"error": reason, "code": StorageUnavailableError.code, "retryable": True}


class ChatGateway:
    """
    Connection-scoped chat protocol.

    One instance per process, created at startup and shut down at
    teardown. Collaborators are injected so tests can build isolated
    gateways.
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        registry: Optional[RoomRegistry] = None,
        auth_service: Optional[AuthService] = None,
        membership_service: Optional[MembershipService] = None,
        message_service: Optional[MessageService] = None,
        user_service: Optional[UserService] = None,
        throttle: Optional[SendThrottle] = None,
    ):
        self.sio = sio
        self.registry = registry or RoomRegistry()
        self.auth_service = auth_service or AuthService()
        self.membership_service = membership_service or MembershipService()
        self.message_service = message_service or MessageService()
        self.user_service = user_service or UserService()
        self.throttle = throttle or SendThrottle(
            settings.chat_send_rate_limit, settings.chat_send_rate_window_seconds
        )
        self._register_handlers()

    def _register_handlers(self):
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("joinRoom", self.on_join_room)
        self.sio.on("leaveRoom", self.on_leave_room)
        self.sio.on("sendMessage", self.on_send_message)
        self.sio.on("typing", self.on_typing)

    async def shutdown(self):
        """Forget all connection state."""
        logger.info(f"Chat gateway shutting down with {self.registry.connection_count()} connections")
        self.registry.clear()
        self.throttle.clear()

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def on_connect(self, sid: str, environ: dict, auth: Optional[Any] = None):
        """
        Authenticate the handshake.

        SECURITY: No state is created for a rejected connection. The log
        records why; the client only sees a generic failure.
        """
        user_id, failure = self.auth_service.authenticate_socket(auth, environ)

        if not user_id:
            logger.warning(f"Socket {sid} rejected: {failure} credential")
            raise SocketConnectionRefused(AUTH_FAILED)

        email = await self._lookup_email(user_id)
        self.registry.register(sid, user_id, email=email)
        logger.info(f"User {user_id} connected ({sid})")

    async def on_disconnect(self, sid: str, reason: Optional[str] = None):
        """Clear the room association and tell the room."""
        conn = self.registry.get(sid)
        if conn is None:
            return

        # Wait for an in-flight event on this connection to finish
        async with conn.lock:
            self.registry.unregister(sid)
            self.throttle.forget(sid)

            logger.info(f"User {conn.user_id} disconnected ({sid}, reason={reason})")

            if conn.trip_id:
                await self._broadcast(
                    conn.trip_id,
                    "userLeftRoom",
                    presence_event(conn.trip_id, conn.user_id, utc_now(), reason="disconnect"),
                )

    # =========================================================================
    # Room events
    # =========================================================================

    async def on_join_room(self, sid: str, data: Any) -> Dict[str, Any]:
        conn = self.registry.get(sid)
        if conn is None:
            return {"error": NOT_CONNECTED, "code": "unauthenticated"}

        async with conn.lock:
            try:
                request = parse_event(JoinRoomRequest, data)
                await self.membership_service.require_member(request.trip_id, conn.user_id)
            except StorageUnavailableError as e:
                logger.error(f"joinRoom for {conn.user_id} failed: {e.reason}")
                return unavailable_ack(JOIN_FAILED)
            except ChatError as e:
                return e.to_ack()
            except Exception as e:
                logger.error(f"Unexpected joinRoom error for {conn.user_id}: {e}", exc_info=True)
                return unavailable_ack(JOIN_FAILED)

            if self.registry.get(sid) is not conn:
                return {"error": NOT_CONNECTED, "code": "unauthenticated"}

            trip_id = request.trip_id
            if conn.trip_id == trip_id:
                return join_ack(room_name(trip_id), self.registry.online_user_ids(trip_id))

            previous = self.registry.join(sid, trip_id)
            now = utc_now()

            if previous:
                await self._broadcast(
                    previous,
                    "userLeftRoom",
                    presence_event(previous, conn.user_id, now, reason="switched"),
                )

            await self._broadcast(
                trip_id,
                "userJoinedRoom",
                presence_event(trip_id, conn.user_id, now, email=conn.email),
                skip_sid=sid,
            )

            logger.info(f"User {conn.user_id} joined {room_name(trip_id)}")
            return join_ack(room_name(trip_id), self.registry.online_user_ids(trip_id))

    async def on_leave_room(self, sid: str, data: Any) -> Dict[str, Any]:
        conn = self.registry.get(sid)
        if conn is None:
            return {"error": NOT_CONNECTED, "code": "unauthenticated"}

        async with conn.lock:
            try:
                request = parse_event(LeaveRoomRequest, data)
            except ChatError as e:
                return e.to_ack()

            if not self.registry.leave(sid, request.trip_id):
                # Not in that room: idempotent success, nobody is notified
                return leave_ack()

            logger.info(f"User {conn.user_id} left {room_name(request.trip_id)}")

            await self._broadcast(
                request.trip_id,
                "userLeftRoom",
                presence_event(request.trip_id, conn.user_id, utc_now(), reason="left"),
            )
            return leave_ack()

    # =========================================================================
    # Messaging
    # =========================================================================

    async def on_send_message(self, sid: str, data: Any) -> Dict[str, Any]:
        conn = self.registry.get(sid)
        if conn is None:
            return {"error": NOT_CONNECTED, "code": "unauthenticated"}

        async with conn.lock:
            try:
                request = parse_event(SendMessageRequest, data)

                # Structural check first: join already did the membership check
                if conn.trip_id != request.trip_id:
                    raise NotJoinedError(MUST_JOIN_FIRST)

                validate_text(request.text)

                if not self.throttle.allow(sid):
                    raise RateLimitedError(SLOW_DOWN)

                message = await self.message_service.append(
                    request.trip_id, conn.user_id, request.text
                )
            except StorageUnavailableError as e:
                logger.error(
                    f"sendMessage from {conn.user_id} to trip {conn.trip_id} failed: {e.reason}"
                )
                return unavailable_ack(SEND_FAILED)
            except ChatError as e:
                return e.to_ack()
            except Exception as e:
                logger.error(f"Unexpected sendMessage error for {conn.user_id}: {e}", exc_info=True)
                return unavailable_ack(SEND_FAILED)

            # Persisted: broadcast failures below never undo the send
            await self.broadcast_message(message)
            return send_ack(message.id, message.created_at)

    async def on_typing(self, sid: str, data: Any) -> None:
        """Fire-and-forget typing indicator; never persisted, never acked."""
        conn = self.registry.get(sid)
        if conn is None:
            return

        try:
            request = parse_event(TypingRequest, data)
        except ChatError:
            await self._emit_error(sid, INVALID_PAYLOAD)
            return

        if conn.trip_id != request.trip_id:
            return

        await self._broadcast(
            request.trip_id,
            "userTyping",
            typing_event(request.trip_id, conn.user_id, request.is_typing),
            skip_sid=sid,
        )

    async def broadcast_message(self, message: ChatMessageOut):
        """Deliver a stored message to everyone in its trip room."""
        await self._broadcast(message.trip, "newMessage", message.to_wire())

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _broadcast(
        self, trip_id: str, event: str, payload: dict, skip_sid: Optional[str] = None
    ):
        """
        Emit to every connection the registry has in the room.

        Best effort per peer: one failed delivery does not affect others.
        """
        targets = [sid for sid in self.registry.connections_in(trip_id) if sid != skip_sid]
        if not targets:
            return

        results = await asyncio.gather(
            *(self.sio.emit(event, payload, to=sid) for sid in targets),
            return_exceptions=True,
        )

        for sid, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to deliver {event} to {sid} in trip {trip_id}: {result}")

    async def _emit_error(self, sid: str, message: str):
        try:
            await self.sio.emit("error", {"message": message}, to=sid)
        except Exception as e:
            logger.debug(f"Could not emit error to {sid}: {e}")

    async def _lookup_email(self, user_id: str) -> Optional[str]:
        """Joiner email for presence events; optional."""
        try:
            user = await self.user_service.get_user(user_id)
            return user.email if user else None
        except Exception as e:
            logger.debug(f"Email lookup failed for {user_id}: {e}")
            return None

    def online_user_ids(self, trip_id: str):
        return self.registry.online_user_ids(trip_id)
