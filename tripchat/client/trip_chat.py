"""
Trip Chat Client

Async client for one trip's chat: Socket.IO for live events, REST for
history. Keeps a ChatTimeline in sync with both.
"""

import logging
from typing import Any, Callable, Dict, Optional

import httpx
import socketio
from socketio import exceptions as socket_errors

from tripchat.client.timeline import ChatTimeline, OptimisticMessage

logger = logging.getLogger(__name__)

ACK_TIMEOUT = 10  # seconds


class TripChatClient:
    """
    Live chat session for a single trip.

    Usage:
        client = TripChatClient("http://localhost:8000", token, trip_id, user_id)
        await client.connect()
        await client.join()
        await client.load_initial()
        await client.send("Hi")
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        trip_id: str,
        user_id: str,
        user_name: Optional[str] = None,
        page_size: int = 10,
        sio: Optional[socketio.AsyncClient] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.trip_id = trip_id
        self.page_size = page_size
        self.timeline = ChatTimeline(user_id, user_name)
        self.sio = sio or socketio.AsyncClient(reconnection=True)
        self.http = http or httpx.AsyncClient(base_url=self.base_url, timeout=10.0)
        self.joined = False
        self.on_change: Optional[Callable[[ChatTimeline], Any]] = None

        self.sio.on("newMessage", self._on_new_message)
        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self):
        await self.sio.connect(
            self.base_url,
            auth={"token": self.token},
            transports=["websocket"],
        )

    async def close(self):
        if self.joined:
            await self.leave()
        await self.sio.disconnect()
        await self.http.aclose()

    async def _on_connect(self):
        # Room membership does not survive a reconnect; rejoin if we had one
        if self.joined:
            self.joined = False
            await self.join()

    async def _on_disconnect(self, *args):
        logger.info(f"Disconnected from trip {self.trip_id} chat")

    # =========================================================================
    # Room
    # =========================================================================

    async def join(self) -> Dict[str, Any]:
        ack = await self.sio.call("joinRoom", {"tripId": self.trip_id}, timeout=ACK_TIMEOUT)
        self.joined = bool(ack and ack.get("success"))
        if not self.joined:
            logger.warning(f"Join trip {self.trip_id} failed: {ack}")
        return ack

    async def leave(self) -> Dict[str, Any]:
        ack = await self.sio.call("leaveRoom", {"tripId": self.trip_id}, timeout=ACK_TIMEOUT)
        self.joined = False
        return ack

    async def set_typing(self, is_typing: bool):
        await self.sio.emit("typing", {"tripId": self.trip_id, "isTyping": is_typing})

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send(self, text: str) -> Dict[str, Any]:
        """
        Send with an optimistic placeholder.

        The placeholder is shown at once and settled by its own ack (or by
        the broadcast echo, whichever lands first).
        """
        entry: OptimisticMessage = self.timeline.add_optimistic(text)
        self._changed()

        try:
            ack = await self.sio.call(
                "sendMessage",
                {"tripId": self.trip_id, "text": text},
                timeout=ACK_TIMEOUT,
            )
        except socket_errors.TimeoutError:
            ack = {"error": "Send timed out", "code": "unavailable", "retryable": True}
        except socket_errors.SocketIOError as e:
            ack = {"error": str(e) or "Not connected", "code": "unavailable", "retryable": True}

        self.timeline.acknowledge(entry.temp_id, ack)
        self._changed()
        return ack

    async def _on_new_message(self, message: Dict[str, Any]):
        if message.get("trip") != self.trip_id:
            return
        if self.timeline.receive_broadcast(message):
            self._changed()

    # =========================================================================
    # History
    # =========================================================================

    async def fetch_page(self, before: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": self.page_size}
        if before:
            params["before"] = before

        response = await self.http.get(
            f"/api/v1/trips/{self.trip_id}/messages",
            params=params,
            headers={"Authorization": f"Bearer {self.token}"},
        )
        response.raise_for_status()
        return response.json()

    async def load_initial(self):
        page = await self.fetch_page()
        self.timeline.load_initial(page)
        self._changed()

    async def load_older(self) -> int:
        """
        Prepend the next older page. Returns the number of messages added.

        A call made while another load is in flight returns 0 without
        fetching.
        """
        cursor = self.timeline.begin_load_older()
        if cursor is None:
            return 0

        try:
            page = await self.fetch_page(before=cursor)
            added = self.timeline.prepend_older(page)
        finally:
            self.timeline.end_load_older()

        self._changed()
        return added

    def _changed(self):
        if self.on_change:
            self.on_change(self.timeline)
