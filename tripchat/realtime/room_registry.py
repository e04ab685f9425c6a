"""
Room Registry

Tracks which single trip room each live connection is joined to.

All mutation happens on the event loop thread, and the gateway holds a
per-connection lock around every event, so join/leave/disconnect on the
same connection never interleave.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

logger = logging.getLogger(__name__)


def room_name(trip_id: str) -> str:
    """Broadcast group name for a trip."""
    return f"trip_{trip_id}"


@dataclass
class Connection:
    """State of one authenticated connection."""
    sid: str
    user_id: str
    email: Optional[str] = None
    trip_id: Optional[str] = None  # Zero or one room at a time
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class RoomRegistry:
    """
    Source of truth for "who is in which room".

    Connections are keyed by socket id; rooms map a trip id to the set
    of socket ids joined to it.
    """

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def register(self, sid: str, user_id: str, email: Optional[str] = None) -> Connection:
        """Authenticated(idle) state for a new connection."""
        conn = Connection(sid=sid, user_id=user_id, email=email)
        self._connections[sid] = conn
        return conn

    def get(self, sid: str) -> Optional[Connection]:
        return self._connections.get(sid)

    def unregister(self, sid: str) -> Optional[Connection]:
        """
        Drop a connection and clear its room association.

        Returns the connection as it was (trip_id still set) so the caller
        can notify the room it left.
        """
        conn = self._connections.pop(sid, None)
        if conn and conn.trip_id:
            self._discard(conn.trip_id, sid)
        return conn

    # =========================================================================
    # Room membership
    # =========================================================================

    def current_room(self, sid: str) -> Optional[str]:
        conn = self._connections.get(sid)
        return conn.trip_id if conn else None

    def is_joined(self, sid: str, trip_id: str) -> bool:
        return self.current_room(sid) == trip_id

    def join(self, sid: str, trip_id: str) -> Optional[str]:
        """
        Move a connection into a trip room.

        Last join wins: a connection already in another room is removed
        from it first. Returns that previous trip id, if any.
        """
        conn = self._connections.get(sid)
        if conn is None:
            raise KeyError(sid)

        previous = conn.trip_id
        if previous == trip_id:
            return None

        if previous:
            self._discard(previous, sid)

        self._rooms.setdefault(trip_id, set()).add(sid)
        conn.trip_id = trip_id
        return previous

    def leave(self, sid: str, trip_id: str) -> bool:
        """Leave a room. Returns False (no-op) if not in that room."""
        conn = self._connections.get(sid)
        if conn is None or conn.trip_id != trip_id:
            return False

        self._discard(trip_id, sid)
        conn.trip_id = None
        return True

    def _discard(self, trip_id: str, sid: str):
        members = self._rooms.get(trip_id)
        if members is None:
            return
        members.discard(sid)
        if not members:
            del self._rooms[trip_id]

    # =========================================================================
    # Queries
    # =========================================================================

    def connections_in(self, trip_id: str) -> List[str]:
        """Socket ids currently joined to a trip room."""
        return list(self._rooms.get(trip_id, ()))

    def online_user_ids(self, trip_id: str) -> List[str]:
        """Distinct users with at least one connection in the room."""
        return sorted({
            self._connections[sid].user_id
            for sid in self._rooms.get(trip_id, ())
            if sid in self._connections
        })

    def connection_count(self) -> int:
        return len(self._connections)

    def clear(self):
        """Forget every connection (gateway shutdown)."""
        self._connections.clear()
        self._rooms.clear()
