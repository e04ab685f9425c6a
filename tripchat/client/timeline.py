"""
Chat Timeline

Client-side view of one trip's chat: server-confirmed messages plus
locally created optimistic placeholders for sends in flight.

Messages are kept in their wire form (the `newMessage` payload):
{id, trip, sender: {id, name, email}, text, createdAt}.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set

from tripchat.utils.timezone_utils import ensure_utc, utc_now

# Client and server clocks disagree slightly; server times are also ms-truncated
ECHO_CLOCK_SKEW = timedelta(seconds=2)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a wire `createdAt` (ISO 8601) into an aware datetime."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


def preserve_scroll_offset(previous_top: float, previous_height: float, new_height: float) -> float:
    """
    Scroll position that keeps the viewport still after prepending.

    Content added above the viewport grows the scroll height by
    (new_height - previous_height); shifting scrollTop by the same delta
    keeps the same messages on screen.
    """
    return max(0.0, previous_top + (new_height - previous_height))


@dataclass
class OptimisticMessage:
    """A send in flight, shown before the server confirms it."""
    temp_id: str
    text: str
    sender: Dict[str, Any]
    created_at: datetime = field(default_factory=utc_now)
    message_id: Optional[str] = None  # Known once the success ack arrives

    def to_wire(self) -> Dict[str, Any]:
        return {
            "tempId": self.temp_id,
            "text": self.text,
            "sender": self.sender,
            "createdAt": self.created_at.isoformat(),
            "pending": True,
        }


class ChatTimeline:
    """
    Confirmed history plus optimistic placeholders.

    The rendered view is confirmed messages followed by optimistic ones.
    A placeholder is dropped as soon as the server's copy is in the
    confirmed list or the send fails, so a message never shows twice.
    """

    def __init__(self, user_id: str, user_name: Optional[str] = None):
        self.user_id = user_id
        self.user_name = user_name
        self.confirmed: List[Dict[str, Any]] = []
        self.optimistic: List[OptimisticMessage] = []
        self._confirmed_ids: Set[str] = set()

        self.has_more = True
        self.next_cursor: Optional[str] = None
        self.loading_older = False
        self.initial_loaded = False

    @property
    def rendered(self) -> List[Dict[str, Any]]:
        return self.confirmed + [m.to_wire() for m in self.optimistic]

    # =========================================================================
    # Sending
    # =========================================================================

    def add_optimistic(self, text: str) -> OptimisticMessage:
        """Show a send immediately under a unique temporary id."""
        entry = OptimisticMessage(
            temp_id=f"temp_{uuid.uuid4().hex}",
            text=text,
            sender={"id": self.user_id, "name": self.user_name},
        )
        self.optimistic.append(entry)
        return entry

    def acknowledge(self, temp_id: str, ack: Optional[Dict[str, Any]]):
        """
        Apply the direct acknowledgment of the send that created temp_id.

        Errors drop the placeholder. Success records the real id and drops
        the placeholder once the broadcast copy is present; if the echo
        has not arrived yet the placeholder stays until it does.
        """
        entry = self._find_optimistic(temp_id)
        if entry is None:
            return

        if not ack or ack.get("error") or not ack.get("messageId"):
            self._drop_optimistic(temp_id)
            return

        entry.message_id = str(ack["messageId"])
        if entry.message_id in self._confirmed_ids:
            self._drop_optimistic(temp_id)

    # =========================================================================
    # Receiving
    # =========================================================================

    def receive_broadcast(self, message: Dict[str, Any]) -> bool:
        """
        Append a live newMessage broadcast. Returns False for a duplicate.

        Replays after a reconnect can deliver a message twice, so ids are
        checked before appending. Only live broadcasts may settle a
        placeholder by content; history pages settle by id alone.
        """
        if not self._add_confirmed(message):
            return False

        if not self._settle_by_id(str(message.get("id"))):
            self._settle_echo(message)
        return True

    def _add_confirmed(self, message: Dict[str, Any]) -> bool:
        message_id = str(message.get("id"))
        if message_id in self._confirmed_ids:
            return False
        self.confirmed.append(message)
        self._confirmed_ids.add(message_id)
        return True

    def _settle_by_id(self, message_id: str) -> bool:
        """Drop the acknowledged placeholder whose server copy is now confirmed."""
        for entry in self.optimistic:
            if entry.message_id == message_id:
                self._drop_optimistic(entry.temp_id)
                return True
        return False

    def _settle_echo(self, message: Dict[str, Any]):
        """
        Echo beat the ack: pair it with the oldest unacked placeholder of
        ours carrying the same text, sent no later than the echo was stored.
        """
        sender_id = (message.get("sender") or {}).get("id")
        if sender_id != self.user_id:
            return

        created_at = parse_timestamp(message.get("createdAt"))
        if created_at is None:
            return

        for entry in self.optimistic:
            if entry.message_id is not None or entry.text.strip() != message.get("text"):
                continue
            if created_at < entry.created_at - ECHO_CLOCK_SKEW:
                continue
            entry.message_id = str(message.get("id"))
            self._drop_optimistic(entry.temp_id)
            return

    # =========================================================================
    # History
    # =========================================================================

    def load_initial(self, page: Dict[str, Any]):
        """Replace history with the newest page."""
        self.confirmed = []
        self._confirmed_ids = set()
        for message in page.get("messages", []):
            if self._add_confirmed(message):
                self._settle_by_id(str(message.get("id")))

        self.has_more = bool(page.get("hasMore"))
        self.next_cursor = page.get("nextCursor")
        self.initial_loaded = True

    def begin_load_older(self) -> Optional[str]:
        """
        Claim the single in-flight slot for loading older history.

        Returns the cursor to fetch with, or None when a load is already
        running or there is nothing older.
        """
        if self.loading_older or not self.has_more or not self.next_cursor:
            return None
        self.loading_older = True
        return self.next_cursor

    def end_load_older(self):
        self.loading_older = False

    def prepend_older(self, page: Dict[str, Any]) -> int:
        """Insert an older page before the current history. Returns messages added."""
        older = []
        for message in page.get("messages", []):
            message_id = str(message.get("id"))
            if message_id in self._confirmed_ids:
                continue
            self._confirmed_ids.add(message_id)
            older.append(message)

        self.confirmed = older + self.confirmed
        self.has_more = bool(page.get("hasMore"))
        self.next_cursor = page.get("nextCursor")
        return len(older)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _find_optimistic(self, temp_id: str) -> Optional[OptimisticMessage]:
        for entry in self.optimistic:
            if entry.temp_id == temp_id:
                return entry
        return None

    def _drop_optimistic(self, temp_id: str):
        self.optimistic = [m for m in self.optimistic if m.temp_id != temp_id]
