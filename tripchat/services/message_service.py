"""Message Service - Durable, ordered chat history per trip."""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING

from tripchat.config import settings
from tripchat.database import get_db, with_timeout
from tripchat.exceptions import NotFoundError, StorageUnavailableError, ValidationError
from tripchat.models.chat_message import ChatMessage, ChatMessageOut, MessagePage, SenderInfo
from tripchat.services.membership_service import TRIP_DELETED, TRIP_NOT_FOUND
from tripchat.services.user_service import UserService
from tripchat.utils.timezone_utils import ensure_utc, utc_now_ms

logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "Message cannot be empty"

# Newest first; message_id breaks created_at ties in insertion order
NEWEST_FIRST = [("created_at", DESCENDING), ("message_id", DESCENDING)]


def message_too_long_reason() -> str:
    return f"Message too long (max {settings.chat_message_max_length} characters)"


def validate_text(text: Any) -> str:
    """Return the trimmed text or raise ValidationError."""
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(EMPTY_MESSAGE)
    if len(text) > settings.chat_message_max_length:
        raise ValidationError(message_too_long_reason())
    return text.strip()


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.chat_page_default_limit
    return max(1, min(int(limit), settings.chat_page_max_limit))


class MessageService:
    """
    Chat message persistence.

    The only component allowed to write chat_messages. Messages are
    inserted once and never updated here.
    """

    def __init__(self):
        self.user_service = UserService()

    async def append(self, trip_id: str, sender_id: str, text: str) -> ChatMessageOut:
        """
        Persist a message and return it with the sender resolved.

        Raises ValidationError for empty/oversized text and NotFoundError
        when the trip does not exist or was soft-deleted.
        """
        clean_text = validate_text(text)

        db = get_db()
        trip = await with_timeout(
            db.trips.find_one({"trip_id": trip_id}, {"is_deleted": 1}), "trip lookup"
        )
        if not trip:
            raise NotFoundError(TRIP_NOT_FOUND)
        if trip.get("is_deleted"):
            raise NotFoundError(TRIP_DELETED)

        message = ChatMessage(
            message_id=str(ObjectId()),
            trip_id=trip_id,
            sender_id=sender_id,
            text=clean_text,
            created_at=utc_now_ms(),
        )

        try:
            await with_timeout(
                db.chat_messages.insert_one(message.to_document()), "message insert"
            )
        except StorageUnavailableError:
            # The write may have landed even though its acknowledgment did not
            if not await self._was_stored(message.message_id):
                raise
            logger.warning(f"Insert of {message.message_id} timed out but was stored")

        sender = await self._resolve_sender_safely(sender_id)
        logger.debug(f"Stored message {message.message_id} in trip {trip_id}")

        return ChatMessageOut(
            id=message.message_id,
            trip=trip_id,
            sender=sender,
            text=message.text,
            created_at=message.created_at,
        )

    async def page(
        self,
        trip_id: str,
        limit: Optional[int] = None,
        before: Optional[str] = None,
    ) -> MessagePage:
        """
        Return up to `limit` messages older than `before`, oldest first.

        Fetches limit + 1 rows newest-first so has_more needs no count
        query. A cursor that does not resolve to a message of this trip
        is ignored.
        """
        limit = clamp_limit(limit)
        db = get_db()

        query: Dict[str, Any] = {"trip_id": trip_id, "is_deleted": {"$ne": True}}

        if before:
            anchor = await with_timeout(
                db.chat_messages.find_one(
                    {"message_id": before, "trip_id": trip_id},
                    {"created_at": 1, "message_id": 1},
                ),
                "cursor lookup",
            )
            if anchor:
                query["$or"] = [
                    {"created_at": {"$lt": anchor["created_at"]}},
                    {
                        "created_at": anchor["created_at"],
                        "message_id": {"$lt": anchor["message_id"]},
                    },
                ]

        cursor = db.chat_messages.find(query).sort(NEWEST_FIRST).limit(limit + 1)
        docs = await with_timeout(cursor.to_list(length=limit + 1), "history read")

        has_more = len(docs) > limit
        docs = docs[:limit]
        docs.reverse()

        messages = await self._hydrate(docs)

        return MessagePage(
            messages=messages,
            has_more=has_more,
            next_cursor=messages[0].id if has_more and messages else None,
        )

    async def _hydrate(self, docs: List[dict]) -> List[ChatMessageOut]:
        """Attach sender identity, resolving each distinct sender once."""
        senders: Dict[str, SenderInfo] = {}
        messages = []

        for doc in docs:
            sender_id = doc["sender_id"]
            if sender_id not in senders:
                senders[sender_id] = await self._resolve_sender_safely(sender_id)

            messages.append(
                ChatMessageOut(
                    id=doc["message_id"],
                    trip=doc["trip_id"],
                    sender=senders[sender_id],
                    text=doc["text"],
                    created_at=ensure_utc(doc["created_at"]),
                )
            )

        return messages

    async def _resolve_sender_safely(self, sender_id: str) -> SenderInfo:
        """The message is already stored; a profile lookup failure must not lose it."""
        try:
            return await self.user_service.resolve_sender(sender_id)
        except Exception as e:
            logger.warning(f"Sender lookup failed for {sender_id}: {e}")
            return SenderInfo(id=sender_id, name="Unknown")

    async def _was_stored(self, message_id: str) -> bool:
        """Whether an insert whose acknowledgment was lost reached the server."""
        db = get_db()
        try:
            doc = await with_timeout(
                db.chat_messages.find_one({"message_id": message_id}, {"message_id": 1}),
                "insert check",
            )
        except StorageUnavailableError:
            return False
        return doc is not None
