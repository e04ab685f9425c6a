"""
Messages Router

REST fallback for trip chat: paginated history and sending without a
live socket connection.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from tripchat.config import settings
from tripchat.dependencies import get_chat_gateway, get_current_user_id
from tripchat.exceptions import (
    ChatError,
    ForbiddenError,
    NotFoundError,
    StorageUnavailableError,
)
from tripchat.models.chat_message import ChatMessageCreate, MessagePageResponse
from tripchat.services.membership_service import MembershipService
from tripchat.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter()
membership_service = MembershipService()
message_service = MessageService()


class PresenceResponse(BaseModel):
    """Users currently connected to the trip chat."""

    tripId: str
    onlineUserIds: List[str]


def raise_http(error: ChatError):
    """Map a chat error onto the matching HTTP status."""
    if isinstance(error, StorageUnavailableError):
        logger.error(f"REST chat storage failure: {error.reason}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat is temporarily unavailable. Please retry.",
        )

    status_code = status.HTTP_400_BAD_REQUEST
    if isinstance(error, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ForbiddenError):
        status_code = status.HTTP_403_FORBIDDEN

    raise HTTPException(status_code=status_code, detail=error.reason)


async def require_trip_member(trip_id: str, user_id: str = Depends(get_current_user_id)) -> str:
    """Dependency: the caller must belong to the trip."""
    try:
        await membership_service.require_member(trip_id, user_id)
    except ChatError as e:
        raise_http(e)
    return user_id


@router.get("/{trip_id}/messages", response_model=MessagePageResponse)
async def get_trip_messages(
    trip_id: str,
    limit: int = Query(default=settings.chat_page_default_limit, ge=1, le=settings.chat_page_max_limit),
    before: Optional[str] = Query(default=None, description="Message ID cursor"),
    user_id: str = Depends(require_trip_member),
):
    """
    Get one page of chat history, oldest first.

    SECURITY: Only trip members can read messages.
    """
    try:
        page = await message_service.page(trip_id, limit=limit, before=before)
    except ChatError as e:
        raise_http(e)

    return MessagePageResponse(
        messages=[m.to_wire() for m in page.messages],
        hasMore=page.has_more,
        nextCursor=page.next_cursor,
    )


@router.post("/{trip_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_trip_message(
    trip_id: str,
    request: ChatMessageCreate,
    user_id: str = Depends(require_trip_member),
    gateway=Depends(get_chat_gateway),
):
    """
    Send a message without a socket connection.

    The stored message is still broadcast to live room occupants.
    """
    try:
        message = await message_service.append(trip_id, user_id, request.text)
    except ChatError as e:
        raise_http(e)

    if gateway is not None:
        await gateway.broadcast_message(message)

    return {"message": "Message sent successfully", "data": message.to_wire()}


@router.get("/{trip_id}/presence", response_model=PresenceResponse)
async def get_trip_presence(
    trip_id: str,
    user_id: str = Depends(require_trip_member),
    gateway=Depends(get_chat_gateway),
):
    """Users with a live connection joined to this trip's chat."""
    online = gateway.online_user_ids(trip_id) if gateway is not None else []
    return PresenceResponse(tripId=trip_id, onlineUserIds=online)
