"""Membership Service - Answers whether a user may use a trip's chat."""

import logging
from typing import Optional

from tripchat.database import get_db, with_timeout
from tripchat.exceptions import ForbiddenError, NotFoundError
from tripchat.models.trip import Trip, TripAccess

logger = logging.getLogger(__name__)

TRIP_NOT_FOUND = "Trip not found"
TRIP_DELETED = "Trip has been deleted"
NOT_A_MEMBER = "You are not a member of this trip"


class MembershipService:
    """
    Trip membership checks backed by the trips collection.

    SECURITY: Membership is the only authorization criterion for a trip's
    chat. Soft-deleted trips are never joinable, even for members.
    """

    async def _get_trip(self, trip_id: str) -> Optional[Trip]:
        db = get_db()
        doc = await with_timeout(
            db.trips.find_one({"trip_id": trip_id}), "trip lookup"
        )
        if not doc:
            return None
        return Trip(**doc)

    async def trip_exists(self, trip_id: str) -> bool:
        """True for a live (not soft-deleted) trip."""
        trip = await self._get_trip(trip_id)
        return trip is not None and not trip.is_deleted

    async def is_member(self, trip_id: str, user_id: str) -> bool:
        return await self.check_access(trip_id, user_id) == TripAccess.OK

    async def check_access(self, trip_id: str, user_id: str) -> TripAccess:
        """Distinguish not-found, deleted and forbidden for the caller."""
        trip = await self._get_trip(trip_id)

        if trip is None:
            return TripAccess.NOT_FOUND
        if trip.is_deleted:
            return TripAccess.DELETED
        if not trip.has_member(user_id):
            return TripAccess.FORBIDDEN
        return TripAccess.OK

    async def require_member(self, trip_id: str, user_id: str) -> None:
        """Raise the matching ChatError unless the user may use the chat."""
        access = await self.check_access(trip_id, user_id)

        if access == TripAccess.NOT_FOUND:
            raise NotFoundError(TRIP_NOT_FOUND)
        if access == TripAccess.DELETED:
            raise NotFoundError(TRIP_DELETED)
        if access == TripAccess.FORBIDDEN:
            logger.info(f"User {user_id} denied access to trip {trip_id}")
            raise ForbiddenError(NOT_A_MEMBER)
