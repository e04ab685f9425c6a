"""Trip Model - The slice of a trip document the chat reads for membership."""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class TripAccess(str, Enum):
    """Outcome of a membership check."""
    OK = "ok"
    NOT_FOUND = "not_found"
    DELETED = "deleted"        # Soft-deleted trips are never joinable
    FORBIDDEN = "forbidden"    # Trip exists, user is not a member


class Trip(BaseModel):
    """
    Trip membership record.

    Trips are owned by the trip management service; chat only reads
    the owner, the member list and the soft-delete flag.
    """
    trip_id: str = Field(..., description="Trip ID")
    owner_id: str = Field(..., description="Owner user ID")
    member_ids: List[str] = Field(default_factory=list)
    is_deleted: bool = Field(default=False)

    def has_member(self, user_id: str) -> bool:
        return user_id == self.owner_id or user_id in self.member_ids
