"""User Model - Profile fields needed to render a message sender."""

from typing import Optional

from pydantic import BaseModel, Field

from tripchat.models.chat_message import SenderInfo


class User(BaseModel):
    """
    User profile for MongoDB.

    Fields:
    - user_id: Internal immutable ID (the JWT `id` claim)
    - name: Display name shown next to messages
    - email: Account email
    """
    user_id: str = Field(..., description="Internal user ID")
    name: str = Field(..., description="Display name")
    email: Optional[str] = Field(None, description="Account email")

    def as_sender(self) -> SenderInfo:
        return SenderInfo(id=self.user_id, name=self.name, email=self.email)
