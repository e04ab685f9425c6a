"""TripChat Services Package"""

from tripchat.services.auth_service import AuthService
from tripchat.services.membership_service import MembershipService
from tripchat.services.message_service import MessageService
from tripchat.services.user_service import UserService

__all__ = [
    "AuthService",
    "MembershipService",
    "MessageService",
    "UserService",
]
