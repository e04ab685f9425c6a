"""TripChat Routers Package"""

from tripchat.routers import messages

__all__ = [
    "messages",
]
