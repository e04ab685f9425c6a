"""
Chat Errors

Error taxonomy shared by the gateway and the REST fallback. Every error
carries a stable machine `code` and the human `reason` shown to clients.
"""

from typing import Any, Dict


class ChatError(Exception):
    """Base class for errors reported back to a chat client."""

    code = "error"
    retryable = False

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_ack(self) -> Dict[str, Any]:
        """Structured acknowledgment body for the Socket.IO callback."""
        ack: Dict[str, Any] = {"error": self.reason, "code": self.code}
        if self.retryable:
            ack["retryable"] = True
        return ack


class ValidationError(ChatError):
    """Bad payload shape, empty or oversized text, missing trip id."""

    code = "validation"


class NotFoundError(ChatError):
    """Trip does not exist or has been soft-deleted."""

    code = "not_found"


class ForbiddenError(ChatError):
    """Trip exists but the user is not a member."""

    code = "forbidden"


class NotJoinedError(ChatError):
    """sendMessage on a room the connection never joined."""

    code = "not_joined"


class RateLimitedError(ChatError):
    """Per-connection send throttle exceeded."""

    code = "rate_limited"


class StorageUnavailableError(ChatError):
    """Database timed out or is unreachable."""

    code = "unavailable"
    retryable = True

    def __init__(self, reason: str = "Storage unavailable"):
        super().__init__(reason)
