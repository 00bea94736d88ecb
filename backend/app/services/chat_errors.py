"""Error taxonomy for the live chat core.

Every error carries a stable machine-checkable ``code`` plus a human-readable
message, and can render itself as an event payload for the triggering
connection.
"""


class ChatError(Exception):
    """Base class for errors contained to a single connection or request."""

    code = "chat_error"
    event_type = "messageError"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_event(self) -> dict[str, str]:
        return {"type": self.event_type, "code": self.code, "message": self.message}


class AuthFailure(ChatError):
    """Missing, invalid or expired token, or the user no longer exists."""

    code = "auth_failed"
    event_type = "error"


class MessageValidationError(ChatError):
    """Malformed or empty message payload."""

    code = "invalid_message"


class MessageAuthorizationError(ChatError):
    """Acting on a room or message the requester does not own."""

    code = "forbidden"


class PersistenceFailure(ChatError):
    """Storage is unavailable; nothing was stored or broadcast and the send can be retried."""

    code = "persistence_failed"


class TransportFailure(ChatError):
    """Push to one connection failed; delivery to others is unaffected."""

    code = "transport_failed"


class RateLimited(ChatError):
    """The connection or its room exceeded the per minute send limit."""

    code = "rate_limited"
