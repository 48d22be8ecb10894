"""Error taxonomy shared by the HTTP and WebSocket transports.

Every failure the core reports to a client is a ``ChatError`` subclass. The
HTTP layer maps ``status_code`` onto the response; the push layer only uses
``message`` (sent back as ``messageError`` / ``roomError``).

    ValidationError     400  bad or missing input
    AuthError           401  missing or invalid bearer credential
    AuthorizationError  403  authenticated but not permitted
    NotFoundError       404  unknown user, room or message
    PersistenceError    500  storage failure (never retried by the core)
"""


class ChatError(Exception):
    """Base class for errors surfaced to chat clients."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(ChatError):
    status_code = 400


class AuthError(ChatError):
    status_code = 401


class AuthorizationError(ChatError):
    status_code = 403


class NotFoundError(ChatError):
    status_code = 404


class PersistenceError(ChatError):
    status_code = 500
