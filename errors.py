"""Error taxonomy shared by the session engine and the HTTP layer.

Each error carries the HTTP status it maps to. Business outcomes such as an
already answered question or an exhausted question list are not errors; they
are returned as values by the session engine.
"""


class QuizError(Exception):
    status_code = 500
    public_message = "server error"

    def __init__(self, message=None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class InvalidInput(QuizError):
    status_code = 400
    public_message = "invalid input"


class InvalidReference(QuizError):
    """A referenced row exists but does not belong to the given parent."""

    status_code = 400
    public_message = "invalid reference"


class AuthenticationError(QuizError):
    status_code = 401
    public_message = "missing token"


class Unauthorized(QuizError):
    status_code = 403
    public_message = "unauthorized"


class NotFound(QuizError):
    status_code = 404
    public_message = "not found"


class StoreFailure(QuizError):
    """Unexpected persistence failure. The message is never sent to clients."""

    status_code = 500
    public_message = "server error"


class DeliveryError(Exception):
    """Raised by a live connection that cannot accept another event."""
