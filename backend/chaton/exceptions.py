"""
Error taxonomy for the chat core.

Every error carries a stable ``code`` that is used in structured command
results and when mapping failures to HTTP responses.
"""


class ChatError(Exception):
    """Base exception for all chat core errors."""

    code = "chat_error"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ChatError):
    """Raised for empty text or malformed command input."""

    code = "validation"


class UnauthenticatedError(ChatError):
    """Raised when an operation needs a signed-in user and there is none."""

    code = "unauthenticated"


class SubscriptionError(ChatError):
    """Raised or reported when a live message subscription fails."""

    code = "subscription"


class RemoteWriteError(ChatError):
    """Raised when a write to the remote store fails.

    The write may or may not have been applied; callers must not assume
    a retried ``send`` is free of duplicates.
    """

    code = "remote_write"


class RemoteReadError(ChatError):
    """Raised when reading from the remote store fails."""

    code = "remote_read"
