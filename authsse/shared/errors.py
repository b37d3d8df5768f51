"""
MODULE OVERVIEW:
The error taxonomy of a subscription attempt.

WHAT IS HAPPENING HERE:
Each error maps to the phase that failed. All of them are terminal for the
attempt and are handed to the caller's `on_error` exactly once. Cancellation is
not in this list: a stopped subscription ends quietly.
"""


class SSEError(Exception):
    """Base class for failures reported through `on_error`."""


class CredentialError(SSEError):
    """The token supplier raised before a request could be issued."""


class ConnectError(SSEError):
    """The streaming request never reached a successful response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamReadError(SSEError):
    """Reading an established stream failed."""
