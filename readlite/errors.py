"""Error types surfaced by the engine.

Parse problems and token estimation drift are absorbed locally and never
show up here. Everything below reaches the caller at most once per stream.
"""

from typing import Any, Optional


class ReadLiteError(Exception):
    """Base class for all ReadLite errors."""

    def __init__(
        self,
        message: str,
        user_hint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.user_hint = user_hint or "Something went wrong. Please try again."
        self.details = details or {}


class TransportError(ReadLiteError):
    """Network or HTTP failure while opening or reading a stream."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        user_hint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, user_hint=user_hint, details=details)
        self.status_code = status_code


class ChannelClosedError(TransportError):
    """The channel was disconnected before the stream completed."""

    def __init__(self, message: str = "Connection was lost before the response completed"):
        super().__init__(message, user_hint="The connection closed early. Retry the request.")


class AuthError(ReadLiteError):
    """Upstream rejected the credentials (HTTP 401).

    Deliberately not a TransportError: callers should re-authenticate
    instead of retrying.
    """

    def __init__(self, message: str = "Authentication failed", details: Optional[dict[str, Any]] = None):
        super().__init__(message, user_hint="Please sign in again.", details=details)


class RequestTimeoutError(ReadLiteError):
    """A stream or request did not finish within its timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None):
        super().__init__(message, user_hint="The model took too long to respond. Retry the request.")
        self.timeout = timeout


class StreamAbortedError(ReadLiteError):
    """Raised inside an executor loop once its channel went away."""
