"""
Error taxonomy for the chat client.

Every failure that reaches a caller is a ChatClientError subclass:
- AuthenticationError: no credential for an authenticated call (precondition)
- SessionExpiredError: the backend rejected the credential with 401
- TransportError: connect failure or a mid-stream disconnect
- ProtocolError: non-success HTTP status or a missing response body
- StreamDecodingError: the response body is not valid UTF-8
"""

from __future__ import annotations

from typing import Any

NOT_AUTHENTICATED_MESSAGE = "Not authenticated. Please log in."
SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."


class ChatClientError(Exception):
    """Base chat client error with HTTP context."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}


class AuthenticationError(ChatClientError):
    """Missing credential for an authenticated request."""
    pass


class SessionExpiredError(AuthenticationError):
    """The stored credential was rejected by the backend."""
    pass


class TransportError(ChatClientError):
    """Network-level failure not caused by cancellation."""
    pass


class ProtocolError(ChatClientError):
    """Non-success HTTP status or unusable response."""
    pass


class StreamDecodingError(ChatClientError):
    """Malformed UTF-8 in the response stream."""
    pass
