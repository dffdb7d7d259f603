"""
Chat backend client with incremental SSE streaming.

This package provides:
- Streaming chat replies over Server-Sent Events with token coalescing
- Cancellable streams with exactly one terminal callback
- Explicit credential providers for bearer tokens
- REST calls for authentication, history, documents and health
"""

from __future__ import annotations

from .api import ChatAPIClient
from .credentials import (
    CredentialProvider,
    FileCredentialStore,
    InMemoryCredentialStore,
)
from .exceptions import (
    AuthenticationError,
    ChatClientError,
    ProtocolError,
    SessionExpiredError,
    StreamDecodingError,
    TransportError,
)
from .models import (
    ClientSettings,
    ParsedEvent,
    StreamRequest,
    StreamResult,
    StreamState,
)
from .streaming import ChatStream, ChatStreamClient, StreamHandle

__all__ = [
    # Exceptions
    "AuthenticationError",
    # Clients
    "ChatAPIClient",
    "ChatClientError",
    "ChatStream",
    "ChatStreamClient",
    # Models
    "ClientSettings",
    # Credentials
    "CredentialProvider",
    "FileCredentialStore",
    "InMemoryCredentialStore",
    "ParsedEvent",
    "ProtocolError",
    "SessionExpiredError",
    "StreamDecodingError",
    "StreamHandle",
    "StreamRequest",
    "StreamResult",
    "StreamState",
    "TransportError",
]
