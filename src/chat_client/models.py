"""
Chat client data models.

Request/response bodies exchanged with the backend are pydantic models;
the streaming pipeline's internal values are frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ChatClientError

# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class StreamRequest(BaseModel):
    """Body of a streaming chat request. Immutable once submitted."""
    model_config = ConfigDict(frozen=True)

    message: str
    conversation_id: int | None = None
    use_rag: bool | None = None
    temperature: float | None = Field(default=None, ge=0.0)
    max_tokens: int | None = Field(default=None, gt=0)

    def to_payload(self) -> dict[str, Any]:
        """JSON body with unset fields omitted."""
        return self.model_dump(exclude_none=True)


class StreamState(Enum):
    """Lifecycle of one stream."""
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            StreamState.COMPLETED, StreamState.ERRORED, StreamState.CANCELLED
        )


class ParserState(Enum):
    """SSE event parser states."""
    IDLE = "idle"
    IN_EVENT = "in_event"


@dataclass(frozen=True)
class ParsedEvent:
    """One event extracted from the wire; event_name is None on the legacy path."""
    event_name: str | None
    data: str


@dataclass(frozen=True)
class TokenAction:
    """Append text to the output."""
    text: str


@dataclass(frozen=True)
class DoneAction:
    """Terminal event with optional conversation metadata."""
    conversation_id: int | None = None


StreamAction = TokenAction | DoneAction


@dataclass(frozen=True)
class StreamResult:
    """Terminal outcome of a stream."""
    state: StreamState
    conversation_id: int | None = None
    error: ChatClientError | None = None


@dataclass(frozen=True)
class ClientSettings:
    """Backend location and HTTP behaviour shared by the clients."""
    base_url: str
    api_prefix: str = "/api/v1"
    stream_path: str = "/chat/stream"
    public_stream_path: str = "/chat/stream/public"

    # Token coalescing (seconds)
    flush_interval: float = 0.03

    # Connection settings
    max_connections: int = 10
    max_keepalive: int = 5
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0

    def url(self, endpoint: str) -> str:
        """Absolute URL of an API endpoint."""
        return f"{self.base_url.rstrip('/')}{self.api_prefix}{endpoint}"

    def root_url(self, path: str) -> str:
        """Absolute URL outside the API prefix (health checks)."""
        return f"{self.base_url.rstrip('/')}{path}"


# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    username: str
    email: str
    password: str


class UserLogin(BaseModel):
    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    is_active: bool
    created_at: datetime


class MessageResponse(BaseModel):
    id: int
    role: str
    content: str
    created_at: datetime


class MessagesResponse(BaseModel):
    """One page of chat history."""
    messages: list[MessageResponse] = Field(default_factory=list)
    total: int
    page: int
    page_size: int
    has_more: bool
    conversation_id: int | None = None


class ConversationResponse(BaseModel):
    id: int
    title: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    message_count: int = 0


class DocumentResponse(BaseModel):
    id: int
    filename: str
    file_type: str
    file_size: int
    status: str
    created_at: datetime


class DocumentIngestResponse(BaseModel):
    document_id: int
    chunks_created: int
    embeddings_created: int
    status: str


class HealthResponse(BaseModel):
    status: str
    service: str | None = None
    database: str | None = None
    error: str | None = None
