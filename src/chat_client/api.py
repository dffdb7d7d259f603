"""
REST client for the chat backend: authentication, history, documents
and health checks. Streaming replies live in streaming.controller.
"""

from __future__ import annotations

from typing import Any

import httpx

from .credentials import (
    CredentialProvider,
    InMemoryCredentialStore,
    is_authenticated,
)
from .exceptions import (
    NOT_AUTHENTICATED_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    AuthenticationError,
    SessionExpiredError,
)
from .http import bearer_headers, build_http_client, protocol_error_from_response
from .logging_utils import log_client_operation
from .models import (
    ClientSettings,
    ConversationResponse,
    DocumentIngestResponse,
    DocumentResponse,
    HealthResponse,
    MessagesResponse,
    Token,
    UserCreate,
    UserLogin,
    UserResponse,
)


class ChatAPIClient:
    """Request/response calls against the chat backend."""

    def __init__(
        self,
        settings: ClientSettings,
        credentials: CredentialProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self.credentials = credentials or InMemoryCredentialStore()
        self._owns_client = http_client is None
        self._http = http_client or build_http_client(settings)

    async def __aenter__(self) -> ChatAPIClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        authenticated: bool = False,
        outside_prefix: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send one request and raise for non-success statuses.

        Authenticated requests attach the stored token; a 401 clears it
        and raises SessionExpiredError.
        """
        headers = dict(kwargs.pop("headers", None) or {})
        if authenticated:
            headers.update(bearer_headers(self.credentials.get_token()))

        url = (
            self.settings.root_url(endpoint) if outside_prefix
            else self.settings.url(endpoint)
        )
        response = await self._http.request(method, url, headers=headers, **kwargs)

        if authenticated and response.status_code == httpx.codes.UNAUTHORIZED:
            self.credentials.clear()
            raise SessionExpiredError(SESSION_EXPIRED_MESSAGE, status_code=401)
        if not response.is_success:
            raise protocol_error_from_response(response)
        return response

    # ========== Authentication ==========

    @log_client_operation("register")
    async def register(self, user: UserCreate) -> UserResponse:
        response = await self._request(
            "POST", "/auth/register", json=user.model_dump()
        )
        return UserResponse.model_validate(response.json())

    @log_client_operation("login")
    async def login(self, credentials: UserLogin) -> Token:
        """Log in with form-encoded credentials and store the token."""
        response = await self._request(
            "POST",
            "/auth/login",
            data={"username": credentials.username, "password": credentials.password},
        )
        token = Token.model_validate(response.json())
        self.credentials.set_token(token.access_token)
        return token

    @log_client_operation("get_current_user")
    async def get_current_user(self) -> UserResponse:
        response = await self._request("GET", "/auth/me", authenticated=True)
        return UserResponse.model_validate(response.json())

    def logout(self) -> None:
        self.credentials.clear()

    def is_authenticated(self) -> bool:
        return is_authenticated(self.credentials)

    # ========== Chat history ==========

    @log_client_operation("get_latest_messages")
    async def get_latest_messages(
        self, page: int = 1, page_size: int = 10
    ) -> MessagesResponse:
        response = await self._request(
            "GET",
            "/chat/messages/latest",
            authenticated=True,
            params={"page": page, "page_size": page_size},
        )
        return MessagesResponse.model_validate(response.json())

    @log_client_operation("get_conversation_messages")
    async def get_conversation_messages(
        self, conversation_id: int, page: int = 1, page_size: int = 10
    ) -> MessagesResponse:
        response = await self._request(
            "GET",
            f"/chat/conversations/{conversation_id}/messages",
            authenticated=True,
            params={"page": page, "page_size": page_size},
        )
        return MessagesResponse.model_validate(response.json())

    @log_client_operation("get_conversations")
    async def get_conversations(self) -> list[ConversationResponse]:
        response = await self._request("GET", "/chat/conversations", authenticated=True)
        return [ConversationResponse.model_validate(item) for item in response.json()]

    # ========== Documents ==========

    @log_client_operation("upload_document")
    async def upload_document(
        self,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> DocumentResponse:
        """Upload a document as multipart form data; requires a token."""
        if not self.is_authenticated():
            raise AuthenticationError(NOT_AUTHENTICATED_MESSAGE)
        response = await self._request(
            "POST",
            "/documents/upload",
            authenticated=True,
            files={"file": (filename, content, content_type)},
        )
        return DocumentResponse.model_validate(response.json())

    @log_client_operation("ingest_document")
    async def ingest_document(self, document_id: int) -> DocumentIngestResponse:
        response = await self._request(
            "POST", f"/documents/{document_id}/ingest", authenticated=True
        )
        return DocumentIngestResponse.model_validate(response.json())

    @log_client_operation("list_documents")
    async def list_documents(self) -> list[DocumentResponse]:
        response = await self._request("GET", "/documents/", authenticated=True)
        return [DocumentResponse.model_validate(item) for item in response.json()]

    # ========== Health ==========

    @log_client_operation("health_check")
    async def health_check(self) -> HealthResponse:
        response = await self._request("GET", "/health/", outside_prefix=True)
        return HealthResponse.model_validate(response.json())

    @log_client_operation("health_check_db")
    async def health_check_db(self) -> HealthResponse:
        response = await self._request("GET", "/health/db", outside_prefix=True)
        return HealthResponse.model_validate(response.json())
