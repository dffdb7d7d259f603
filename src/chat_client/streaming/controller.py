"""
Stream controller for chat replies delivered as Server-Sent Events.

One StreamSession owns one HTTP response end-to-end:

    bytes -> ByteDecoder -> LineReassembler -> SSEEventParser
          -> EventDispatcher -> TokenCoalescer -> on_token

Lifecycle: STARTING -> STREAMING -> COMPLETED | ERRORED | CANCELLED.
Exactly one of on_complete/on_error fires unless the caller cancels first;
after cancel() returns, no callback fires at all.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from typing import Any

import httpx

from ..credentials import CredentialProvider, InMemoryCredentialStore
from ..exceptions import (
    NOT_AUTHENTICATED_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    AuthenticationError,
    ChatClientError,
    ProtocolError,
    SessionExpiredError,
)
from ..http import bearer_headers, build_http_client, protocol_error_from_response
from ..logging_utils import ContextualLogger, StreamErrorHandler
from ..models import (
    ClientSettings,
    DoneAction,
    StreamRequest,
    StreamResult,
    StreamState,
    TokenAction,
)
from .coalescer import TokenCoalescer
from .decoder import ByteDecoder, LineReassembler
from .parser import EventDispatcher, SSEEventParser

TokenCallback = Callable[[str], None]
ErrorCallback = Callable[[ChatClientError], None]
CompleteCallback = Callable[[int | None], None]

EMPTY_RESPONSE_MESSAGE = "No response received from server"


class StreamSession:
    """Mutable state of a single stream invocation."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        on_token: TokenCallback,
        on_error: ErrorCallback | None,
        on_complete: CompleteCallback | None,
        flush_interval: float,
        on_unauthorized: Callable[[], None] | None = None,
        log: ContextualLogger | None = None,
    ):
        self._http = http_client
        self.url = url
        self._payload = payload
        self._headers = headers
        self._on_token = on_token
        self._on_error = on_error
        self._on_complete = on_complete
        self._on_unauthorized = on_unauthorized
        self.log = log or ContextualLogger()

        self.state = StreamState.STARTING
        self.result: StreamResult | None = None
        self._aborted = False
        self._task: asyncio.Task[None] | None = None
        self._finished = asyncio.Event()
        self._listeners: list[Callable[[StreamSession], None]] = []
        self._started_at = time.perf_counter()

        self.decoder = ByteDecoder()
        self.reassembler = LineReassembler()
        self.parser = SSEEventParser()
        self.dispatcher = EventDispatcher()
        self.coalescer = TokenCoalescer(
            self._emit_tokens,
            interval=flush_interval,
            on_error=self._on_flush_failure,
        )
        self.bytes_received = 0
        self.chars_delivered = 0

    def add_done_listener(self, listener: Callable[[StreamSession], None]) -> None:
        self._listeners.append(listener)

    def start(self) -> None:
        """Schedule the pump on the running loop."""
        if self.state.is_terminal or self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        """Abort the stream; idempotent and a no-op once terminal."""
        if self._aborted or self.state.is_terminal:
            return
        self._aborted = True
        self.coalescer.cancel()
        self._set_terminal(StreamState.CANCELLED)
        self.log.info("Stream cancelled", bytes_received=self.bytes_received)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def fail(self, error: ChatClientError) -> None:
        """Fail before or during streaming; fires on_error at most once."""
        if self._aborted or self.state.is_terminal:
            return
        try:
            self.coalescer.flush()
        except Exception as e:
            self.log.warning(
                "Dropping buffered tokens on failure",
                error_type=type(e).__name__,
                error_message=str(e),
            )
        if self._aborted:
            return
        self._set_terminal(StreamState.ERRORED, error=error)
        self._invoke(self._on_error, error)

    async def wait(self) -> StreamResult:
        await self._finished.wait()
        assert self.result is not None
        return self.result

    # ------------------------------------------------------------------
    # Pump
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            await self._pump()
        except asyncio.CancelledError:
            if self.state.is_terminal:
                # cancel() already settled the outcome
                return
            self._aborted = True
            self.coalescer.cancel()
            self._set_terminal(StreamState.CANCELLED)
            raise
        except Exception as e:
            if self._aborted or self.state.is_terminal:
                return
            self.fail(StreamErrorHandler.wrap_error(
                e, "chat stream", {"url": self.url}
            ))

    async def _pump(self) -> None:
        async with self._http.stream(
            "POST", self.url, json=self._payload, headers=self._headers
        ) as response:
            await self._check_response(response)
            self.state = StreamState.STREAMING
            self.log.debug("Stream open", status_code=response.status_code)

            async for chunk in response.aiter_bytes():
                if self._aborted:
                    return
                self.bytes_received += len(chunk)
                if self._process_text(self.decoder.decode(chunk)):
                    return

            if self._process_text(self.decoder.finish()):
                return

            if self.reassembler.remainder.strip():
                self.log.warning(
                    "Stream ended with unterminated line",
                    remainder=self.reassembler.remainder[:80],
                )
            # End of data without a done event still counts as success
            self._complete(None)

    async def _check_response(self, response: httpx.Response) -> None:
        if response.status_code == httpx.codes.UNAUTHORIZED and self._on_unauthorized:
            await response.aread()
            self._on_unauthorized()
            raise SessionExpiredError(SESSION_EXPIRED_MESSAGE, status_code=401)

        if not response.is_success:
            await response.aread()
            raise protocol_error_from_response(response)

        if response.status_code == httpx.codes.NO_CONTENT:
            raise ProtocolError(EMPTY_RESPONSE_MESSAGE, status_code=204)

    def _process_text(self, text: str) -> bool:
        """Run decoded text through the parser; True once the stream is terminal."""
        for line in self.reassembler.feed(text):
            event = self.parser.feed_line(line)
            if self.parser.terminal_reached:
                self._complete(None)
                return True
            if event is None:
                continue

            action = self.dispatcher.resolve(event)
            if isinstance(action, TokenAction):
                self.coalescer.append(action.text)
            elif isinstance(action, DoneAction):
                self._complete(action.conversation_id)
                return True

            if self._aborted or self.state.is_terminal:
                return True
        return False

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _emit_tokens(self, text: str) -> None:
        if self._aborted or self.state.is_terminal:
            return
        self.chars_delivered += len(text)
        self._on_token(text)

    def _on_flush_failure(self, error: Exception) -> None:
        # on_token raised from the flush timer, outside the pump task
        self.fail(StreamErrorHandler.wrap_error(
            error, "token delivery", {"url": self.url}
        ))
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _complete(self, conversation_id: int | None) -> None:
        if self._aborted or self.state.is_terminal:
            return
        # Deliver buffered text before the terminal callback
        self.coalescer.flush()
        if self._aborted:
            return
        self._set_terminal(StreamState.COMPLETED, conversation_id=conversation_id)
        self._invoke(self._on_complete, conversation_id)

    def _set_terminal(
        self,
        state: StreamState,
        *,
        conversation_id: int | None = None,
        error: ChatClientError | None = None,
    ) -> None:
        self.state = state
        self.result = StreamResult(
            state=state, conversation_id=conversation_id, error=error
        )
        self.coalescer.cancel()
        self._finished.set()

        duration = round((time.perf_counter() - self._started_at) * 1000, 2)
        if state == StreamState.COMPLETED:
            self.log.info(
                "Stream completed",
                conversation_id=conversation_id,
                chars_delivered=self.chars_delivered,
                flushes=self.coalescer.flush_count,
                duration_ms=duration,
            )
        elif state == StreamState.ERRORED:
            self.log.error(
                "Stream failed",
                error_type=type(error).__name__,
                error_message=str(error),
                duration_ms=duration,
            )

        for listener in self._listeners:
            listener(self)

    def _invoke(self, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            # The stream is already terminal; nothing left to report to
            self.log.error(
                "Terminal callback raised",
                callback=getattr(callback, "__name__", repr(callback)),
                error_type=type(e).__name__,
                error_message=str(e),
            )


class StreamHandle:
    """Cancellation capability for one stream; calling it cancels."""

    def __init__(self, session: StreamSession):
        self._session = session

    def __call__(self) -> None:
        self.cancel()

    def cancel(self) -> None:
        self._session.cancel()

    @property
    def state(self) -> StreamState:
        return self._session.state

    @property
    def done(self) -> bool:
        return self._session.state.is_terminal

    @property
    def result(self) -> StreamResult | None:
        return self._session.result

    def add_done_listener(self, listener: Callable[[StreamSession], None]) -> None:
        """Run listener on the terminal transition, or now if already terminal."""
        if self.done:
            listener(self._session)
        else:
            self._session.add_done_listener(listener)

    async def wait(self) -> StreamResult:
        """Wait for the terminal state and return the outcome."""
        return await self._session.wait()


class ChatStream:
    """
    Iterator view of a stream.

    Usage:
        async with client.stream(request) as stream:
            async for text in stream:
                ...
        stream.result.conversation_id
    """

    _END = object()

    def __init__(
        self, client: ChatStreamClient, request: StreamRequest, authenticated: bool
    ):
        self._client = client
        self._request = request
        self._authenticated = authenticated
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._handle: StreamHandle | None = None

    @property
    def result(self) -> StreamResult | None:
        return self._handle.result if self._handle else None

    async def __aenter__(self) -> ChatStream:
        self._handle = self._client.start_stream(
            self._request,
            self._queue.put_nowait,
            authenticated=self._authenticated,
        )
        # Every terminal state ends iteration, including outside cancellation
        self._handle.add_done_listener(lambda _session: self._queue.put_nowait(self._END))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._handle is not None:
            self._handle.cancel()

    def __aiter__(self) -> ChatStream:
        return self

    async def __anext__(self) -> str:
        if self._handle is None:
            raise RuntimeError("ChatStream must be entered with 'async with'")
        item = await self._queue.get()
        if item is self._END:
            # Keep the sentinel so repeated iteration stays exhausted
            self._queue.put_nowait(self._END)
            result = self._handle.result
            if result is not None and result.error is not None:
                raise result.error
            raise StopAsyncIteration
        return item


class ChatStreamClient:
    """
    Starts chat streams against the backend.

    Features:
    - Authenticated and public stream variants sharing one pipeline
    - Callback interface (start_stream) and iterator interface (stream)
    - Token coalescing for smooth incremental display
    - Idempotent cancellation releasing the HTTP response
    """

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
        self._active: set[StreamSession] = set()
        self.stats = {
            'started': 0,
            'completed': 0,
            'errored': 0,
            'cancelled': 0,
        }

    async def __aenter__(self) -> ChatStreamClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def start_stream(
        self,
        request: StreamRequest,
        on_token: TokenCallback,
        on_error: ErrorCallback | None = None,
        on_complete: CompleteCallback | None = None,
        *,
        authenticated: bool = True,
    ) -> StreamHandle:
        """
        Start streaming a reply and return its cancellation handle.

        With authenticated=True a missing token fails synchronously through
        on_error before any request is made; the returned handle is then
        already terminal. The public variant attaches a token when present.
        """
        path = (
            self.settings.stream_path if authenticated
            else self.settings.public_stream_path
        )
        token = self.credentials.get_token()
        headers = {"Accept": "text/event-stream", **bearer_headers(token)}

        stream_id = uuid.uuid4().hex[:8]
        log = ContextualLogger({
            "stream_id": stream_id,
            "endpoint": path,
            "variant": "authenticated" if authenticated else "public",
        })

        session = StreamSession(
            http_client=self._http,
            url=self.settings.url(path),
            payload=request.to_payload(),
            headers=headers,
            on_token=on_token,
            on_error=on_error,
            on_complete=on_complete,
            flush_interval=self.settings.flush_interval,
            on_unauthorized=self.credentials.clear if authenticated else None,
            log=log,
        )
        session.add_done_listener(self._on_session_done)
        self.stats['started'] += 1

        if authenticated and not token:
            session.fail(AuthenticationError(NOT_AUTHENTICATED_MESSAGE))
            return StreamHandle(session)

        self._active.add(session)
        log.info(
            "Stream started",
            url=session.url,
            conversation_id=request.conversation_id,
        )
        session.start()
        return StreamHandle(session)

    def stream(
        self, request: StreamRequest, *, authenticated: bool = True
    ) -> ChatStream:
        """Iterator interface over start_stream."""
        return ChatStream(self, request, authenticated)

    def _on_session_done(self, session: StreamSession) -> None:
        self._active.discard(session)
        key = {
            StreamState.COMPLETED: 'completed',
            StreamState.ERRORED: 'errored',
            StreamState.CANCELLED: 'cancelled',
        }[session.state]
        self.stats[key] += 1

    @property
    def active_streams(self) -> int:
        return len(self._active)

    def get_statistics(self) -> dict[str, int]:
        """Get stream counters for monitoring."""
        return {**self.stats, 'active': len(self._active)}

    async def aclose(self) -> None:
        """Cancel active streams and close the owned HTTP client."""
        for session in list(self._active):
            session.cancel()
        if self._owns_client:
            await self._http.aclose()
