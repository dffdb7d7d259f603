"""
Shared fixtures: a fake chat backend built on httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from src.chat_client.models import ClientSettings

BASE_URL = "http://chat.test"


@pytest.fixture
def settings() -> ClientSettings:
    return ClientSettings(base_url=BASE_URL, flush_interval=0.01)


class RecordingStream(httpx.AsyncByteStream):
    """Streamed body that yields each chunk as a separate read and records release."""

    def __init__(
        self,
        chunks: list[bytes],
        *,
        hang: bool = False,
        error: Exception | None = None,
    ):
        self.chunks = chunks
        self.hang = hang
        self.error = error
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Wait until predicate() holds; work after a terminal callback finishes on later loop turns."""
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout)


class FakeBackend:
    """Records requests and answers every stream call with one response."""

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        *,
        status_code: int = 200,
        json_body: dict | None = None,
        hang: bool = False,
        error: Exception | None = None,
        connect_error: Exception | None = None,
    ):
        self.chunks = chunks or []
        self.status_code = status_code
        self.json_body = json_body
        self.hang = hang
        self.error = error
        self.connect_error = connect_error
        self.requests: list[httpx.Request] = []
        self.bodies: list[RecordingStream] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.connect_error is not None:
            raise self.connect_error
        if self.json_body is not None:
            return httpx.Response(self.status_code, json=self.json_body)
        body = RecordingStream(self.chunks, hang=self.hang, error=self.error)
        self.bodies.append(body)
        return httpx.Response(
            self.status_code,
            headers={"content-type": "text/event-stream"},
            stream=body,
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
