"""
Time-bounded batching of streamed tokens.

The backend emits tokens far faster than a display can use them. Tokens are
buffered and delivered at most once per interval as one concatenated string;
ordering and total text are unchanged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

DEFAULT_FLUSH_INTERVAL = 0.03


class TokenCoalescer:
    """Buffers appended text and flushes it on a loop timer."""

    def __init__(
        self,
        on_flush: Callable[[str], None],
        interval: float = DEFAULT_FLUSH_INTERVAL,
        loop: asyncio.AbstractEventLoop | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ):
        if interval <= 0:
            raise ValueError("flush interval must be positive")
        self._on_flush = on_flush
        self._on_error = on_error
        self._interval = interval
        self._loop = loop
        self._buffer: list[str] = []
        self._timer: asyncio.TimerHandle | None = None
        self._closed = False
        self.flush_count = 0

    @property
    def pending(self) -> str:
        """Text appended since the last flush."""
        return "".join(self._buffer)

    @property
    def flush_scheduled(self) -> bool:
        return self._timer is not None

    def append(self, text: str) -> None:
        """Buffer text and schedule a flush if none is pending."""
        if self._closed or not text:
            return
        self._buffer.append(text)
        if self._timer is None:
            loop = self._loop or asyncio.get_running_loop()
            self._timer = loop.call_later(self._interval, self._on_timer)

    def flush(self) -> None:
        """Emit the whole buffer as one call; no-op when empty."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self._buffer:
            return
        text = "".join(self._buffer)
        # Emptied before the callback so re-entrant appends start a new cycle
        self._buffer.clear()
        self.flush_count += 1
        self._on_flush(text)

    def cancel(self) -> None:
        """Drop the pending timer and any buffered text; later appends are ignored."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._buffer.clear()

    def _on_timer(self) -> None:
        self._timer = None
        try:
            self.flush()
        except Exception as e:
            # Timer callbacks run outside the stream task
            if self._on_error is None:
                raise
            self._on_error(e)
