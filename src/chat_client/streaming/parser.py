"""
SSE event parsing and dispatch for the chat stream.

The backend has shipped two encodings over time and both must be accepted
without configuration:

    event: token            data: {"event": "token", "data": "Hi"}
    data: Hi
                            data: {"event": "done", "data": {}}
    event: done
    data: {"conversation_id": 42}

SSEEventParser groups lines into ParsedEvent values; EventDispatcher resolves
either encoding into one TokenAction | DoneAction before any side effect.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from ..models import (
    DoneAction,
    ParsedEvent,
    ParserState,
    StreamAction,
    TokenAction,
)

logger = structlog.get_logger(__name__)

EVENT_PREFIX = "event: "
DATA_PREFIX = "data: "

TOKEN_EVENT = "token"
DONE_EVENT = "done"

_INVALID_JSON = object()


class SSEEventParser:
    """Line-at-a-time state machine for the event:/data: subset of SSE."""

    def __init__(self) -> None:
        self.state = ParserState.IDLE
        self.pending_event: str | None = None
        self.terminal_reached = False
        self.stats = {
            'lines': 0,
            'events': 0,
            'ignored_lines': 0,
        }

    def feed_line(self, line: str) -> ParsedEvent | None:
        """
        Process one reassembled line.

        Returns a ParsedEvent as soon as a non-blank data line is seen; a
        protocol event carries a single data line, so there is no need to
        wait for the blank terminator. Once a `done` block is terminated,
        terminal_reached is set and later lines are ignored.
        """
        if self.terminal_reached:
            return None

        self.stats['lines'] += 1
        stripped = line.lstrip()

        if not stripped.strip():
            if self.pending_event == DONE_EVENT:
                self.terminal_reached = True
                return None
            self.pending_event = None
            self.state = ParserState.IDLE
            return None

        if stripped.startswith(EVENT_PREFIX):
            self.pending_event = stripped[len(EVENT_PREFIX):].strip() or None
            self.state = ParserState.IN_EVENT
            return None

        if stripped.startswith(DATA_PREFIX):
            # Not trimmed: token text carries its own leading and trailing
            # whitespace (" world"); blank payloads are still dropped below
            payload = stripped[len(DATA_PREFIX):]
            if not payload.strip():
                return None
            self.stats['events'] += 1
            # pending_event is only cleared by the blank terminator line
            return ParsedEvent(event_name=self.pending_event, data=payload)

        # Unknown fields (id:, retry:, comments) are skipped
        self.stats['ignored_lines'] += 1
        return None

    def get_stats(self) -> dict[str, int]:
        """Get parser statistics for monitoring."""
        return self.stats.copy()


class EventDispatcher:
    """Resolves parsed events into stream actions."""

    def __init__(self) -> None:
        self.stats = {
            'tokens': 0,
            'completions': 0,
            'malformed_payloads': 0,
            'ignored_events': 0,
        }

    def resolve(self, event: ParsedEvent) -> StreamAction | None:  # noqa: PLR0911
        """
        Classify one event.

        JSON failures on the done and legacy paths are absorbed here: a
        malformed completion payload still completes the stream, only
        without a conversation id.
        """
        if event.event_name == TOKEN_EVENT:
            return self._token(event.data)

        if event.event_name == DONE_EVENT:
            payload = self._load_json(event.data)
            return self._done(payload)

        envelope = self._load_json(event.data)
        if envelope is _INVALID_JSON:
            if event.event_name is None:
                # Last-resort legacy fallback: the raw payload is the text
                return self._token(event.data)
            return self._ignore(event, "unknown event with non-JSON payload")

        if not isinstance(envelope, dict):
            return self._ignore(event, "envelope is not an object")

        kind = envelope.get("event")
        if kind == TOKEN_EVENT:
            text = envelope.get("data")
            if isinstance(text, int | float) and not isinstance(text, bool) and text:
                # Non-zero numbers count as token text
                text = str(text)
            if not isinstance(text, str) or not text:
                return self._ignore(event, "token envelope without text")
            return self._token(text)

        if kind == DONE_EVENT:
            return self._done(envelope.get("data"))

        return self._ignore(event, "unrecognized envelope")

    def _token(self, text: str) -> TokenAction:
        self.stats['tokens'] += 1
        return TokenAction(text=text)

    def _done(self, payload: Any) -> DoneAction:
        self.stats['completions'] += 1
        conversation_id = None
        if isinstance(payload, dict):
            value = payload.get("conversation_id")
            if isinstance(value, int) and not isinstance(value, bool):
                conversation_id = value
        return DoneAction(conversation_id=conversation_id)

    def _load_json(self, data: str) -> Any:
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            self.stats['malformed_payloads'] += 1
            logger.debug("Payload is not JSON", preview=data[:80])
            return _INVALID_JSON

    def _ignore(self, event: ParsedEvent, reason: str) -> None:
        self.stats['ignored_events'] += 1
        logger.debug(
            "Ignoring stream event",
            event_name=event.event_name,
            reason=reason,
        )
        return None

    def get_stats(self) -> dict[str, int]:
        """Get dispatch statistics for monitoring."""
        return self.stats.copy()
