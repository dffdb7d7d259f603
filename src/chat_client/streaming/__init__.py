"""
Incremental SSE streaming for chat replies.

This module contains:
- Byte decoding and line reassembly across network reads
- SSE event parsing and dispatch of both wire encodings
- Token coalescing for smooth display
- Stream lifecycle and cancellation
"""

from .coalescer import TokenCoalescer
from .controller import ChatStream, ChatStreamClient, StreamHandle, StreamSession
from .decoder import ByteDecoder, LineReassembler
from .parser import EventDispatcher, SSEEventParser

__all__ = [
    "ByteDecoder",
    "ChatStream",
    "ChatStreamClient",
    "EventDispatcher",
    "LineReassembler",
    "SSEEventParser",
    "StreamHandle",
    "StreamSession",
    "TokenCoalescer",
]
