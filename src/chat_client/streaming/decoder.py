"""
Incremental byte and line decoding for SSE response bodies.

Network reads split the body at arbitrary byte offsets, so both stages keep
a remainder between calls: ByteDecoder holds incomplete UTF-8 sequences and
LineReassembler holds the unterminated tail of the text.
"""

from __future__ import annotations

import codecs
from collections.abc import Iterator

from ..exceptions import StreamDecodingError

LINE_DELIMITER = "\n"


class ByteDecoder:
    """Strict incremental UTF-8 decoder."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder: codecs.IncrementalDecoder = codecs.getincrementaldecoder(
            encoding
        )(errors="strict")

    def decode(self, chunk: bytes) -> str:
        """Decode one chunk, carrying any partial multi-byte sequence forward."""
        try:
            return self._decoder.decode(chunk, final=False)
        except UnicodeDecodeError as e:
            raise StreamDecodingError(f"Malformed response stream: {e}") from e

    def finish(self) -> str:
        """Flush at end of stream; a dangling partial sequence is malformed."""
        try:
            return self._decoder.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise StreamDecodingError(
                f"Response stream ended inside a character: {e}"
            ) from e


class LineReassembler:
    """Splits decoded text into complete lines across fragment boundaries."""

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def remainder(self) -> str:
        """Unterminated text waiting for its delimiter."""
        return self._buffer

    def feed(self, text: str) -> Iterator[str]:
        """
        Append a fragment and yield every line it completes.

        The last split piece never carries a delimiter, so it becomes the new
        buffer. A trailing carriage return is dropped from each line.
        """
        if not text:
            return iter(())
        self._buffer += text
        *lines, self._buffer = self._buffer.split(LINE_DELIMITER)
        return (line.removesuffix("\r") for line in lines)
