"""Server-Sent Events frame decoding.

Blocks are separated by a blank line.  Inside a block, ``event:`` names
the frame and one or more ``data:`` lines form its payload.  Bytes are
decoded with an incremental UTF-8 decoder so a multi-byte character
split across two network chunks is carried over intact.
"""

from __future__ import annotations

import codecs
import logging
from typing import AsyncGenerator, AsyncIterable

from responses_stream.types import DEFAULT_EVENT_NAME, SSEFrame

_logger = logging.getLogger(__name__)

_BLOCK_SEPARATOR = "\n\n"


def parse_block(block: str) -> SSEFrame | None:
    """Parse one SSE block.  Returns None when it has no ``data:`` line."""
    event = DEFAULT_EVENT_NAME
    data_lines: list[str] = []

    for raw in block.split("\n"):
        line = raw.strip()
        if not line:
            continue
        if line.startswith("event:"):
            event = line[len("event:"):].strip() or DEFAULT_EVENT_NAME
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())

    if not data_lines:
        _logger.debug("Dropping SSE block without data (event=%s)", event)
        return None
    return SSEFrame(data="\n".join(data_lines), event=event)


class SSEDecoder:
    """Incremental text-level SSE splitter.

    ``feed()`` returns every block completed by the new text and keeps
    the unterminated tail; ``flush()`` emits that tail once the stream
    has ended.  The frames produced do not depend on how the input was
    chunked.
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, text: str) -> list[SSEFrame]:
        if not text:
            return []
        # A trailing "\r" stays in the buffer until its "\n" arrives.
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        blocks = self._buffer.split(_BLOCK_SEPARATOR)
        self._buffer = blocks.pop()
        return self._parse_all(blocks)

    def flush(self) -> list[SSEFrame]:
        remainder, self._buffer = self._buffer, ""
        if not remainder.strip():
            return []
        return self._parse_all([remainder])

    @staticmethod
    def _parse_all(blocks: list[str]) -> list[SSEFrame]:
        frames: list[SSEFrame] = []
        for block in blocks:
            if not block.strip():
                continue
            frame = parse_block(block)
            if frame is not None:
                frames.append(frame)
        return frames


async def iter_sse_frames(
    chunks: AsyncIterable[bytes | str],
) -> AsyncGenerator[SSEFrame, None]:
    """Decode an async stream of byte (or text) chunks into SSE frames.

    Leftover buffered content is emitted as a final frame when the
    source is exhausted.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    splitter = SSEDecoder()

    async for chunk in chunks:
        text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        for frame in splitter.feed(text):
            yield frame

    for frame in splitter.feed(decoder.decode(b"", final=True)):
        yield frame
    for frame in splitter.flush():
        yield frame
