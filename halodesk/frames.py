"""
Event-stream frame decoding for router responses.

The router answers ``POST /v1/chat`` with blank-line delimited frames::

    event: delta
    data: {"text": "Hel"}

Text arrives in arbitrary chunks, so ``FrameDecoder`` keeps a carry-over
buffer and only emits a frame once its terminating blank line has been seen.
``FrameStream`` wraps the decoder around any async text source so it can be
consumed with ``async for``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

logger = logging.getLogger("halodesk.frames")

DEFAULT_EVENT = "message"
FRAME_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class Frame:
    """One decoded event: its name and its JSON (or ``{"text": raw}``) payload."""

    event: str
    data: Any


def parse_frame(block: str) -> Frame | None:
    """Parse a single frame body (without its terminating blank line).

    Returns ``None`` when the block carries no ``data:`` content.
    """
    event = DEFAULT_EVENT
    data_parts: list[str] = []
    for line in block.split("\n"):
        if line.startswith("event:"):
            # Repeated event lines overwrite each other; the last one wins.
            event = line[len("event:") :].strip() or DEFAULT_EVENT
        elif line.startswith("data:"):
            data_parts.append(line[len("data:") :].lstrip())

    raw = "".join(data_parts)
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except (ValueError, RecursionError):
        payload = {"text": raw}
    return Frame(event=event, data=payload)


# ---------------------------------------------------------------------------
# FrameDecoder
# ---------------------------------------------------------------------------


class FrameDecoder:
    """Incremental decoder: feed text chunks in, get complete frames out.

    A decoder belongs to exactly one response. Once ``close()`` has been called
    it refuses further input.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> str:
        """Buffered text that has not yet formed a complete frame."""
        return self._buffer

    def feed(self, chunk: str) -> list[Frame]:
        if self._closed:
            raise RuntimeError("FrameDecoder is closed; create a new decoder per response")
        if not chunk:
            return []

        # A "\r" left at the end of the previous chunk pairs up with a leading
        # "\n" here, so normalise the whole buffer rather than the chunk alone.
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")

        frames: list[Frame] = []
        while True:
            boundary = self._buffer.find(FRAME_SEPARATOR)
            if boundary < 0:
                break
            block = self._buffer[:boundary]
            self._buffer = self._buffer[boundary + len(FRAME_SEPARATOR) :]
            frame = parse_frame(block)
            if frame is not None:
                frames.append(frame)
        return frames

    def close(self) -> None:
        """End the stream, discarding any unterminated frame."""
        if self._buffer.strip():
            logger.debug(
                "[HaloDesk Frames] Discarding %d chars of unterminated data at end of stream.",
                len(self._buffer),
            )
        self._buffer = ""
        self._closed = True

    def __repr__(self) -> str:
        return f"FrameDecoder(pending={len(self._buffer)}, closed={self._closed})"


def iter_frames(chunks: Iterable[str]) -> Iterator[Frame]:
    """Decode a synchronous iterable of text chunks into frames."""
    decoder = FrameDecoder()
    try:
        for chunk in chunks:
            yield from decoder.feed(chunk)
    finally:
        decoder.close()


# ---------------------------------------------------------------------------
# FrameStream
# ---------------------------------------------------------------------------


class FrameStream:
    """Async iterator of frames over an async source of text chunks.

    Frames are yielded as soon as their terminator arrives; the source is never
    read ahead of what the consumer asks for.
    """

    def __init__(self, source: AsyncIterable[str]) -> None:
        self.source = source
        self._started = False

    def __aiter__(self) -> AsyncIterator[Frame]:
        if self._started:
            raise RuntimeError("FrameStream can only be iterated once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Frame]:
        decoder = FrameDecoder()
        try:
            async for chunk in self.source:
                for frame in decoder.feed(chunk):
                    yield frame
        finally:
            decoder.close()

    def __repr__(self) -> str:
        return f"FrameStream(source={self.source!r})"


def decode_frames(source: AsyncIterable[str]) -> AsyncIterator[Frame]:
    """Shorthand for ``aiter(FrameStream(source))``."""
    return FrameStream(source).__aiter__()
