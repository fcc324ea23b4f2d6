"""
Incremental decoder for Ollama's newline-delimited JSON response stream.

Chunks arrive with no alignment to record boundaries. The decoder keeps the
unterminated tail of each chunk and prepends it to the next one, so a record
split anywhere (even inside a multi-byte character) is reassembled before it
is parsed.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterable

import structlog
from pydantic import ValidationError

from ..models import DecodeState, StreamingStats, StreamRecord, TokenEvent
from .listeners import Listener, null_listener

# Constants
LINE_DELIMITER = b"\n"
MAX_LOGGED_LINE = 200

logger = structlog.get_logger(__name__)


def parse_record(line: bytes) -> StreamRecord | None:
    """Parse one line, returning None when it is not a record."""
    try:
        return StreamRecord.model_validate_json(line)
    except ValidationError:
        return None


class StreamDecoder:
    """Decodes one response stream and pushes its tokens to a listener.

    Create a new decoder per request; the decode state lives on the instance
    and is never shared.
    """

    def __init__(self, listener: Listener | None = None):
        self.listener = listener or null_listener
        self.state = DecodeState()

    @property
    def finished(self) -> bool:
        return self.state.finished

    async def decode(self, chunks: AsyncIterable[bytes]) -> str:
        """Consume the whole stream and return the accumulated text."""
        async for chunk in chunks:
            if await self.feed(chunk):
                break
        return await self.flush()

    async def feed(self, chunk: bytes) -> bool:
        """Process one chunk. Returns True once the terminal record was seen."""
        state = self.state
        if state.finished:
            return True

        state.chunk_count += 1
        *lines, state.pending_bytes = (state.pending_bytes + chunk).split(
            LINE_DELIMITER
        )

        for line in lines:
            await self._process_line(line)
            if state.finished:
                logger.debug(
                    "Terminal record received",
                    chunks=state.chunk_count,
                    records=state.record_count,
                )
                state.pending_bytes = b""
                break

        return state.finished

    async def flush(self) -> str:
        """Finish the stream, offering any unterminated tail to the parser once."""
        state = self.state
        if not state.finished and state.pending_bytes.strip():
            tail, state.pending_bytes = state.pending_bytes, b""
            await self._process_line(tail)
        state.pending_bytes = b""
        return state.accumulated_text

    async def _process_line(self, line: bytes) -> None:
        if not line.strip():
            return

        record = parse_record(line)
        if record is None:
            self.state.discarded_lines += 1
            logger.debug(
                "Discarding non-record line",
                line=line[:MAX_LOGGED_LINE].decode("utf-8", errors="replace"),
            )
            return

        self.state.append(record.token)
        if not record.done or record.token:
            await self._emit(TokenEvent(text=record.token))
        if record.done:
            self.state.finished = True

    async def _emit(self, event: TokenEvent) -> None:
        # The next record waits until the listener is done with this one
        result = self.listener(event)
        if inspect.isawaitable(result):
            await result

    def get_stats(self) -> StreamingStats:
        """Get streaming statistics for monitoring."""
        return StreamingStats(
            total_chunks=self.state.chunk_count,
            total_records=self.state.record_count,
            discarded_lines=self.state.discarded_lines,
            finished=self.state.finished,
        )
