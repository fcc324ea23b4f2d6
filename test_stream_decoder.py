#!/usr/bin/env python3
"""
Tests for the incremental NDJSON stream decoder.
"""

import asyncio
import random

import pytest

from crunchypi.llm.models import StreamRecord, TokenEvent
from crunchypi.llm.streaming import QueueListener, StreamDecoder, parse_record

FULL_STREAM = (
    b'{"model":"qwen2-math:1.5b","response":"The","done":false}\n'
    b'{"model":"qwen2-math:1.5b","response":" answer","done":false}\n'
    b'{"model":"qwen2-math:1.5b","response":" is 4 \xe2\x9c\x93","done":false}\n'
    b'{"model":"qwen2-math:1.5b","response":"","done":true,"eval_count":3}\n'
)
EXPECTED_TOKENS = ["The", " answer", " is 4 ✓"]


async def chunked(*chunks: bytes):
    for chunk in chunks:
        yield chunk


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


async def decode(*chunks: bytes) -> tuple[str, list[str]]:
    events: list[TokenEvent] = []
    decoder = StreamDecoder(events.append)
    text = await decoder.decode(chunked(*chunks))
    return text, [event.text for event in events]


class TestParseRecord:
    """Test parsing of single lines."""

    def test_parses_response_and_done(self):
        record = parse_record(b'{"response":"hi","done":false}')
        assert record == StreamRecord(token="hi", done=False)

    def test_done_defaults_to_false(self):
        record = parse_record(b'{"response":"hi"}')
        assert record is not None
        assert record.done is False

    def test_ignores_extra_fields(self):
        record = parse_record(
            b'{"model":"m","created_at":"2024-01-01T00:00:00Z","response":"x","done":true}'
        )
        assert record == StreamRecord(token="x", done=True)

    @pytest.mark.parametrize(
        "line",
        [
            b"not json",
            b'{"response":"cut',
            b"[1, 2, 3]",
            b'"just a string"',
            b'{"error":"model not loaded"}',
            b": keepalive",
        ],
    )
    def test_non_records_return_none(self, line):
        assert parse_record(line) is None


class TestStreamDecoder:
    """Test stream decoding behaviour."""

    @pytest.mark.asyncio
    async def test_two_plus_two_example(self):
        """A record split across chunks is reassembled."""
        text, tokens = await decode(
            b'{"response":"4","done":false}\n',
            b'{"resp',
            b'onse":"","done":true}\n',
        )
        assert text == "4"
        assert tokens == ["4"]

    @pytest.mark.asyncio
    async def test_single_chunk(self):
        text, tokens = await decode(FULL_STREAM)
        assert text == "".join(EXPECTED_TOKENS)
        assert tokens == EXPECTED_TOKENS

    @pytest.mark.asyncio
    async def test_one_byte_chunks(self):
        """Single bytes also split the multi-byte check mark."""
        text, tokens = await decode(*split_every(FULL_STREAM, 1))
        assert text == "".join(EXPECTED_TOKENS)
        assert tokens == EXPECTED_TOKENS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [2, 3, 7, 16, 50, 64, 1000])
    async def test_fixed_size_chunks(self, size):
        text, tokens = await decode(*split_every(FULL_STREAM, size))
        assert text == "".join(EXPECTED_TOKENS)
        assert tokens == EXPECTED_TOKENS

    @pytest.mark.asyncio
    async def test_random_partitions(self):
        rng = random.Random(1234)
        for _ in range(25):
            cuts = sorted(rng.sample(range(1, len(FULL_STREAM)), 6))
            bounds = [0, *cuts, len(FULL_STREAM)]
            chunks = [FULL_STREAM[a:b] for a, b in zip(bounds, bounds[1:])]
            text, tokens = await decode(*chunks)
            assert text == "".join(EXPECTED_TOKENS)
            assert tokens == EXPECTED_TOKENS

    @pytest.mark.asyncio
    async def test_chunk_with_many_lines_and_partial_tail(self):
        text, tokens = await decode(
            b'{"response":"a"}\n{"response":"b"}\n{"respo',
            b'nse":"c"}\n{"response":"d","done":true}\n',
        )
        assert text == "abcd"
        assert tokens == ["a", "b", "c", "d"]

    @pytest.mark.asyncio
    async def test_malformed_line_is_discarded(self):
        with_noise = await decode(
            b'{"response":"Hel","done":false}\n'
            b"this is not json\n"
            b'{"response":"lo","done":false}\n'
            b'{"response":"","done":true}\n'
        )
        without_noise = await decode(
            b'{"response":"Hel","done":false}\n'
            b'{"response":"lo","done":false}\n'
            b'{"response":"","done":true}\n'
        )
        assert with_noise == without_noise == ("Hello", ["Hel", "lo"])

    @pytest.mark.asyncio
    async def test_blank_lines_are_skipped(self):
        decoder = StreamDecoder()
        text = await decoder.decode(chunked(
            b"\n   \n",
            b'{"response":"x"}\r\n\r\n',
            b'\t\n{"response":"y","done":true}\n',
        ))
        assert text == "xy"
        assert decoder.get_stats().discarded_lines == 0

    @pytest.mark.asyncio
    async def test_bytes_after_terminal_record_are_ignored(self):
        text, tokens = await decode(
            b'{"response":"ok","done":false}\n'
            b'{"response":"","done":true}\n'
            b'{"response":"ignored in same chunk","done":false}\n',
            b'{"response":"ignored later","done":false}\n',
        )
        assert text == "ok"
        assert tokens == ["ok"]

    @pytest.mark.asyncio
    async def test_later_chunks_are_not_read_after_terminal_record(self):
        consumed = []

        async def source():
            for chunk in (b'{"response":"a","done":true}\n', b'{"response":"b"}\n'):
                consumed.append(chunk)
                yield chunk

        decoder = StreamDecoder()
        assert await decoder.decode(source()) == "a"
        assert len(consumed) == 1
        assert decoder.finished

    @pytest.mark.asyncio
    async def test_terminal_record_with_token_is_emitted(self):
        text, tokens = await decode(b'{"response":"end","done":true}\n')
        assert text == "end"
        assert tokens == ["end"]

    @pytest.mark.asyncio
    async def test_non_terminal_empty_token_is_emitted(self):
        text, tokens = await decode(b'{"response":"","done":false}\n{"response":"a"}\n')
        assert text == "a"
        assert tokens == ["", "a"]

    @pytest.mark.asyncio
    async def test_stream_end_without_terminal_record(self):
        decoder = StreamDecoder()
        text = await decoder.decode(chunked(
            b'{"response":"par","done":false}\n',
            b'{"response":"tial","done":false}\n',
        ))
        assert text == "partial"
        assert not decoder.finished

    @pytest.mark.asyncio
    async def test_trailing_fragment_is_discarded(self):
        decoder = StreamDecoder()
        text = await decoder.decode(chunked(
            b'{"response":"kept","done":false}\n',
            b'{"response":"lost","do',
        ))
        assert text == "kept"
        assert decoder.get_stats().discarded_lines == 1
        assert decoder.state.pending_bytes == b""

    @pytest.mark.asyncio
    async def test_complete_trailing_record_without_newline_is_kept(self):
        text, tokens = await decode(b'{"response":"a"}\n{"response":"b","done":true}')
        assert text == "ab"
        assert tokens == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        assert await decode() == ("", [])

    @pytest.mark.asyncio
    async def test_feed_after_finish_is_a_no_op(self):
        decoder = StreamDecoder()
        assert await decoder.feed(b'{"response":"a","done":true}\n') is True
        assert await decoder.feed(b'{"response":"b"}\n') is True
        assert await decoder.flush() == "a"
        assert decoder.get_stats().total_chunks == 1

    @pytest.mark.asyncio
    async def test_each_decoder_owns_its_state(self):
        first, second = StreamDecoder(), StreamDecoder()
        await first.feed(b'{"response":"one"}\n{"resp')
        await second.feed(b'{"response":"two"}\n')
        await first.feed(b'onse":"!"}\n')
        assert await first.flush() == "one!"
        assert await second.flush() == "two"

    @pytest.mark.asyncio
    async def test_stats(self):
        decoder = StreamDecoder()
        await decoder.decode(chunked(
            b'{"response":"a"}\ngarbage\n',
            b'{"response":"b","done":true}\n',
        ))
        stats = decoder.get_stats()
        assert stats.total_chunks == 2
        assert stats.total_records == 2
        assert stats.discarded_lines == 1
        assert stats.finished is True


class TestListeners:
    """Test listener delivery."""

    @pytest.mark.asyncio
    async def test_async_listener_is_awaited_before_next_record(self):
        seen: list[str] = []
        in_flight = False

        async def listener(event: TokenEvent) -> None:
            nonlocal in_flight
            assert not in_flight
            in_flight = True
            await asyncio.sleep(0)
            seen.append(event.text)
            in_flight = False

        decoder = StreamDecoder(listener)
        text = await decoder.decode(chunked(
            b'{"response":"a"}\n{"response":"b"}\n',
            b'{"response":"c","done":true}\n',
        ))
        assert text == "abc"
        assert seen == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_listener_sees_token_before_it_is_accumulated_further(self):
        snapshots: list[str] = []
        decoder = StreamDecoder()
        decoder.listener = lambda event: snapshots.append(
            decoder.state.accumulated_text
        )
        await decoder.decode(chunked(b'{"response":"a"}\n{"response":"b"}\n'))
        assert snapshots == ["a", "ab"]

    @pytest.mark.asyncio
    async def test_queue_listener_delivers_in_order(self):
        listener = QueueListener(maxsize=1)
        received: list[str] = []

        async def consume():
            async for event in listener:
                received.append(event.text)

        consumer = asyncio.create_task(consume())
        decoder = StreamDecoder(listener)
        text = await decoder.decode(chunked(*split_every(FULL_STREAM, 5)))
        await listener.close()
        await consumer

        assert text == "".join(EXPECTED_TOKENS)
        assert received == EXPECTED_TOKENS
