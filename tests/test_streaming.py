"""Tests for shared.streaming.TextStream."""

import asyncio
from typing import AsyncIterator, List

import pytest

from shared.streaming import (
    CLOSED,
    ERRORED,
    INIT_ERROR_BANNER,
    STREAMING_ERROR_BANNER,
    StreamError,
    TextStream,
)


class Upstream:
    """Async generator wrapper that records how far it got and whether it was closed."""

    def __init__(self, chunks: List[object], error: Exception = None) -> None:
        self.chunks = chunks
        self.error = error
        self.produced = 0
        self.closed = False

    async def generate(self) -> AsyncIterator[str]:
        try:
            for chunk in self.chunks:
                self.produced += 1
                yield chunk
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


async def drain(stream: TextStream) -> List[bytes]:
    return [chunk async for chunk in stream]


class TestTextStream:
    def test_forwards_chunks_encoded(self) -> None:
        upstream = Upstream(["Hello, ", "wörld"])
        stream = TextStream(upstream.generate)

        chunks = asyncio.run(drain(stream))

        assert chunks == [b"Hello, ", "wörld".encode("utf-8")]
        assert stream.state == CLOSED
        assert upstream.closed

    def test_skips_empty_and_non_text_chunks(self) -> None:
        upstream = Upstream(["a", "", {"not": "text"}, None, "b"])

        chunks = asyncio.run(drain(TextStream(upstream.generate)))

        assert chunks == [b"a", b"b"]

    def test_lazy_upstream(self) -> None:
        opened = []

        def factory():
            opened.append(True)
            return Upstream(["x"]).generate()

        stream = TextStream(factory)
        assert opened == []

        asyncio.run(drain(stream))
        assert opened == [True]

    def test_midstream_error_emits_diagnostic_then_raises(self) -> None:
        upstream = Upstream(["partial "], error=RuntimeError("connection reset"))
        stream = TextStream(upstream.generate)
        received = []

        async def consume():
            async for chunk in stream:
                received.append(chunk)

        with pytest.raises(StreamError) as excinfo:
            asyncio.run(consume())

        assert received == [b"partial ", (STREAMING_ERROR_BANNER + "connection reset").encode()]
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert stream.state == ERRORED
        assert upstream.closed

    def test_error_signalled_once(self) -> None:
        stream = TextStream(Upstream([], error=RuntimeError("x")).generate)

        async def pull_all():
            first = await stream.__anext__()
            with pytest.raises(StreamError):
                await stream.__anext__()
            with pytest.raises(StopAsyncIteration):
                await stream.__anext__()
            return first

        first = asyncio.run(pull_all())
        assert first == (STREAMING_ERROR_BANNER + "x").encode()

    def test_error_without_message_uses_fallback(self) -> None:
        stream = TextStream(Upstream([], error=RuntimeError()).generate)

        async def first_chunk():
            return await stream.__anext__()

        chunk = asyncio.run(first_chunk())
        assert chunk == (STREAMING_ERROR_BANNER + "Unknown error during stream processing or generation.").encode()

    def test_init_failure(self) -> None:
        def factory():
            raise ValueError("OPENAI_API_KEY not set")

        stream = TextStream(factory)

        async def consume():
            chunks = []
            with pytest.raises(StreamError):
                async for chunk in stream:
                    chunks.append(chunk)
            return chunks

        chunks = asyncio.run(consume())
        assert chunks == [(INIT_ERROR_BANNER + "OPENAI_API_KEY not set").encode()]

    def test_consumer_close_stops_production(self) -> None:
        upstream = Upstream(["a", "b", "c", "d"])
        stream = TextStream(upstream.generate)

        async def take_one():
            async with stream:
                async for chunk in stream:
                    return chunk

        assert asyncio.run(take_one()) == b"a"
        assert upstream.produced == 1
        assert upstream.closed
        assert stream.state == CLOSED

    def test_aclose_idempotent(self) -> None:
        stream = TextStream(Upstream(["a"]).generate)

        async def close_twice():
            await stream.aclose()
            await stream.aclose()
            return await drain(stream)

        assert asyncio.run(close_twice()) == []

    def test_collect(self) -> None:
        stream = TextStream(Upstream(["one ", "two"]).generate)

        assert asyncio.run(stream.collect()) == "one two"
