"""
Pull-based text stream over an upstream chunk iterator.

TextStream forwards each upstream text chunk, encoded, as soon as the
consumer asks for it. Nothing runs in the background: when the consumer
stops pulling, production stops; closing the stream closes the upstream.

On upstream failure one diagnostic chunk is emitted, then the next pull
raises StreamError, so consumers can tell "ended with a diagnostic"
from "ended cleanly". Close and error are each signalled exactly once.
"""
from typing import AsyncIterator, Callable, Optional

import structlog

logger = structlog.get_logger()

STREAMING_ERROR_BANNER = "\n\n--- STREAMING ERROR ---\n"
INIT_ERROR_BANNER = "--- ERROR INITIALIZING STREAM ---\n"

OPEN = "open"
CLOSED = "closed"
ERRORED = "errored"

UpstreamFactory = Callable[[], AsyncIterator[str]]


class StreamError(RuntimeError):
    """The upstream failed; the stream ended with a diagnostic chunk."""


class TextStream:
    """Single-producer, single-consumer stream of encoded text chunks."""

    def __init__(self, open_upstream: UpstreamFactory, encoding: str = "utf-8"):
        self._open_upstream = open_upstream
        self.encoding = encoding
        self.state = OPEN
        self.error: Optional[BaseException] = None

        self._upstream: Optional[AsyncIterator[str]] = None
        self._error_raised = False

    def __aiter__(self) -> "TextStream":
        return self

    async def __anext__(self) -> bytes:
        if self.state == CLOSED:
            raise StopAsyncIteration
        if self.state == ERRORED:
            if self._error_raised:
                raise StopAsyncIteration
            self._error_raised = True
            raise StreamError(str(self.error)) from self.error

        if self._upstream is None:
            try:
                self._upstream = self._open_upstream()
            except Exception as e:
                logger.error("stream_init_failed", error=str(e))
                return self._fail(e, INIT_ERROR_BANNER, "Failed to initialize article generation stream.")

        while True:
            try:
                chunk = await self._upstream.__anext__()
            except StopAsyncIteration:
                await self._finish(CLOSED)
                raise StopAsyncIteration
            except Exception as e:
                logger.error("stream_upstream_failed", error=str(e))
                await self._close_upstream()
                return self._fail(e, STREAMING_ERROR_BANNER, "Unknown error during stream processing or generation.")

            if isinstance(chunk, str):
                if chunk:
                    return chunk.encode(self.encoding)
            else:
                logger.warning("stream_unexpected_chunk", chunk_type=type(chunk).__name__)

    def _fail(self, error: BaseException, banner: str, fallback: str) -> bytes:
        self.state = ERRORED
        self.error = error
        message = str(error) or fallback
        return f"{banner}{message}".encode(self.encoding)

    async def _close_upstream(self) -> None:
        upstream, self._upstream = self._upstream, None
        aclose = getattr(upstream, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as e:
                logger.warning("stream_upstream_close_failed", error=str(e))

    async def _finish(self, state: str) -> None:
        if self.state == OPEN:
            self.state = state
        await self._close_upstream()

    async def aclose(self) -> None:
        """Stop the stream. Safe to call any number of times."""
        if self.state == OPEN:
            logger.debug("stream_closed_by_consumer")
        await self._finish(CLOSED)

    async def __aenter__(self) -> "TextStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def collect(self) -> str:
        """Read the whole stream and decode it. Raises StreamError on failure."""
        parts = [chunk async for chunk in self]
        return b"".join(parts).decode(self.encoding)
