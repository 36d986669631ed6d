"""
Resolve one image slot to an ImageResult.

The resolver is the failure boundary for image generation: whatever the
collaborator does (raise, time out, return junk), resolve() returns a value.
"""
import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from .placeholders import neutralize_placeholders
from .results import (
    ImageFailure,
    ImageResult,
    ImageSkipped,
    ImageSuccess,
    is_image_data_uri,
)

logger = structlog.get_logger()

# async (prompt) -> data URI
ImageGenerator = Callable[[str], Awaitable[str]]

NO_PROMPT_REASON = "no prompt provided"
INVALID_DATA_REASON = "invalid image data"


class ImageResolver:
    """
    Wraps an image generation collaborator.

    Exactly one collaborator call per resolve() with a non-blank prompt, no
    retries (retrying is the collaborator client's business). Holds no
    per-slot state, so concurrent resolve() calls are independent.
    """

    def __init__(self, generate: ImageGenerator, timeout: Optional[float] = None):
        self._generate = generate
        self.timeout = timeout
        self.calls = 0

    async def resolve(self, index: int, prompt: Optional[str]) -> ImageResult:
        if not prompt or not prompt.strip():
            logger.info("image_slot_skipped", index=index, reason=NO_PROMPT_REASON)
            return ImageSkipped(reason=NO_PROMPT_REASON)

        self.calls += 1
        try:
            if self.timeout is not None:
                data_uri = await asyncio.wait_for(self._generate(prompt), timeout=self.timeout)
            else:
                data_uri = await self._generate(prompt)
        except asyncio.TimeoutError as e:
            if self.timeout is None:
                reason = _error_message(e)
            else:
                reason = f"image generation timed out after {self.timeout:g}s"
            logger.warning("image_slot_timeout", index=index, timeout=self.timeout)
            return ImageFailure(reason=reason)
        except Exception as e:
            logger.error("image_slot_failed", index=index, prompt=prompt[:50], error=str(e))
            return ImageFailure(reason=_error_message(e))

        if not is_image_data_uri(data_uri):
            logger.warning(
                "image_slot_invalid_data",
                index=index,
                preview=str(data_uri)[:100] if data_uri else "EMPTY",
            )
            return ImageFailure(reason=INVALID_DATA_REASON)

        logger.info("image_slot_resolved", index=index, prompt=prompt[:50])
        return ImageSuccess(data_uri=data_uri)


def _error_message(error: BaseException) -> str:
    message = str(error).strip() or type(error).__name__
    return neutralize_placeholders(message)
