"""
Article assembly: turn an LLM draft with image placeholders into a final
document.

    1. n = min(requested_count, len(image_prompts)); n <= 0 skips to 4.
    2. Resolve slots 0..n-1 and substitute each result into the placeholder
       carrying that exact index, in ascending index order.
    3. Slots past n are left alone here.
    4. Sweep: any token still present (truncated slots, hallucinated
       indices, duplicates) becomes the "unfilled" note.

Resolution may run concurrently; substitution is always ascending, so the
output is identical either way for identical resolver outcomes.
"""
import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from .placeholders import replace_placeholder, strip_placeholders
from .renderer import render_result, render_unfilled
from .resolver import ImageResolver
from .results import ArticleDraft, FinalArticle, ImageFailure, ImageResult

logger = structlog.get_logger()

# on_slot(index, result, working_text) after each substitution
SlotCallback = Callable[[int, ImageResult, str], None]


def slot_bound(requested_count: Optional[int], image_prompts: Optional[Sequence[Optional[str]]]) -> int:
    """How many slots to resolve."""
    return max(0, min(requested_count or 0, len(image_prompts or [])))


async def _resolve_contained(resolver: ImageResolver, index: int, prompt: Optional[str]) -> ImageResult:
    # ImageResolver never raises; a substitute resolver might
    try:
        return await resolver.resolve(index, prompt)
    except Exception as e:
        logger.error("image_resolver_raised", index=index, error=str(e))
        return ImageFailure(reason=str(e) or type(e).__name__)


def sweep_placeholders(text: str, output_format: str) -> Tuple[str, int]:
    """Replace every remaining placeholder with the unfilled note."""
    return strip_placeholders(text, render_unfilled(output_format))


async def assemble_article(
    draft: ArticleDraft,
    image_prompts: Optional[Sequence[Optional[str]]],
    requested_count: Optional[int],
    resolver: ImageResolver,
    concurrent: bool = False,
    on_slot: Optional[SlotCallback] = None,
) -> FinalArticle:
    """
    Resolve, substitute and sweep. Never raises for image problems: every
    failure ends up as an in-band note in the returned text.
    """
    prompts: List[Optional[str]] = list(image_prompts or [])
    n = slot_bound(requested_count, prompts)
    output_format = draft.format
    text = draft.text

    logger.info(
        "article_assembly_started",
        requested=requested_count,
        prompts=len(prompts),
        slots=n,
        format=output_format,
        concurrent=concurrent,
    )

    results: Dict[int, ImageResult] = {}

    if n > 0:
        resolved: Optional[List[ImageResult]] = None
        if concurrent:
            resolved = list(await asyncio.gather(
                *(_resolve_contained(resolver, i, prompts[i]) for i in range(n))
            ))

        for i in range(n):
            if resolved is not None:
                result = resolved[i]
            else:
                result = await _resolve_contained(resolver, i, prompts[i])
            results[i] = result

            substitution = render_result(
                result,
                output_format,
                index=i,
                prompt=prompts[i],
                content_type=draft.content_type,
            )
            text, replaced = replace_placeholder(text, i, substitution)
            if not replaced:
                logger.warning("image_placeholder_missing", index=i, status=result.status)

            if on_slot is not None:
                on_slot(i, result, text)

    text, swept = sweep_placeholders(text, output_format)
    if swept:
        logger.warning("image_placeholders_swept", count=swept)

    final = FinalArticle(text=text, format=output_format, results=results, swept=swept)
    logger.info(
        "article_assembled",
        embedded=final.embedded,
        failed=final.failed,
        skipped=final.skipped,
        swept=swept,
    )
    return final
