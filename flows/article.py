"""
Article generation flows.

- generate_article: structured LLM draft, then image resolution and
  placeholder substitution into a finished document
- generate_article_stream: plain-text LLM output streamed chunk by chunk
  (no images)
"""
from typing import Optional

import structlog

from shared.assembler import assemble_article, slot_bound
from shared.resolver import ImageResolver
from shared.results import ArticleDraft, ImageResult
from shared.streaming import TextStream

from .images import _get_image_config, generate_image_data_uri
from .llm import _get_llm_config, call_llm_validated, open_llm_stream, response_schema_instructions
from .prompts import ARTICLE_PROMPT, STREAM_ARTICLE_PROMPT, build_article_prompt
from .schemas import (
    GenerateArticleInput,
    GenerateArticleOutput,
    GenerateArticleStreamInput,
    LLMArticleResponse,
)

logger = structlog.get_logger()

ARTICLE_MAX_TOKENS = 8000
STREAM_MAX_TOKENS = 4000


def _article_prompt_override(ctx) -> Optional[str]:
    """House-style instructions from run config, if any."""
    article_prompt_config = ctx.get_config("article_prompt")
    if not article_prompt_config:
        return None
    if isinstance(article_prompt_config, dict):
        return article_prompt_config.get("text")
    return str(article_prompt_config)


async def generate_article(
    ctx,
    params: GenerateArticleInput,
) -> GenerateArticleOutput:
    """
    Generate a complete article with up to five embedded images.

    Only a failed or empty LLM draft is an error (RuntimeError, no partial
    article). Image problems are rendered into the article as notes.
    """
    config = _get_llm_config(ctx, params.llm_config)
    image_config = _get_image_config(ctx, params.image_config)
    article_prompt = _article_prompt_override(ctx)

    ctx.report_input({
        "keywords": params.keywords,
        "content_type": params.content_type,
        "language": params.language,
        "output_format": params.output_format,
        "number_of_images": params.number_of_images,
        "concurrent_images": params.concurrent_images,
        "has_uploaded_content": bool(params.uploaded_content),
        "has_additional_context": bool(params.additional_context),
        "article_prompt_source": "config" if article_prompt else "default",
        "provider": config["provider"],
        "model": config["model"],
        "image_provider": image_config["provider"],
    })

    prompt = build_article_prompt(
        ARTICLE_PROMPT,
        keywords=params.keywords,
        content_type=params.content_type,
        language=params.language,
        output_format=params.output_format,
        uploaded_content=params.uploaded_content,
        additional_context=params.additional_context,
        number_of_images=params.number_of_images,
        article_prompt=article_prompt,
        response_schema=response_schema_instructions(LLMArticleResponse),
    )

    ctx.report_progress(5, "Drafting article")

    try:
        response = await call_llm_validated(
            prompt=prompt,
            config=config,
            response_model=LLMArticleResponse,
            max_tokens=ARTICLE_MAX_TOKENS,
        )
    except Exception as e:
        logger.error("article_generation_failed", error=str(e))
        ctx.report_output({
            "status": "error",
            "error": str(e),
        })
        raise RuntimeError(f"Article generation failed: {e}") from e

    if not response.article_content.strip():
        logger.error("article_generation_empty", keywords=params.keywords[:50])
        ctx.report_output({
            "status": "error",
            "error": "empty article content",
        })
        raise RuntimeError("No valid article content received from the LLM.")

    prompts = response.image_prompt_suggestions
    slots = slot_bound(params.number_of_images, prompts)

    logger.info(
        "article_drafted",
        words=len(response.article_content.split()),
        prompts=len(prompts),
        slots=slots,
    )
    ctx.report_progress(40, f"Draft ready, resolving {slots} image(s)")

    def on_slot(index: int, result: ImageResult, text: str) -> None:
        percent = 40 + int(55 * (index + 1) / slots)
        ctx.report_progress(percent, f"Image {index + 1}/{slots}: {result.status}")

    resolver = ImageResolver(
        lambda image_prompt: generate_image_data_uri(image_prompt, image_config),
        timeout=image_config["timeout"],
    )

    draft = ArticleDraft(
        text=response.article_content,
        format=params.output_format,
        language=params.language,
        content_type=params.content_type,
    )
    final = await assemble_article(
        draft,
        prompts,
        params.number_of_images,
        resolver,
        concurrent=params.concurrent_images,
        on_slot=on_slot,
    )

    output = GenerateArticleOutput(
        article=final.text,
        output_format=final.format,
        images_requested=params.number_of_images,
        images_embedded=final.embedded,
        images_failed=final.failed,
        images_skipped=final.skipped,
        placeholders_swept=final.swept,
        status="success",
    )

    ctx.report_progress(100, "Article complete")
    ctx.report_output({
        "full_prompt": prompt,
        "image_prompts": prompts,
        "article_length": len(output.article),
        "images_embedded": output.images_embedded,
        "images_failed": output.images_failed,
        "images_skipped": output.images_skipped,
        "placeholders_swept": output.placeholders_swept,
        "image_calls": resolver.calls,
        "status": "success",
    })

    return output


async def generate_article_stream(
    ctx,
    params: GenerateArticleStreamInput,
) -> TextStream:
    """
    Stream an article as UTF-8 chunks.

    The LLM request starts when the consumer pulls the first chunk. Failures
    show up in-band as a final diagnostic chunk, followed by StreamError.
    """
    config = _get_llm_config(ctx, params.llm_config)
    article_prompt = _article_prompt_override(ctx)

    ctx.report_input({
        "keywords": params.keywords,
        "content_type": params.content_type,
        "language": params.language,
        "output_format": params.output_format,
        "has_uploaded_content": bool(params.uploaded_content),
        "has_additional_context": bool(params.additional_context),
        "provider": config["provider"],
        "model": config["model"],
    })

    prompt = build_article_prompt(
        STREAM_ARTICLE_PROMPT,
        keywords=params.keywords,
        content_type=params.content_type,
        language=params.language,
        output_format=params.output_format,
        uploaded_content=params.uploaded_content,
        additional_context=params.additional_context,
        article_prompt=article_prompt,
    )

    logger.info("article_stream_prepared", provider=config["provider"], model=config["model"])
    ctx.report_output({
        "full_prompt": prompt,
        "status": "streaming",
    })

    return TextStream(lambda: open_llm_stream(prompt, config, max_tokens=STREAM_MAX_TOKENS))
