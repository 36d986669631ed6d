"""
Topic suggestion flow.
"""
import structlog

from .llm import _get_llm_config, call_llm_validated, response_schema_instructions
from .prompts import SUGGEST_TOPICS_PROMPT
from .schemas import SuggestTopicsInput, SuggestTopicsOutput

logger = structlog.get_logger()


async def suggest_topics(
    ctx,
    params: SuggestTopicsInput,
) -> SuggestTopicsOutput:
    """Suggest related topics or keywords for a free-form user input."""
    config = _get_llm_config(ctx, params.llm_config)

    ctx.report_input({
        "input": params.input[:200],
        "provider": config["provider"],
        "model": config["model"],
    })

    prompt = SUGGEST_TOPICS_PROMPT.format(
        input=params.input,
        response_schema=response_schema_instructions(SuggestTopicsOutput),
    )

    try:
        response = await call_llm_validated(
            prompt=prompt,
            config=config,
            response_model=SuggestTopicsOutput,
            max_tokens=500,
        )
    except Exception as e:
        logger.error("topic_suggestion_failed", error=str(e))
        ctx.report_output({
            "status": "error",
            "error": str(e),
        })
        raise RuntimeError(f"Topic suggestion failed: {e}") from e

    logger.info("topics_suggested", count=len(response.topics))
    ctx.report_output({
        "topics": response.topics,
        "count": len(response.topics),
        "status": "success",
    })

    return response
