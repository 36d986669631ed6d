#!/usr/bin/env python3
"""
Run the article flows from the command line.

Reads secrets from .env (LLM_PROVIDER, LLM_MODEL, IMAGE_PROVIDER, API keys...).

Usage:
    python scripts/generate_article.py --keywords "solar power, batteries" --images 2
    python scripts/generate_article.py --keywords "rust async" --format html --output out.html
    python scripts/generate_article.py --keywords "sourdough" --stream
    python scripts/generate_article.py --search "home battery storage"
    python scripts/generate_article.py --suggest "urban gardening"
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from flows import (
    GenerateArticleInput,
    GenerateArticleStreamInput,
    GoogleSearchInput,
    LLMConfig,
    SuggestTopicsInput,
    generate_article,
    generate_article_stream,
    google_search,
    suggest_topics,
)
from flows.schemas import LLM_MODEL_CHOICES
from shared.context import FlowContext
from shared.logging import configure_logging
from shared.settings import Settings
from shared.streaming import StreamError


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate articles with embedded AI images.")

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--keywords", help="Comma-separated keywords or topics for the article")
    mode.add_argument("--search", metavar="QUERY", help="Run a Google Custom Search and print the results")
    mode.add_argument("--suggest", metavar="TEXT", help="Suggest related topics for TEXT")

    parser.add_argument("--content-type", default="blog post", help="e.g. 'blog post', 'technical summary'")
    parser.add_argument("--language", default="English")
    parser.add_argument("--format", dest="output_format", choices=["text", "markdown", "html"], default="markdown")
    parser.add_argument("--images", type=int, default=0, choices=range(0, 6), metavar="0-5", help="Images to embed")
    parser.add_argument("--concurrent-images", action="store_true", help="Generate all images at once")
    parser.add_argument("--stream", action="store_true", help="Stream the article text (no images)")
    parser.add_argument("--uploaded-file", type=Path, help="Text file used as the primary reference")
    parser.add_argument("--context", dest="additional_context", help="Additional notes for the writer")
    parser.add_argument("--model", choices=LLM_MODEL_CHOICES, help="Override LLM_MODEL with a registry model")
    parser.add_argument("--article-prompt", help="House-style instructions prepended to the prompt")
    parser.add_argument("--no-fetch", action="store_true", help="With --search: skip fetching result pages")
    parser.add_argument("--output", type=Path, help="Write the article to this file instead of stdout")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--json-logs", action="store_true")

    args = parser.parse_args(argv)
    if args.stream and args.images:
        parser.error("--stream does not support --images")
    return args


def _write(text: str, output: Optional[Path]) -> None:
    if output:
        output.write_text(text, encoding="utf-8")
        print(f"✓ Wrote {len(text)} characters to {output}", file=sys.stderr)
    else:
        print(text)


async def run_article(ctx: FlowContext, args: argparse.Namespace, llm_config: Optional[LLMConfig]) -> int:
    uploaded = args.uploaded_file.read_text(encoding="utf-8") if args.uploaded_file else None

    result = await generate_article(ctx, GenerateArticleInput(
        keywords=args.keywords,
        content_type=args.content_type,
        language=args.language,
        output_format=args.output_format,
        number_of_images=args.images,
        concurrent_images=args.concurrent_images,
        uploaded_content=uploaded,
        additional_context=args.additional_context,
        llm_config=llm_config,
    ))

    _write(result.article, args.output)
    print(
        f"✓ Images: {result.images_embedded} embedded, {result.images_failed} failed, "
        f"{result.images_skipped} skipped, {result.placeholders_swept} unfilled",
        file=sys.stderr,
    )
    return 0


async def run_stream(ctx: FlowContext, args: argparse.Namespace, llm_config: Optional[LLMConfig]) -> int:
    uploaded = args.uploaded_file.read_text(encoding="utf-8") if args.uploaded_file else None

    stream = await generate_article_stream(ctx, GenerateArticleStreamInput(
        keywords=args.keywords,
        content_type=args.content_type,
        language=args.language,
        output_format=args.output_format,
        uploaded_content=uploaded,
        additional_context=args.additional_context,
        llm_config=llm_config,
    ))

    parts = []
    try:
        async with stream:
            async for chunk in stream:
                text = chunk.decode(stream.encoding)
                parts.append(text)
                if not args.output:
                    sys.stdout.write(text)
                    sys.stdout.flush()
    except StreamError as e:
        print(f"\n✗ Stream failed: {e}", file=sys.stderr)
        return 1
    finally:
        if args.output:
            _write("".join(parts), args.output)

    if not args.output:
        print()
    return 0


async def run_search(ctx: FlowContext, args: argparse.Namespace, llm_config: Optional[LLMConfig]) -> int:
    result = await google_search(ctx, GoogleSearchInput(
        query=args.search,
        fetch_content=not args.no_fetch,
        llm_config=llm_config,
    ))
    if result.status == "skipped":
        print("✗ GOOGLE_SEARCH_API_KEY / CUSTOM_SEARCH_ENGINE_ID not configured", file=sys.stderr)
        return 1

    lines = []
    for i, item in enumerate(result.results, 1):
        lines.append(f"{i}. {item.title}\n   {item.link}\n   {item.snippet}")
        if item.fetched_content:
            lines.append(f"\n{item.fetched_content}\n")
    _write("\n".join(lines), args.output)
    return 0


async def run_suggest(ctx: FlowContext, args: argparse.Namespace, llm_config: Optional[LLMConfig]) -> int:
    result = await suggest_topics(ctx, SuggestTopicsInput(input=args.suggest, llm_config=llm_config))
    _write("\n".join(f"- {topic}" for topic in result.topics), args.output)
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    configure_logging(args.log_level, json=args.json_logs)

    config = {}
    if args.article_prompt:
        config["article_prompt"] = args.article_prompt

    ctx = FlowContext(Settings.from_env(), config=config, flow_name="cli")
    llm_config = LLMConfig(model=args.model) if args.model else None

    try:
        if args.search:
            return await run_search(ctx, args, llm_config)
        if args.suggest:
            return await run_suggest(ctx, args, llm_config)
        if args.stream:
            return await run_stream(ctx, args, llm_config)
        return await run_article(ctx, args, llm_config)
    except RuntimeError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
