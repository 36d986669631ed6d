"""
Web research flows.

- google_search: Google Custom Search, optionally enriched with the main
  text of each result page
- extract_html_content: LLM extraction of readable text from raw HTML
"""
import asyncio
from typing import List, Optional

import httpx
import structlog
from bs4 import BeautifulSoup, Comment

from shared.http import _http_client, fetch_page
from shared.settings import DEFAULT_USER_AGENT, UNSET_SENTINELS

from .llm import _get_llm_config, call_llm_validated, response_schema_instructions
from .prompts import EXTRACT_HTML_PROMPT
from .schemas import (
    ExtractHtmlInput,
    ExtractHtmlOutput,
    GoogleSearchInput,
    GoogleSearchOutput,
    LLMConfig,
    LLMExtractedText,
    SearchResultItem,
)

logger = structlog.get_logger()

CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"

MAX_HTML_LENGTH = 35000
TRUNCATION_MARKER = "\n[Content truncated]"

NO_HTML_MESSAGE = "[No HTML content provided for extraction.]"
EMPTY_PAGE_MESSAGE = "[Content appears empty or could not be fetched meaningfully]"
INVALID_LINK_MESSAGE = "[Invalid or non-HTTP(S) link, content not fetched]"

# Elements that never carry article text
NOISE_TAGS = ["script", "style", "noscript", "svg", "iframe", "template"]


def clean_html(raw_html: str) -> str:
    """
    Drop scripts, styles and comments, then cap the length.

    The result is still HTML so the extractor can use the page structure.
    Returns "" for a page with no visible text.
    """
    soup = BeautifulSoup(raw_html, "lxml")
    for comment in soup.find_all(string=lambda t: isinstance(t, Comment)):
        comment.extract()
    for tag in soup(NOISE_TAGS):
        tag.decompose()

    body = soup.body or soup
    if not body.get_text(strip=True):
        return ""
    cleaned = str(body)
    if len(cleaned) > MAX_HTML_LENGTH:
        cleaned = cleaned[:MAX_HTML_LENGTH] + TRUNCATION_MARKER
    return cleaned


def _configured(value: Optional[str]) -> bool:
    return value is not None and value not in UNSET_SENTINELS


async def extract_html_content(
    ctx,
    params: ExtractHtmlInput,
) -> ExtractHtmlOutput:
    """Extract the main readable text from raw HTML with the LLM."""
    html_content = params.html_content

    if not html_content.strip():
        return ExtractHtmlOutput(extracted_text=NO_HTML_MESSAGE)

    config = _get_llm_config(ctx, params.llm_config)

    ctx.report_input({
        "html_length": len(html_content),
        "provider": config["provider"],
        "model": config["model"],
    })

    prompt = EXTRACT_HTML_PROMPT.format(
        html_content=html_content,
        response_schema=response_schema_instructions(LLMExtractedText),
    )

    response = await call_llm_validated(
        prompt=prompt,
        config=config,
        response_model=LLMExtractedText,
        max_tokens=4000,
    )

    logger.info("html_content_extracted", html_length=len(html_content), text_length=len(response.extracted_text))
    ctx.report_output({
        "extracted_length": len(response.extracted_text),
        "status": "success",
    })

    return ExtractHtmlOutput(extracted_text=response.extracted_text)


async def _fetch_result_content(
    ctx,
    client: httpx.AsyncClient,
    link: Optional[str],
    llm_config: Optional[LLMConfig],
) -> str:
    """Main text of one result page, or a bracketed note saying why not."""
    if not link or not link.startswith(("http://", "https://")):
        return INVALID_LINK_MESSAGE

    try:
        page = await fetch_page(link, client=client)
        if not page.ok:
            logger.warning("search_result_fetch_failed", link=link, status=page.status_code)
            return f"[Failed to retrieve content from {link}: Server responded with {page.status_code} {page.reason}]"

        cleaned = clean_html(page.text) if page.text.strip() else ""
        if not cleaned:
            return EMPTY_PAGE_MESSAGE

        extraction = await extract_html_content(
            ctx,
            ExtractHtmlInput(html_content=cleaned, llm_config=llm_config),
        )
        return extraction.extracted_text

    except Exception as e:
        logger.error("search_result_processing_failed", link=link, error=str(e))
        return f"[Error fetching content from {link}: {e}]"


def _api_error_message(response: httpx.Response) -> str:
    message = f"Google Search API request failed: {response.reason_phrase}"
    try:
        error = response.json().get("error", {})
    except ValueError:
        return message
    if isinstance(error, dict) and error.get("message"):
        return f"Google Search API Error: {error['message']}"
    return message


async def google_search(
    ctx,
    params: GoogleSearchInput,
) -> GoogleSearchOutput:
    """
    Search Google Custom Search and enrich each result with page text.

    Unconfigured credentials return no results. API and network errors
    raise RuntimeError; per-result fetch problems become notes in
    fetched_content.
    """
    api_key = ctx.get_secret("GOOGLE_SEARCH_API_KEY")
    engine_id = ctx.get_secret("CUSTOM_SEARCH_ENGINE_ID")
    timeout = ctx.get_secret("PAGE_FETCH_TIMEOUT_SECONDS") or 10
    user_agent = ctx.get_secret("USER_AGENT") or DEFAULT_USER_AGENT

    ctx.report_input({
        "query": params.query,
        "fetch_content": params.fetch_content,
        "max_results": params.max_results,
    })

    if not (_configured(api_key) and _configured(engine_id)):
        logger.warning("google_search_not_configured")
        ctx.report_output({"status": "skipped", "reason": "search_not_configured", "results": 0})
        return GoogleSearchOutput(results=[], status="skipped")

    async with _http_client(timeout, user_agent) as client:
        try:
            response = await client.get(
                CUSTOM_SEARCH_URL,
                params={
                    "key": api_key,
                    "cx": engine_id,
                    "q": params.query,
                    "num": params.max_results,
                },
            )
        except httpx.HTTPError as e:
            logger.error("google_search_failed", query=params.query, error=str(e))
            ctx.report_output({"status": "error", "error": str(e)})
            raise RuntimeError(f"Failed to perform Google search: {e}") from e

        if not response.is_success:
            message = _api_error_message(response)
            logger.error("google_search_api_error", query=params.query, status=response.status_code, error=message)
            ctx.report_output({"status": "error", "error": message})
            raise RuntimeError(f"Failed to perform Google search: {message}")

        try:
            items = response.json().get("items") or []
        except ValueError as e:
            logger.error("google_search_bad_response", query=params.query, error=str(e))
            ctx.report_output({"status": "error", "error": str(e)})
            raise RuntimeError(f"Failed to perform Google search: invalid JSON response: {e}") from e

        links: List[Optional[str]] = [item.get("link") for item in items]
        if params.fetch_content:
            contents = await asyncio.gather(
                *(_fetch_result_content(ctx, client, link, params.llm_config) for link in links)
            )
        else:
            contents = [None] * len(items)

    results = [
        SearchResultItem(
            title=item.get("title") or "N/A",
            link=item.get("link") or "#",
            snippet=item.get("snippet") or "No snippet available.",
            fetched_content=content,
        )
        for item, content in zip(items, contents)
    ]

    logger.info("google_search_completed", query=params.query, results=len(results))
    ctx.report_output({
        "status": "success",
        "results": len(results),
        "titles": [r.title for r in results],
    })

    return GoogleSearchOutput(results=results)
