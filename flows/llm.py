"""
LLM collaborator for the article flows.

- _get_llm_config: resolve provider/model/keys for one call
- _call_llm: single completion against openai, anthropic, gemini or ollama
- call_llm_validated: completion parsed into a pydantic model, with retries
- open_llm_stream: incremental completion as an async iterator of text
"""
import asyncio
import hashlib
import json
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from .schemas import LLMConfig, resolve_model

logger = structlog.get_logger()

# Type variable for generic Pydantic model validation
T = TypeVar("T", bound=BaseModel)

LLM_PROVIDERS = ("openai", "anthropic", "gemini", "ollama")

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
ANTHROPIC_VERSION = "2023-06-01"


def _http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout)


# =============================================================================
# DEV CACHE (for speeding up development iteration)
# =============================================================================
# Enable with LLM_DEV_CACHE=true in .env
# Clear all: rm -rf /tmp/llm_dev_cache/

def _get_cache_key(node_name: str, data: Any) -> str:
    """Generate a cache key from node name and input data."""
    data_str = json.dumps(data, sort_keys=True, default=str)
    hash_val = hashlib.sha256(data_str.encode()).hexdigest()[:16]
    return f"{node_name}_{hash_val}"


def _cache_file(config: dict, node_name: str, data: Any) -> Optional[Path]:
    if not config.get("dev_cache"):
        return None
    return Path(config["dev_cache_dir"]) / f"{_get_cache_key(node_name, data)}.json"


def _get_cached_response(config: dict, node_name: str, data: Any) -> Optional[dict]:
    """Get cached LLM response if it exists and the dev cache is enabled."""
    cache_file = _cache_file(config, node_name, data)
    if cache_file is None or not cache_file.exists():
        return None

    try:
        with open(cache_file, "r") as f:
            cached = json.load(f)
            logger.info("llm_dev_cache_hit", node=node_name, cache_key=cache_file.stem)
            return cached
    except (OSError, ValueError) as e:
        logger.warning("llm_dev_cache_read_error", error=str(e))
        return None


def _save_to_cache(config: dict, node_name: str, data: Any, response: dict) -> None:
    """Save LLM response to dev cache."""
    cache_file = _cache_file(config, node_name, data)
    if cache_file is None:
        return

    try:
        cache_file.parent.mkdir(parents=True, exist_ok=True)
        with open(cache_file, "w") as f:
            json.dump(response, f, indent=2, default=str)

        logger.info("llm_dev_cache_saved", node=node_name, cache_key=cache_file.stem)
    except OSError as e:
        logger.warning("llm_dev_cache_write_error", error=str(e))


# =============================================================================
# CONFIGURATION
# =============================================================================

def _get_llm_config(ctx, llm_config: Optional[LLMConfig] = None) -> dict:
    """
    Get LLM configuration with cascading priority.

    Resolution order (first non-None wins):
    1. Flow params (llm_config.model - display name like "Gemini 2.5 Flash")
    2. Settings (LLM_PROVIDER + LLM_MODEL)
    3. Defaults (ollama/llama3.1)
    """
    provider = None
    model = None
    temperature = None

    # Handle both dict and Pydantic model
    if llm_config:
        model_value = llm_config.get("model") if isinstance(llm_config, dict) else llm_config.model
        if model_value:
            resolved_provider, resolved_model = resolve_model(model_value)
            if resolved_provider:
                provider = resolved_provider
                model = resolved_model
            else:
                logger.warning("llm_model_unknown", model=model_value)
        # Temperature can be 0, so check for None explicitly
        temp_value = llm_config.get("temperature") if isinstance(llm_config, dict) else llm_config.temperature
        if temp_value is not None:
            temperature = temp_value

    if not provider:
        provider = ctx.get_secret("LLM_PROVIDER") or "ollama"
    if not model:
        model = ctx.get_secret("LLM_MODEL") or "llama3.1"

    return {
        "provider": provider,
        "model": model,
        "temperature": temperature,  # None means use provider default
        "ollama_host": ctx.get_secret("OLLAMA_HOST") or "http://localhost:11434",
        "openai_api_key": ctx.get_secret("OPENAI_API_KEY"),
        "anthropic_api_key": ctx.get_secret("ANTHROPIC_API_KEY"),
        "google_api_key": ctx.get_secret("GOOGLE_API_KEY"),
        "dev_cache": bool(ctx.get_secret("LLM_DEV_CACHE")),
        "dev_cache_dir": ctx.get_secret("LLM_DEV_CACHE_DIR") or "/tmp/llm_dev_cache",
    }


def _require_key(config: dict, key: str) -> str:
    value = config.get(key)
    if not value:
        raise ValueError(f"{key.upper()} not set")
    return value


# =============================================================================
# PYDANTIC-VALIDATED LLM CALLS
# =============================================================================

def response_schema_instructions(response_model: Type[BaseModel]) -> str:
    """Prompt footer telling the model which JSON shape to return."""
    schema = json.dumps(response_model.model_json_schema(), indent=2)
    return f"Respond with JSON matching this schema:\n```json\n{schema}\n```"


async def call_llm_validated(
    prompt: str,
    config: dict,
    response_model: Type[T],
    max_tokens: int = 2000,
    max_retries: int = 2,
) -> T:
    """
    Call LLM with Pydantic validation and retry on validation failure.

    If the LLM returns invalid JSON, or JSON that doesn't match the schema,
    we retry with the error appended to the prompt so the LLM can correct
    itself.

    Raises:
        RuntimeError: If all retries are exhausted
    """
    cache_key_data = {"prompt": prompt, "model": config.get("model", "unknown")}
    cached = _get_cached_response(config, "llm", cache_key_data)
    if cached:
        try:
            return response_model.model_validate(cached)
        except ValidationError as e:
            # Cache exists but doesn't match expected schema - call LLM fresh
            logger.warning("llm_dev_cache_schema_mismatch", error=str(e)[:200])

    current_prompt = prompt
    last_error = None

    # JSON schema for providers that support structured output (Gemini)
    pydantic_schema = response_model.model_json_schema()

    for attempt in range(max_retries + 1):
        response = await _call_llm(
            current_prompt,
            config,
            max_tokens=max_tokens,
            json_mode=True,
            response_schema=pydantic_schema,
            temperature=config.get("temperature"),
        )

        try:
            validated = response_model.model_validate_json(_strip_code_fence(response))
        except ValidationError as e:
            last_error = e

            if attempt < max_retries:
                logger.warning(
                    "llm_validation_failed_retrying",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    error=str(e),
                )
                current_prompt = f"""{prompt}

IMPORTANT: Your previous response was invalid. Please fix the following validation errors and try again:

{e.json()}

Respond with valid JSON that matches the expected schema, no additional text or markdown formatting."""
                continue

            logger.error(
                "llm_validation_failed_exhausted",
                attempts=max_retries + 1,
                error=str(e),
                response_preview=response[:500] if response else "EMPTY",
            )
            raise RuntimeError(
                f"LLM response validation failed after {max_retries + 1} attempts: {e}"
            ) from e

        if attempt > 0:
            logger.info("llm_validation_retry_succeeded", attempt=attempt + 1)
        _save_to_cache(config, "llm", cache_key_data, validated.model_dump())
        return validated

    # Should not reach here, but just in case
    raise RuntimeError(f"LLM validation failed: {last_error}")


def _strip_code_fence(response: str) -> str:
    # Some models wrap JSON in ```json ... ``` even in JSON mode
    text = (response or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text


# =============================================================================
# SINGLE COMPLETIONS
# =============================================================================

async def _call_llm(
    prompt: str,
    config: dict,
    max_tokens: int = 2000,
    json_mode: bool = False,
    response_schema: Optional[dict] = None,
    temperature: Optional[float] = None,
) -> str:
    """Call the configured LLM provider."""
    provider = config["provider"]

    if provider == "openai":
        return await _call_openai(prompt, config, max_tokens, json_mode, temperature)
    elif provider == "anthropic":
        return await _call_anthropic(prompt, config, max_tokens, temperature)
    elif provider == "gemini":
        return await _call_gemini(prompt, config, max_tokens, json_mode, response_schema, temperature)
    elif provider == "ollama":
        return await _call_ollama(prompt, config, max_tokens, json_mode, temperature)
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")


def _openai_body(prompt: str, config: dict, max_tokens: int, temperature: Optional[float]) -> dict:
    request_body = {
        "model": config["model"],
        "messages": [{"role": "user", "content": prompt}],
        "max_tokens": max_tokens,
    }
    if temperature is not None:
        request_body["temperature"] = temperature
    return request_body


def _openai_headers(api_key: str) -> dict:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


async def _call_openai(prompt: str, config: dict, max_tokens: int, json_mode: bool, temperature: Optional[float] = None) -> str:
    """Call OpenAI API."""
    api_key = _require_key(config, "openai_api_key")

    request_body = _openai_body(prompt, config, max_tokens, temperature)
    if json_mode:
        request_body["response_format"] = {"type": "json_object"}

    async with _http_client(120) as client:
        response = await client.post(
            OPENAI_CHAT_URL,
            headers=_openai_headers(api_key),
            json=request_body,
        )
        response.raise_for_status()
        data = response.json()

        return data["choices"][0]["message"]["content"] or ""


def _anthropic_body(prompt: str, config: dict, max_tokens: int, temperature: Optional[float]) -> dict:
    request_body = {
        "model": config["model"],
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    if temperature is not None:
        request_body["temperature"] = temperature
    return request_body


def _anthropic_headers(api_key: str) -> dict:
    return {
        "x-api-key": api_key,
        "Content-Type": "application/json",
        "anthropic-version": ANTHROPIC_VERSION,
    }


async def _call_anthropic(prompt: str, config: dict, max_tokens: int, temperature: Optional[float] = None) -> str:
    """Call Anthropic API."""
    api_key = _require_key(config, "anthropic_api_key")

    async with _http_client(120) as client:
        response = await client.post(
            ANTHROPIC_MESSAGES_URL,
            headers=_anthropic_headers(api_key),
            json=_anthropic_body(prompt, config, max_tokens, temperature),
        )
        response.raise_for_status()
        data = response.json()

        return "".join(block.get("text", "") for block in data.get("content", []) if block.get("type", "text") == "text")


def _ollama_body(prompt: str, config: dict, max_tokens: int, temperature: Optional[float], stream: bool) -> dict:
    request_body = {
        "model": config["model"],
        "messages": [{"role": "user", "content": prompt}],
        "stream": stream,
        "options": {
            "num_predict": max_tokens,
        },
    }
    if temperature is not None:
        request_body["options"]["temperature"] = temperature
    return request_body


async def _call_ollama(prompt: str, config: dict, max_tokens: int, json_mode: bool = False, temperature: Optional[float] = None) -> str:
    """Call Ollama API using the chat endpoint."""
    ollama_host = config["ollama_host"]

    logger.info("calling_ollama", host=ollama_host, model=config["model"], prompt_len=len(prompt), json_mode=json_mode, temperature=temperature)

    request_body = _ollama_body(prompt, config, max_tokens, temperature, stream=False)
    if json_mode:
        request_body["format"] = "json"

    async with _http_client(300) as client:
        response = await client.post(
            f"{ollama_host}/api/chat",
            json=request_body,
        )
        response.raise_for_status()
        data = response.json()

        content = data.get("message", {}).get("content", "")
        logger.info("ollama_response", content_len=len(content), content_preview=content[:200] if content else "EMPTY")

        if not content:
            logger.error("ollama_empty_response", full_response=data)

        return content


def _convert_pydantic_schema_to_gemini(pydantic_schema: dict) -> Optional[dict]:
    """
    Convert a Pydantic JSON schema to Gemini's responseSchema format.

    Gemini expects a simplified schema without $defs (inlined instead),
    additionalProperties, a root title or $schema.

    Returns None if the schema contains unsupported features.

    See: https://ai.google.dev/gemini-api/docs/structured-output
    """
    has_unsupported_features = False

    def simplify_schema(schema: dict, defs: Optional[dict] = None) -> dict:
        nonlocal has_unsupported_features

        if defs is None:
            defs = schema.get("$defs", {})

        # Inline "#/$defs/Name" references
        if "$ref" in schema:
            ref_path = schema["$ref"]
            if ref_path.startswith("#/$defs/"):
                def_name = ref_path[8:]
                if def_name in defs:
                    return simplify_schema(defs[def_name], defs)
            return {"type": "object"}

        # Dict[str, T] schemas
        if "additionalProperties" in schema:
            has_unsupported_features = True
            return {"type": "object"}

        # Optional[X] comes through as anyOf [X, null]
        if "anyOf" in schema:
            options = [s for s in schema["anyOf"] if s.get("type") != "null"]
            if len(options) == 1:
                return simplify_schema(options[0], defs)
            has_unsupported_features = True
            return {"type": "object"}

        result = {}

        for key in ("type", "description", "enum"):
            if key in schema:
                result[key] = schema[key]

        if "properties" in schema:
            result["properties"] = {
                k: simplify_schema(v, defs)
                for k, v in schema["properties"].items()
            }

        if "required" in schema:
            result["required"] = schema["required"]

        if "items" in schema:
            result["items"] = simplify_schema(schema["items"], defs)

        return result

    simplified = simplify_schema(pydantic_schema)

    if has_unsupported_features:
        return None

    return simplified


def _gemini_generation_config(model: str, max_tokens: int, json_mode: bool, temperature: Optional[float]) -> dict:
    # 2.5 "thinking" models count reasoning tokens against maxOutputTokens
    is_thinking_model = "2.5" in model or "thinking" in model.lower()
    effective_max_tokens = max(max_tokens * 4, 8000) if is_thinking_model else max_tokens

    if temperature is not None:
        effective_temperature = temperature
    else:
        effective_temperature = 0.2 if json_mode else 0.7

    return {
        "maxOutputTokens": effective_max_tokens,
        "temperature": effective_temperature,
    }


def _gemini_headers(api_key: str) -> dict:
    return {
        "Content-Type": "application/json",
        "x-goog-api-key": api_key,
    }


def _gemini_text(data: dict) -> str:
    # {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}
    parts = data["candidates"][0]["content"]["parts"]
    return "".join(part.get("text", "") for part in parts)


async def _call_gemini(
    prompt: str,
    config: dict,
    max_tokens: int,
    json_mode: bool = False,
    response_schema: Optional[dict] = None,
    temperature: Optional[float] = None,
) -> str:
    """
    Call Google Gemini API.

    API docs: https://ai.google.dev/gemini-api/docs/text-generation
    """
    api_key = _require_key(config, "google_api_key")
    model = config["model"]

    generation_config = _gemini_generation_config(model, max_tokens, json_mode, temperature)

    logger.info(
        "calling_gemini",
        model=model,
        prompt_len=len(prompt),
        json_mode=json_mode,
        has_response_schema=response_schema is not None,
        max_tokens_effective=generation_config["maxOutputTokens"],
        temperature=generation_config["temperature"],
    )

    if json_mode:
        generation_config["responseMimeType"] = "application/json"

        if response_schema:
            gemini_schema = _convert_pydantic_schema_to_gemini(response_schema)
            if gemini_schema:
                generation_config["responseSchema"] = gemini_schema
            else:
                logger.info("gemini_skipping_response_schema", reason="schema contains unsupported features")

    request_body = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": generation_config,
    }

    # Retry with exponential backoff for rate limits (429)
    max_retries = 3
    for attempt in range(max_retries + 1):
        async with _http_client(120) as client:
            response = await client.post(
                f"{GEMINI_BASE_URL}/{model}:generateContent",
                headers=_gemini_headers(api_key),
                json=request_body,
            )

            if response.status_code == 429 and attempt < max_retries:
                wait_time = (2 ** attempt) * 2  # 2s, 4s, 8s
                logger.warning(
                    "gemini_rate_limited_retrying",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    wait_time=wait_time,
                )
                await asyncio.sleep(wait_time)
                continue

            response.raise_for_status()
            data = response.json()

            try:
                content = _gemini_text(data)
            except (KeyError, IndexError) as e:
                logger.error("gemini_parse_error", error=str(e), full_response=data)
                raise ValueError(f"Failed to parse Gemini response: {data}") from e

            logger.info("gemini_response", content_len=len(content), content_preview=content[:200] if content else "EMPTY")
            return content

    # Should never reach here, but just in case
    raise RuntimeError("Gemini call failed after all retries")


# =============================================================================
# STREAMING COMPLETIONS
# =============================================================================

def open_llm_stream(prompt: str, config: dict, max_tokens: int = 4000) -> AsyncIterator[str]:
    """
    Return an async iterator of text chunks for one completion.

    Configuration problems (unknown provider, missing key) raise here,
    before any request is made; transport and provider errors raise from
    the iterator.
    """
    provider = config["provider"]
    temperature = config.get("temperature")

    if provider == "openai":
        api_key = _require_key(config, "openai_api_key")
        return _stream_openai(prompt, config, api_key, max_tokens, temperature)
    elif provider == "anthropic":
        api_key = _require_key(config, "anthropic_api_key")
        return _stream_anthropic(prompt, config, api_key, max_tokens, temperature)
    elif provider == "gemini":
        api_key = _require_key(config, "google_api_key")
        return _stream_gemini(prompt, config, api_key, max_tokens, temperature)
    elif provider == "ollama":
        return _stream_ollama(prompt, config, max_tokens, temperature)
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")


async def _raise_for_stream_status(response: httpx.Response, provider: str) -> None:
    if response.is_success:
        return
    body = (await response.aread()).decode("utf-8", errors="replace")
    logger.error("llm_stream_http_error", provider=provider, status=response.status_code, body=body[:500])
    raise RuntimeError(f"{provider} stream request failed: {response.status_code} {body[:200]}")


async def _sse_data(response: httpx.Response) -> AsyncIterator[Dict[str, Any]]:
    """Decoded JSON payloads of an SSE response's data: lines."""
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        payload = line[len("data:"):].strip()
        if not payload or payload == "[DONE]":
            continue
        yield json.loads(payload)


async def _stream_openai(prompt: str, config: dict, api_key: str, max_tokens: int, temperature: Optional[float]) -> AsyncIterator[str]:
    request_body = _openai_body(prompt, config, max_tokens, temperature)
    request_body["stream"] = True

    async with _http_client(120) as client:
        async with client.stream("POST", OPENAI_CHAT_URL, headers=_openai_headers(api_key), json=request_body) as response:
            await _raise_for_stream_status(response, "openai")
            async for event in _sse_data(response):
                if "error" in event:
                    raise RuntimeError(event["error"].get("message", "OpenAI stream error"))
                for choice in event.get("choices", []):
                    text = (choice.get("delta") or {}).get("content")
                    if text:
                        yield text


async def _stream_anthropic(prompt: str, config: dict, api_key: str, max_tokens: int, temperature: Optional[float]) -> AsyncIterator[str]:
    request_body = _anthropic_body(prompt, config, max_tokens, temperature)
    request_body["stream"] = True

    async with _http_client(120) as client:
        async with client.stream("POST", ANTHROPIC_MESSAGES_URL, headers=_anthropic_headers(api_key), json=request_body) as response:
            await _raise_for_stream_status(response, "anthropic")
            async for event in _sse_data(response):
                event_type = event.get("type")
                if event_type == "error":
                    raise RuntimeError(event.get("error", {}).get("message", "Anthropic stream error"))
                if event_type == "content_block_delta":
                    text = event.get("delta", {}).get("text")
                    if text:
                        yield text
                elif event_type == "message_stop":
                    return


async def _stream_gemini(prompt: str, config: dict, api_key: str, max_tokens: int, temperature: Optional[float]) -> AsyncIterator[str]:
    model = config["model"]
    request_body = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": _gemini_generation_config(model, max_tokens, False, temperature),
    }
    url = f"{GEMINI_BASE_URL}/{model}:streamGenerateContent?alt=sse"

    async with _http_client(120) as client:
        async with client.stream("POST", url, headers=_gemini_headers(api_key), json=request_body) as response:
            await _raise_for_stream_status(response, "gemini")
            async for event in _sse_data(response):
                if "error" in event:
                    raise RuntimeError(event["error"].get("message", "Gemini stream error"))
                try:
                    text = _gemini_text(event)
                except (KeyError, IndexError):
                    # Usage-only and safety-rating chunks carry no parts
                    continue
                if text:
                    yield text


async def _stream_ollama(prompt: str, config: dict, max_tokens: int, temperature: Optional[float]) -> AsyncIterator[str]:
    request_body = _ollama_body(prompt, config, max_tokens, temperature, stream=True)

    async with _http_client(300) as client:
        async with client.stream("POST", f"{config['ollama_host']}/api/chat", json=request_body) as response:
            await _raise_for_stream_status(response, "ollama")
            # NDJSON: one object per line
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                data = json.loads(line)
                if "error" in data:
                    raise RuntimeError(data["error"])
                text = data.get("message", {}).get("content")
                if text:
                    yield text
                if data.get("done"):
                    return
