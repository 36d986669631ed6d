"""
Image generation collaborator.

generate_image_data_uri() returns a data:image/... URI or raises
ImageGenerationError. Providers:
- placeholder: deterministic SVG, no network (development)
- openai: DALL-E 3 with b64_json responses (requires OPENAI_API_KEY)
- gemini: Gemini image models via inlineData (requires GOOGLE_API_KEY)
- stable-diffusion: local Automatic1111 txt2img API
"""
import base64
import hashlib
import html
from typing import Optional

import httpx
import structlog

from shared.results import is_image_data_uri

from .schemas import GenerateImageInput, GenerateImageOutput, ImageConfig

logger = structlog.get_logger()

NO_TEXT_PREFIX = "Generate Image without text on it. "

GEMINI_SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class ImageGenerationError(Exception):
    """The image provider did not produce an image."""


def _http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout)


def _get_image_config(ctx, image_config: Optional[ImageConfig] = None) -> dict:
    """Image provider configuration: per-call override, then settings, then placeholder."""
    config = {
        "provider": ctx.get_secret("IMAGE_PROVIDER") or "placeholder",
        "image_model": ctx.get_secret("IMAGE_MODEL"),
        "openai_api_key": ctx.get_secret("OPENAI_API_KEY"),
        "google_api_key": ctx.get_secret("GOOGLE_API_KEY"),
        "sd_api_url": ctx.get_secret("SD_API_URL") or "http://localhost:7860",  # Automatic1111
        "timeout": ctx.get_secret("IMAGE_TIMEOUT_SECONDS") or 120,
    }
    if image_config:
        if image_config.image_provider:
            config["provider"] = image_config.image_provider
        if image_config.image_model:
            config["image_model"] = image_config.image_model
    return config


def _placeholder_data_uri(prompt: str) -> str:
    prompt_hash = hashlib.md5(prompt.encode()).hexdigest()[:6]
    label = html.escape(prompt[:60])
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg" width="1792" height="1024" viewBox="0 0 1792 1024">'
        f'<rect width="100%" height="100%" fill="#{prompt_hash}"/>'
        '<text x="50%" y="50%" fill="#eaeaea" font-family="sans-serif" font-size="40" '
        f'text-anchor="middle">AI Image: {label}</text>'
        "</svg>"
    )
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii")


async def _generate_openai(prompt: str, config: dict) -> str:
    api_key = config.get("openai_api_key")
    if not api_key:
        raise ImageGenerationError("OPENAI_API_KEY not set")

    async with _http_client(config["timeout"]) as client:
        response = await client.post(
            "https://api.openai.com/v1/images/generations",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": config.get("image_model") or "dall-e-3",
                "prompt": prompt,
                "n": 1,
                "size": "1792x1024",
                "quality": "standard",
                "response_format": "b64_json",
            },
        )
        response.raise_for_status()
        data = response.json()

    try:
        image_b64 = data["data"][0]["b64_json"]
    except (KeyError, IndexError, TypeError) as e:
        raise ImageGenerationError(f"Failed to parse OpenAI image response: {e}") from e

    return f"data:image/png;base64,{image_b64}"


async def _generate_gemini(prompt: str, config: dict) -> str:
    api_key = config.get("google_api_key")
    if not api_key:
        raise ImageGenerationError("GOOGLE_API_KEY not set")

    image_model = config.get("image_model") or "gemini-2.0-flash-preview-image-generation"
    url = f"https://generativelanguage.googleapis.com/v1beta/models/{image_model}:generateContent"

    async with _http_client(config["timeout"]) as client:
        response = await client.post(
            url,
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": api_key,
            },
            json={
                "contents": [{"parts": [{"text": NO_TEXT_PREFIX + prompt}]}],
                "generationConfig": {
                    "responseModalities": ["TEXT", "IMAGE"],
                },
                "safetySettings": GEMINI_SAFETY_SETTINGS,
            },
        )
        response.raise_for_status()
        data = response.json()

    # The image can be any of the parts; text parts may come first
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as e:
        logger.error("gemini_image_parse_error", error=str(e), full_response=data)
        raise ImageGenerationError(f"Failed to parse Gemini image response: {e}") from e

    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return f"data:{mime_type};base64,{inline['data']}"

    raise ImageGenerationError("Image generation did not return a valid image media object.")


async def _generate_stable_diffusion(prompt: str, config: dict) -> str:
    async with _http_client(config["timeout"]) as client:
        response = await client.post(
            f"{config['sd_api_url']}/sdapi/v1/txt2img",
            json={
                "prompt": prompt,
                "negative_prompt": "text, watermark, signature, blurry, low quality",
                "width": 1792,
                "height": 1024,
                "steps": 20,
                "cfg_scale": 7,
            },
        )
        response.raise_for_status()
        data = response.json()

    try:
        image_b64 = data["images"][0]
    except (KeyError, IndexError, TypeError) as e:
        raise ImageGenerationError(f"Failed to parse Stable Diffusion response: {e}") from e

    return f"data:image/png;base64,{image_b64}"


_PROVIDERS = {
    "openai": _generate_openai,
    "gemini": _generate_gemini,
    "stable-diffusion": _generate_stable_diffusion,
}


async def generate_image_data_uri(prompt: str, config: dict) -> str:
    """
    Generate one image and return it as a data URI.

    Raises:
        ImageGenerationError: empty prompt, unknown provider, missing key,
            HTTP failure or a response without image data
    """
    if not prompt or not prompt.strip():
        raise ImageGenerationError("Image generation prompt cannot be empty.")

    provider = config["provider"]

    if provider == "placeholder":
        logger.info("placeholder_image_generated", prompt=prompt[:50])
        return _placeholder_data_uri(prompt)

    generate = _PROVIDERS.get(provider)
    if generate is None:
        raise ImageGenerationError(f"Unknown image provider: {provider}")

    try:
        data_uri = await generate(prompt, config)
    except httpx.HTTPStatusError as e:
        raise ImageGenerationError(
            f"Image generation failed: {e.response.status_code} {e.response.reason_phrase}"
        ) from e
    except httpx.HTTPError as e:
        raise ImageGenerationError(f"Image generation failed: {e}") from e

    if not is_image_data_uri(data_uri):
        raise ImageGenerationError("Image generation did not return a valid image media object.")

    logger.info("image_generated", provider=provider, prompt=prompt[:50], data_uri=data_uri[:100])
    return data_uri


async def generate_image(
    ctx,
    params: GenerateImageInput,
) -> GenerateImageOutput:
    """
    Generate a single image using the configured provider.

    Never raises for provider problems: blank prompts are skipped and
    provider failures come back as status="error".
    """
    config = _get_image_config(ctx, params.image_config)
    prompt = params.prompt

    ctx.report_input({
        "prompt": prompt[:200] + "..." if len(prompt) > 200 else prompt,
        "provider": config["provider"],
        "model": config.get("image_model"),
    })

    if not prompt.strip():
        ctx.report_output({"status": "skipped", "reason": "no prompt provided"})
        return GenerateImageOutput(status="skipped", reason="no prompt provided")

    try:
        data_uri = await generate_image_data_uri(prompt, config)
    except ImageGenerationError as e:
        logger.error("image_generation_failed", provider=config["provider"], error=str(e))
        ctx.report_output({
            "status": "error",
            "error": str(e),
            "provider": config["provider"],
        })
        return GenerateImageOutput(status="error", reason=str(e))

    ctx.report_output({
        "image_data_uri": data_uri[:100] + "...",
        "provider": config["provider"],
        "status": "success",
    })
    return GenerateImageOutput(image_data_uri=data_uri, status="success")
