"""Tests for flows.images."""

import asyncio
import base64
import json

import httpx
import pytest

from flows import images
from flows.images import ImageGenerationError, generate_image, generate_image_data_uri
from flows.schemas import GenerateImageInput, ImageConfig
from shared.results import is_image_data_uri

from conftest import json_response, make_ctx, mock_client_factory


def image_config(**overrides) -> dict:
    config = {
        "provider": "placeholder",
        "image_model": None,
        "openai_api_key": "sk-test",
        "google_api_key": "g-test",
        "sd_api_url": "http://sd.local",
        "timeout": 5,
    }
    config.update(overrides)
    return config


class TestGenerateImageDataUri:
    def test_placeholder_is_deterministic_svg(self) -> None:
        first = asyncio.run(generate_image_data_uri("a red fox", image_config()))
        second = asyncio.run(generate_image_data_uri("a red fox", image_config()))

        assert first == second
        assert first.startswith("data:image/svg+xml;base64,")
        assert is_image_data_uri(first)
        svg = base64.b64decode(first.split(",", 1)[1]).decode()
        assert "a red fox" in svg

    def test_empty_prompt_rejected(self) -> None:
        with pytest.raises(ImageGenerationError, match="cannot be empty"):
            asyncio.run(generate_image_data_uri("  ", image_config()))

    def test_unknown_provider(self) -> None:
        with pytest.raises(ImageGenerationError, match="Unknown image provider"):
            asyncio.run(generate_image_data_uri("x", image_config(provider="midjourney")))

    def test_openai_b64(self, monkeypatch: pytest.MonkeyPatch) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return json_response({"data": [{"b64_json": "QUJD"}]})

        monkeypatch.setattr(images, "_http_client", mock_client_factory(handler))

        uri = asyncio.run(generate_image_data_uri("x", image_config(provider="openai")))

        assert uri == "data:image/png;base64,QUJD"
        assert requests[0]["response_format"] == "b64_json"

    def test_openai_missing_key(self) -> None:
        with pytest.raises(ImageGenerationError, match="OPENAI_API_KEY not set"):
            asyncio.run(generate_image_data_uri("x", image_config(provider="openai", openai_api_key=None)))

    def test_gemini_finds_inline_image_after_text(self, monkeypatch: pytest.MonkeyPatch) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return json_response({"candidates": [{"content": {"parts": [
                {"text": "Here is your image"},
                {"inlineData": {"mimeType": "image/jpeg", "data": "SlBH"}},
            ]}}]})

        monkeypatch.setattr(images, "_http_client", mock_client_factory(handler))

        uri = asyncio.run(generate_image_data_uri("a lake", image_config(provider="gemini")))

        assert uri == "data:image/jpeg;base64,SlBH"
        assert requests[0]["contents"][0]["parts"][0]["text"] == "Generate Image without text on it. a lake"
        assert {s["threshold"] for s in requests[0]["safetySettings"]} == {"BLOCK_NONE"}

    def test_gemini_without_image(self, monkeypatch: pytest.MonkeyPatch) -> None:
        handler = lambda request: json_response({"candidates": [{"content": {"parts": [{"text": "refused"}]}}]})
        monkeypatch.setattr(images, "_http_client", mock_client_factory(handler))

        with pytest.raises(ImageGenerationError, match="valid image media object"):
            asyncio.run(generate_image_data_uri("x", image_config(provider="gemini")))

    def test_http_status_becomes_generation_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        handler = lambda request: httpx.Response(503)
        monkeypatch.setattr(images, "_http_client", mock_client_factory(handler))

        with pytest.raises(ImageGenerationError, match="503 Service Unavailable"):
            asyncio.run(generate_image_data_uri("x", image_config(provider="stable-diffusion")))

    def test_stable_diffusion(self, monkeypatch: pytest.MonkeyPatch) -> None:
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return json_response({"images": ["U0Q="]})

        monkeypatch.setattr(images, "_http_client", mock_client_factory(handler))

        uri = asyncio.run(generate_image_data_uri("x", image_config(provider="stable-diffusion")))

        assert uri == "data:image/png;base64,U0Q="
        assert urls == ["http://sd.local/sdapi/v1/txt2img"]


class TestGenerateImageFlow:
    def test_defaults_to_placeholder_provider(self) -> None:
        ctx = make_ctx()

        result = asyncio.run(generate_image(ctx, GenerateImageInput(prompt="a boat")))

        assert result.status == "success"
        assert is_image_data_uri(result.image_data_uri)
        assert ctx.inputs[0]["provider"] == "placeholder"

    def test_override_provider(self) -> None:
        ctx = make_ctx(image_provider="placeholder")

        result = asyncio.run(generate_image(ctx, GenerateImageInput(
            prompt="a boat",
            image_config=ImageConfig(image_provider="openai"),
        )))

        assert result.status == "error"
        assert "OPENAI_API_KEY" in result.reason
        assert ctx.last_output["status"] == "error"

    def test_blank_prompt_skipped(self) -> None:
        result = asyncio.run(generate_image(make_ctx(), GenerateImageInput(prompt="")))

        assert result.status == "skipped"
        assert result.image_data_uri is None

    def test_unknown_provider_rejected_by_schema(self) -> None:
        with pytest.raises(ValueError):
            ImageConfig(image_provider="dreamland")
