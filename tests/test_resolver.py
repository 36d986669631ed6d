"""Tests for shared.resolver."""

import asyncio

import pytest

from shared.resolver import INVALID_DATA_REASON, NO_PROMPT_REASON, ImageResolver
from shared.results import ImageFailure, ImageSkipped, ImageSuccess

from conftest import D0, FakeImageGenerator


class TestImageResolver:
    def test_success(self) -> None:
        generate = FakeImageGenerator()
        resolver = ImageResolver(generate)

        result = asyncio.run(resolver.resolve(0, "sunset"))

        assert isinstance(result, ImageSuccess)
        assert result.data_uri == D0
        assert generate.prompts == ["sunset"]
        assert resolver.calls == 1

    @pytest.mark.parametrize("prompt", [None, "", "   "])
    def test_blank_prompt_skipped_without_call(self, prompt) -> None:
        generate = FakeImageGenerator()
        resolver = ImageResolver(generate)

        result = asyncio.run(resolver.resolve(2, prompt))

        assert result == ImageSkipped(reason=NO_PROMPT_REASON)
        assert generate.prompts == []
        assert resolver.calls == 0

    def test_exception_becomes_failure(self) -> None:
        resolver = ImageResolver(FakeImageGenerator({"sunset": RuntimeError("quota exceeded")}))

        result = asyncio.run(resolver.resolve(0, "sunset"))

        assert result == ImageFailure(reason="quota exceeded")

    def test_exception_without_message_uses_type_name(self) -> None:
        resolver = ImageResolver(FakeImageGenerator({"sunset": ValueError()}))

        result = asyncio.run(resolver.resolve(0, "sunset"))

        assert result == ImageFailure(reason="ValueError")

    @pytest.mark.parametrize("value", ["", "   ", "https://example.com/a.png", "data:text/plain;base64,AAAA", None])
    def test_invalid_data_is_failure(self, value) -> None:
        resolver = ImageResolver(FakeImageGenerator({"sunset": value}))

        result = asyncio.run(resolver.resolve(0, "sunset"))

        assert result == ImageFailure(reason=INVALID_DATA_REASON)
        assert resolver.calls == 1

    def test_timeout_is_failure(self) -> None:
        async def slow(prompt: str) -> str:
            await asyncio.sleep(5)
            return D0

        resolver = ImageResolver(slow, timeout=0.01)

        result = asyncio.run(resolver.resolve(0, "sunset"))

        assert isinstance(result, ImageFailure)
        assert "timed out after 0.01s" in result.reason

    def test_no_retry_after_failure(self) -> None:
        generate = FakeImageGenerator({"sunset": RuntimeError("boom")})
        resolver = ImageResolver(generate)

        asyncio.run(resolver.resolve(0, "sunset"))

        assert generate.prompts == ["sunset"]

    def test_error_message_placeholders_defused(self) -> None:
        resolver = ImageResolver(FakeImageGenerator({"x": RuntimeError("bad {{IMAGE_PLACEHOLDER_2}}")}))

        result = asyncio.run(resolver.resolve(0, "x"))

        assert result.reason == "bad IMAGE_PLACEHOLDER_2"
