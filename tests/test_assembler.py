"""Tests for shared.assembler: placeholder substitution and sweeping."""

import asyncio
import random
from typing import List, Optional

import pytest

from shared.assembler import assemble_article, slot_bound, sweep_placeholders
from shared.placeholders import has_placeholders
from shared.renderer import UNFILLED_NOTE
from shared.resolver import ImageResolver
from shared.results import ArticleDraft, ImageSuccess

from conftest import D0, D1, D2, FakeImageGenerator

SCENARIO_TEXT = "Intro {{IMAGE_PLACEHOLDER_0}} middle {{IMAGE_PLACEHOLDER_1}} end"


def assemble(text: str, prompts: Optional[List[Optional[str]]], requested: int, generate, fmt: str = "markdown", concurrent: bool = False):
    resolver = ImageResolver(generate)
    draft = ArticleDraft(text=text, format=fmt, content_type="blog post")
    final = asyncio.run(assemble_article(draft, prompts, requested, resolver, concurrent=concurrent))
    return final, resolver


class TestScenarios:
    def test_a_both_images_embedded(self) -> None:
        generate = FakeImageGenerator({"sunset": D0, "mountain": D1})

        final, _ = assemble(SCENARIO_TEXT, ["sunset", "mountain"], 2, generate)

        assert final.text == f"Intro \n\n![sunset]({D0})\n\n middle \n\n![mountain]({D1})\n\n end"
        assert final.embedded == 2

    def test_b_empty_prompt_skipped(self) -> None:
        generate = FakeImageGenerator({"sunset": D0})

        final, resolver = assemble(SCENARIO_TEXT, ["sunset", ""], 2, generate)

        assert f"![sunset]({D0})" in final.text
        assert "[Image placeholder 1 skipped: no prompt provided.]" in final.text
        assert resolver.calls == 1
        assert final.skipped == 1

    def test_c_out_of_range_placeholder_swept(self) -> None:
        text = "A {{IMAGE_PLACEHOLDER_0}} B {{IMAGE_PLACEHOLDER_5}} C"
        generate = FakeImageGenerator({"a cat": D0})

        final, _ = assemble(text, ["a cat"], 1, generate)

        assert f"![a cat]({D0})" in final.text
        assert f"*{UNFILLED_NOTE}*" in final.text
        assert final.swept == 1
        assert not has_placeholders(final.text)

    def test_d_zero_requested_returns_draft_swept(self) -> None:
        generate = FakeImageGenerator()

        plain, _ = assemble("Just text.", ["sunset"], 0, generate)
        stray, resolver = assemble("Text {{IMAGE_PLACEHOLDER_0}} more.", ["sunset"], 0, generate, fmt="text")

        assert plain.text == "Just text."
        assert stray.text == f"Text \n{UNFILLED_NOTE}\n more."
        assert resolver.calls == 0
        assert generate.prompts == []

    def test_e_collaborator_error_rendered(self) -> None:
        generate = FakeImageGenerator({"sunset": RuntimeError("model overloaded")})

        final, _ = assemble("X {{IMAGE_PLACEHOLDER_0}} Y", ["sunset"], 1, generate, fmt="text")

        assert final.text == 'X \n[Image generation failed for prompt "sunset": model overloaded]\n Y'
        assert final.failed == 1


class TestProperties:
    @pytest.mark.parametrize("fmt", ["text", "markdown", "html"])
    @pytest.mark.parametrize("requested", [0, 1, 2, 3, 5])
    def test_p1_no_leftover_placeholders(self, fmt: str, requested: int) -> None:
        text = (
            "{{IMAGE_PLACEHOLDER_0}} {{IMAGE_PLACEHOLDER_0}} {{ IMAGE_PLACEHOLDER_1 }} "
            "{{IMAGE_PLACEHOLDER_2}} {{IMAGE_PLACEHOLDER_9}} {{{{IMAGE_PLACEHOLDER_3}}}}"
        )
        prompts = ["ok", "", "boom {{IMAGE_PLACEHOLDER_4}}", None]
        generate = FakeImageGenerator({"boom {{IMAGE_PLACEHOLDER_4}}": RuntimeError("{{IMAGE_PLACEHOLDER_4}}")})

        final, _ = assemble(text, prompts, requested, generate, fmt=fmt)

        assert not has_placeholders(final.text)

    @pytest.mark.parametrize("requested,prompts,expected", [
        (0, ["a", "b"], 0),
        (1, ["a", "b"], 1),
        (3, ["a", "b"], 2),
        (5, [], 0),
        (2, None, 0),
    ])
    def test_p2_bounded_image_calls(self, requested, prompts, expected) -> None:
        text = " ".join("{{IMAGE_PLACEHOLDER_%d}}" % i for i in range(6))
        generate = FakeImageGenerator()

        _, resolver = assemble(text, prompts, requested, generate)

        assert slot_bound(requested, prompts) == expected
        assert resolver.calls == expected
        assert len(generate.prompts) == expected

    def test_p3_concurrent_matches_sequential(self) -> None:
        text = "a {{IMAGE_PLACEHOLDER_2}} b {{IMAGE_PLACEHOLDER_0}} c {{IMAGE_PLACEHOLDER_1}} d"
        prompts = ["p0", "p1", "p2"]
        outcomes = {"p0": D0, "p1": RuntimeError("nope"), "p2": D2}

        class Jittery(FakeImageGenerator):
            async def __call__(self, prompt: str) -> str:
                await asyncio.sleep(random.random() / 100)
                return await super().__call__(prompt)

        sequential, _ = assemble(text, prompts, 3, FakeImageGenerator(outcomes), concurrent=False)
        concurrent, _ = assemble(text, prompts, 3, Jittery(outcomes), concurrent=True)

        assert concurrent.text == sequential.text
        assert concurrent.results == sequential.results

    def test_p4_failure_isolated_to_its_slot(self) -> None:
        text = "{{IMAGE_PLACEHOLDER_0}}|{{IMAGE_PLACEHOLDER_1}}|{{IMAGE_PLACEHOLDER_2}}"
        generate = FakeImageGenerator({"zero": D0, "one": RuntimeError("down"), "two": D2})

        final, _ = assemble(text, ["zero", "one", "two"], 3, generate)
        first, middle, last = final.text.split("|")

        assert f"![zero]({D0})" in first
        assert "Image generation failed" in middle and "down" in middle
        assert f"![two]({D2})" in last
        assert "failed" not in first + last

    def test_p5_sweep_idempotent(self) -> None:
        text, count = sweep_placeholders("x {{IMAGE_PLACEHOLDER_0}} y", "markdown")
        again, second_count = sweep_placeholders(text, "markdown")

        assert count == 1
        assert second_count == 0
        assert again == text


class TestAssembler:
    def test_results_keyed_by_index(self) -> None:
        generate = FakeImageGenerator({"a": D0, "b": D1})

        final, _ = assemble(SCENARIO_TEXT, ["a", "b"], 2, generate)

        assert list(final.results) == [0, 1]
        assert final.results[1] == ImageSuccess(data_uri=D1)

    def test_missing_placeholder_for_resolved_slot(self) -> None:
        generate = FakeImageGenerator()

        final, resolver = assemble("No markers at all.", ["a"], 1, generate)

        assert final.text == "No markers at all."
        assert resolver.calls == 1

    def test_on_slot_called_in_ascending_order(self) -> None:
        seen = []
        resolver = ImageResolver(FakeImageGenerator())
        draft = ArticleDraft(text=SCENARIO_TEXT)

        asyncio.run(assemble_article(
            draft, ["a", "b"], 2, resolver,
            concurrent=True,
            on_slot=lambda i, result, text: seen.append((i, result.status, has_placeholders(text))),
        ))

        assert seen == [(0, "success", True), (1, "success", False)]

    def test_raising_resolver_contained(self) -> None:
        class Broken:
            async def resolve(self, index, prompt):
                raise RuntimeError("resolver bug")

        draft = ArticleDraft(text="{{IMAGE_PLACEHOLDER_0}}", format="text")

        final = asyncio.run(assemble_article(draft, ["a"], 1, Broken()))

        assert final.failed == 1
        assert "resolver bug" in final.text

    def test_html_uses_em_notes(self) -> None:
        final, _ = assemble("{{IMAGE_PLACEHOLDER_3}}", [], 0, FakeImageGenerator(), fmt="html")

        assert final.text == f"\n<p><em>{UNFILLED_NOTE}</em></p>\n"

    def test_oversized_placeholder_index_swept(self) -> None:
        text = "A {{IMAGE_PLACEHOLDER_" + "9" * 5000 + "}} B {{IMAGE_PLACEHOLDER_0}}"

        final, _ = assemble(text, ["cat"], 1, FakeImageGenerator({"cat": D0}))

        assert f"![cat]({D0})" in final.text
        assert f"*{UNFILLED_NOTE}*" in final.text
        assert not has_placeholders(final.text)
        assert final.swept == 1
