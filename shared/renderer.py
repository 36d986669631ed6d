"""
Substitution strings for image placeholders.

Pure functions: given a slot outcome and the article's output format,
return the exact text that replaces the placeholder. Notes (failure, skip,
unfilled) are bracketed; Markdown emphasizes them with *...*, HTML wraps
them in <p><em>...</em></p> so the emphasis is real markup in an HTML
document rather than literal asterisks.
"""
import html
import re
from typing import Callable, Dict, Optional

from .placeholders import neutralize_placeholders
from .results import ImageFailure, ImageResult, ImageSkipped, ImageSuccess, OutputFormat

UNFILLED_NOTE = "[An AI-generated image placeholder was present but not filled.]"

HTML_IMAGE_TEMPLATE = (
    '<div style="margin: 1.5em 0; text-align: center;">'
    '<img src="{src}" alt="{alt}" '
    'style="max-width: 100%; height: auto; border-radius: 0.5rem; '
    'box-shadow: 0 4px 8px rgba(0,0,0,0.1);" />'
    "</div>"
)

MARKDOWN_IMAGE_TEMPLATE = "\n\n![{alt}]({src})\n\n"

TEXT_IMAGE_TEMPLATE = (
    '\n\n[AI-generated image for: "{prompt}". '
    "In HTML/Markdown, this image would be displayed here.]\n\n"
)

_ALT_SPECIALS = re.compile(r"([\\\[\]])")
_EMPHASIS_SPECIALS = re.compile(r"([\\*_`])")


def _escape_alt(value: str) -> str:
    return _ALT_SPECIALS.sub(r"\\\1", value)


def _escape_emphasis(value: str) -> str:
    return _EMPHASIS_SPECIALS.sub(r"\\\1", value)


def _one_line(value: str) -> str:
    return " ".join(neutralize_placeholders(value).split())


# format -> wrapper for a bracketed note
_NOTE_WRAPPERS: Dict[str, Callable[[str], str]] = {
    "text": lambda note: f"\n{note}\n",
    "markdown": lambda note: f"\n\n*{_escape_emphasis(note)}*\n\n",
    "html": lambda note: f"\n<p><em>{html.escape(note)}</em></p>\n",
}


def alt_text_for(index: int, prompt: Optional[str], content_type: Optional[str] = None) -> str:
    """Alt text from the prompt, or a positional fallback."""
    if prompt and prompt.strip():
        return _one_line(prompt)
    return f"Generated image {index + 1} for {content_type or 'article'}"


def render_note(note: str, output_format: OutputFormat) -> str:
    return _NOTE_WRAPPERS[output_format](note)


def render_unfilled(output_format: OutputFormat) -> str:
    """Sweep annotation for a placeholder nobody filled."""
    return render_note(UNFILLED_NOTE, output_format)


def render_image(
    data_uri: str,
    output_format: OutputFormat,
    index: int,
    prompt: Optional[str] = None,
    content_type: Optional[str] = None,
) -> str:
    alt = alt_text_for(index, prompt, content_type)
    src = data_uri.strip()

    if output_format == "html":
        return HTML_IMAGE_TEMPLATE.format(
            src=html.escape(src, quote=True),
            alt=html.escape(alt, quote=True),
        )
    if output_format == "markdown":
        return MARKDOWN_IMAGE_TEMPLATE.format(alt=_escape_alt(alt), src=src)
    # Plain text cannot embed an image
    return TEXT_IMAGE_TEMPLATE.format(prompt=alt)


def render_result(
    result: ImageResult,
    output_format: OutputFormat,
    index: int,
    prompt: Optional[str] = None,
    content_type: Optional[str] = None,
) -> str:
    """Substitution string for one resolved slot."""
    if isinstance(result, ImageSuccess):
        return render_image(result.data_uri, output_format, index, prompt, content_type)

    if isinstance(result, ImageSkipped):
        note = f"[Image placeholder {index} skipped: {_one_line(result.reason)}.]"
        return render_note(note, output_format)

    if isinstance(result, ImageFailure):
        prompt_text = _one_line(prompt or "")
        note = f'[Image generation failed for prompt "{prompt_text}": {_one_line(result.reason)}]'
        return render_note(note, output_format)

    raise TypeError(f"Unknown image result: {result!r}")
