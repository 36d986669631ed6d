"""
Shared article assembly engine and runtime plumbing.
"""
from .assembler import assemble_article, sweep_placeholders
from .context import FlowContext
from .placeholders import find_placeholders, render_placeholder, strip_placeholders
from .renderer import render_result, render_unfilled
from .resolver import ImageResolver
from .results import ArticleDraft, FinalArticle, ImageFailure, ImageResult, ImageSkipped, ImageSuccess
from .settings import Settings
from .streaming import StreamError, TextStream

__all__ = [
    "assemble_article",
    "sweep_placeholders",
    "FlowContext",
    "find_placeholders",
    "render_placeholder",
    "strip_placeholders",
    "render_result",
    "render_unfilled",
    "ImageResolver",
    "ArticleDraft",
    "FinalArticle",
    "ImageFailure",
    "ImageResult",
    "ImageSkipped",
    "ImageSuccess",
    "Settings",
    "StreamError",
    "TextStream",
]
