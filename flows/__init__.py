"""
Flow functions for the article studio.

Every flow has the signature ``async def flow(ctx, params) -> Output``.
"""

from .article import (
    generate_article,
    generate_article_stream,
)

from .images import (
    generate_image,
    generate_image_data_uri,
    ImageGenerationError,
)

from .search import (
    google_search,
    extract_html_content,
)

from .topics import (
    suggest_topics,
)

from .schemas import (
    LLMConfig,
    ImageConfig,
    GenerateArticleInput,
    GenerateArticleOutput,
    GenerateArticleStreamInput,
    GenerateImageInput,
    GenerateImageOutput,
    GoogleSearchInput,
    GoogleSearchOutput,
    SearchResultItem,
    ExtractHtmlInput,
    ExtractHtmlOutput,
    SuggestTopicsInput,
    SuggestTopicsOutput,
)
