"""
Pydantic schemas for flow inputs and outputs.

Every flow takes one of the *Input models and returns the matching *Output
model, so the CLI, tests and any other caller share one validated contract.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from shared.results import OutputFormat


# =============================================================================
# LLM MODEL REGISTRY
# =============================================================================
# Maps user-friendly model names to provider + API model ID
# Format: "Display Name" -> (provider, model_id)

LLM_MODEL_REGISTRY: Dict[str, tuple] = {
    # Google Gemini
    "Gemini 2.5 Pro": ("gemini", "gemini-2.5-pro"),
    "Gemini 2.5 Flash": ("gemini", "gemini-2.5-flash"),
    "Gemini 2.5 Flash Lite": ("gemini", "gemini-2.5-flash-lite"),
    "Gemini 2.0 Flash": ("gemini", "gemini-2.0-flash"),

    # Anthropic Claude
    "Claude Opus 4": ("anthropic", "claude-opus-4-20250514"),
    "Claude Sonnet 4": ("anthropic", "claude-sonnet-4-20250514"),
    "Claude 3.5 Haiku": ("anthropic", "claude-3-5-haiku-20241022"),

    # OpenAI
    "GPT-4.1": ("openai", "gpt-4.1"),
    "GPT-4o": ("openai", "gpt-4o"),
    "GPT-4o Mini": ("openai", "gpt-4o-mini"),

    # Local (Ollama)
    "Llama 3.1 (Local)": ("ollama", "llama3.1"),
    "Mistral (Local)": ("ollama", "mistral"),
    "Qwen 2.5 (Local)": ("ollama", "qwen2.5"),
}

LLM_MODEL_CHOICES = list(LLM_MODEL_REGISTRY.keys())

IMAGE_PROVIDERS = ("placeholder", "openai", "gemini", "stable-diffusion")


def resolve_model(model_name: Optional[str]) -> tuple:
    """
    Resolve a model name to (provider, model_id).

    Returns (None, None) for unknown or empty names.
    """
    if not model_name:
        return (None, None)
    return LLM_MODEL_REGISTRY.get(model_name, (None, None))


# =============================================================================
# PROVIDER CONFIGURATION (shared by all flows)
# =============================================================================

class LLMConfig(BaseModel):
    """
    Per-call LLM override.

    Resolution order (first non-None wins):
    1. This object (model is a display name from LLM_MODEL_REGISTRY)
    2. Settings (LLM_PROVIDER + LLM_MODEL)
    3. Defaults (Llama 3.1 Local)
    """
    model: Optional[str] = Field(
        default=None,
        description="Model to use (e.g., 'Gemini 2.5 Flash', 'Claude Sonnet 4', 'GPT-4o')"
    )
    temperature: Optional[float] = Field(
        default=None,
        ge=0,
        le=2,
        description="Temperature for LLM sampling (0=deterministic, 2=max creativity)"
    )


class ImageConfig(BaseModel):
    """Per-call image provider override."""
    image_provider: Optional[str] = Field(
        default=None,
        description="Image provider: 'placeholder', 'openai', 'gemini', 'stable-diffusion'"
    )
    image_model: Optional[str] = Field(default=None, description="Provider model ID override")

    @field_validator("image_provider")
    @classmethod
    def known_provider(cls, v):
        if v is not None and v not in IMAGE_PROVIDERS:
            raise ValueError(f"Unknown image provider: {v}")
        return v


# =============================================================================
# ARTICLE SCHEMAS
# =============================================================================

class LLMArticleResponse(BaseModel):
    """Structured response expected from the article prompt."""
    article_content: str = Field(
        description=(
            "The generated article. When images are requested it MUST contain the exact "
            "placeholder strings {{IMAGE_PLACEHOLDER_0}}, {{IMAGE_PLACEHOLDER_1}}, ... at the "
            "most contextually appropriate locations."
        )
    )
    # A null entry is kept so later prompts stay aligned with their slots
    image_prompt_suggestions: List[Optional[str]] = Field(
        default_factory=list,
        description=(
            "Concise image generation prompts (max 20 words each). The first prompt is for "
            "{{IMAGE_PLACEHOLDER_0}}, the second for {{IMAGE_PLACEHOLDER_1}}, and so on."
        ),
    )

    @field_validator("image_prompt_suggestions", mode="before")
    @classmethod
    def ensure_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class GenerateArticleInput(BaseModel):
    """Input for generate_article flow."""
    keywords: str = Field(description="Comma-separated keywords or topics for the article")
    content_type: str = Field(default="blog post", description="e.g. 'blog post', 'technical summary'")
    language: str = Field(default="English", description="Target language of the whole article")
    uploaded_content: Optional[str] = Field(
        default=None,
        description="Text extracted from a user-uploaded document; used as the primary reference",
    )
    additional_context: Optional[str] = Field(default=None, description="Free-form notes from the user")
    output_format: OutputFormat = "markdown"
    number_of_images: int = Field(default=0, ge=0, le=5, description="Images to generate and embed (0-5)")
    concurrent_images: bool = Field(
        default=False,
        description="Resolve all images at once instead of one after another",
    )
    # Provider overrides (optional - fall back to settings)
    llm_config: Optional[LLMConfig] = Field(default=None, description="Override LLM provider/model")
    image_config: Optional[ImageConfig] = Field(default=None, description="Override image provider")

    @field_validator("keywords")
    @classmethod
    def keywords_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("keywords must not be empty")
        return v.strip()


class GenerateArticleOutput(BaseModel):
    """Output from generate_article flow."""
    article: str = ""
    output_format: OutputFormat = "markdown"
    images_requested: int = 0
    images_embedded: int = 0
    images_failed: int = 0
    images_skipped: int = 0
    placeholders_swept: int = 0
    status: str = "success"


class GenerateArticleStreamInput(BaseModel):
    """Input for generate_article_stream flow. No images in streaming mode."""
    keywords: str
    content_type: str = "blog post"
    language: str = "English"
    uploaded_content: Optional[str] = None
    additional_context: Optional[str] = None
    output_format: OutputFormat = "markdown"
    llm_config: Optional[LLMConfig] = None

    @field_validator("keywords")
    @classmethod
    def keywords_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("keywords must not be empty")
        return v.strip()


# =============================================================================
# IMAGE SCHEMAS
# =============================================================================

class GenerateImageInput(BaseModel):
    """Input for generate_image flow."""
    prompt: str = ""
    image_config: Optional[ImageConfig] = Field(default=None, description="Override image provider")


class GenerateImageOutput(BaseModel):
    """Output from generate_image flow."""
    image_data_uri: Optional[str] = None
    status: Literal["success", "error", "skipped"] = "success"
    reason: Optional[str] = None


# =============================================================================
# SEARCH SCHEMAS
# =============================================================================

class SearchResultItem(BaseModel):
    """Single Google Custom Search result, optionally enriched with page text."""
    title: str = "N/A"
    link: str = "#"
    snippet: str = "No snippet available."
    fetched_content: Optional[str] = None


class GoogleSearchInput(BaseModel):
    """Input for google_search flow."""
    query: str
    fetch_content: bool = Field(default=True, description="Fetch and extract each result page")
    max_results: int = Field(default=10, ge=1, le=10, description="Custom Search returns at most 10")
    llm_config: Optional[LLMConfig] = Field(default=None, description="LLM used to extract page text")


class GoogleSearchOutput(BaseModel):
    """Output from google_search flow."""
    results: List[SearchResultItem] = Field(default_factory=list)
    status: str = "success"


class ExtractHtmlInput(BaseModel):
    """Input for extract_html_content flow."""
    html_content: str = ""
    llm_config: Optional[LLMConfig] = None


class ExtractHtmlOutput(BaseModel):
    """Output from extract_html_content flow."""
    extracted_text: str = ""


class LLMExtractedText(BaseModel):
    """Structured response expected from the extraction prompt."""
    extracted_text: str


# =============================================================================
# TOPIC SCHEMAS
# =============================================================================

class SuggestTopicsInput(BaseModel):
    """Input for suggest_topics flow."""
    input: str
    llm_config: Optional[LLMConfig] = None


class SuggestTopicsOutput(BaseModel):
    """Output from suggest_topics flow."""
    topics: List[str] = Field(default_factory=list)

    @field_validator("topics", mode="before")
    @classmethod
    def drop_blank(cls, v):
        if v is None:
            return []
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]
