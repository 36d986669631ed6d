"""
Runtime settings for the article flows.

Every secret and tunable the collaborators need lives on one explicit
Settings object that is handed to the FlowContext at construction time.
Flows never read the process environment themselves; Settings() reads it
(plus .env) once, when the object is built.
"""
from pathlib import Path
from typing import Mapping, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Values shipped in .env.example that mean "not configured"
UNSET_SENTINELS = {
    "",
    "YOUR_GOOGLE_API_KEY_HERE",
    "YOUR_CUSTOM_SEARCH_ENGINE_ID_HERE",
}

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    """Secrets and tunables for the LLM, image and search collaborators."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    # LLM
    llm_provider: Optional[str] = Field(default=None, description="openai, anthropic, gemini or ollama")
    llm_model: Optional[str] = None
    ollama_host: str = "http://localhost:11434"
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    google_api_key: Optional[str] = None

    # Image generation
    image_provider: Optional[str] = Field(default=None, description="placeholder, openai, gemini or stable-diffusion")
    image_model: Optional[str] = None
    sd_api_url: str = "http://localhost:7860"
    image_timeout_seconds: float = Field(default=120.0, gt=0)

    # Web search (Google Custom Search); most deployments share one Google key
    google_search_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("google_search_api_key", "google_api_key"),
    )
    custom_search_engine_id: Optional[str] = None
    page_fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    user_agent: str = DEFAULT_USER_AGENT

    # Development cache for LLM responses
    llm_dev_cache: bool = False
    llm_dev_cache_dir: Path = Path("/tmp/llm_dev_cache")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        With no argument this reads the process environment and .env. An
        explicit mapping is validated on its own, without either.
        """
        if environ is None:
            return cls()
        return cls.model_validate({name.lower(): value for name, value in environ.items() if value})

    @property
    def search_configured(self) -> bool:
        return (
            self.google_search_api_key not in UNSET_SENTINELS
            and self.custom_search_engine_id not in UNSET_SENTINELS
            and self.google_search_api_key is not None
            and self.custom_search_engine_id is not None
        )
