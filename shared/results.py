"""
Typed values flowing through article assembly.

ImageResult is a tagged union (status = success | failure | skipped) so
expected image failures travel as values instead of exceptions.
"""
import re
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

OutputFormat = Literal["text", "markdown", "html"]

# data:image/<subtype>[;param...],<payload>
DATA_URI_PATTERN = re.compile(r"^data:image/[A-Za-z0-9.+-]+(;[^,]*)?,.+", re.DOTALL)


def is_image_data_uri(value: Optional[str]) -> bool:
    """True when value is a non-empty, format-prefixed image data URI."""
    if not isinstance(value, str):
        return False
    return DATA_URI_PATTERN.match(value.strip()) is not None


class ArticleDraft(BaseModel):
    """Raw LLM article text, possibly containing image placeholders."""
    model_config = ConfigDict(frozen=True)

    text: str
    format: OutputFormat = "markdown"
    language: str = "English"
    content_type: str = "article"


class ImageSlot(BaseModel):
    """One requested image insertion point."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    prompt: Optional[str] = None


class ImageSuccess(BaseModel):
    status: Literal["success"] = "success"
    data_uri: str

    @field_validator("data_uri")
    @classmethod
    def must_be_image_data_uri(cls, v: str) -> str:
        if not is_image_data_uri(v):
            raise ValueError("data_uri must be a data:image/... URI")
        return v.strip()


class ImageFailure(BaseModel):
    status: Literal["failure"] = "failure"
    reason: str


class ImageSkipped(BaseModel):
    status: Literal["skipped"] = "skipped"
    reason: str


ImageResult = Annotated[
    Union[ImageSuccess, ImageFailure, ImageSkipped],
    Field(discriminator="status"),
]


class FinalArticle(BaseModel):
    """Assembled article; text never contains a placeholder token."""
    text: str
    format: OutputFormat
    results: Dict[int, ImageResult] = Field(default_factory=dict)
    swept: int = 0

    def count(self, status: str) -> int:
        return sum(1 for r in self.results.values() if r.status == status)

    @property
    def embedded(self) -> int:
        return self.count("success")

    @property
    def failed(self) -> int:
        return self.count("failure")

    @property
    def skipped(self) -> int:
        return self.count("skipped")
