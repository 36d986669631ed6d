"""
Image placeholder tokens embedded in generated article text.

The LLM marks each image insertion point with {{IMAGE_PLACEHOLDER_<N>}},
N being a zero-based slot index. Double braces keep the token opaque to
Markdown and HTML, so it survives either format untouched until assembly.
Recognition tolerates whitespace inside the braces; rendering is canonical.
"""
import re
from dataclasses import dataclass
from typing import Iterator, Tuple

PLACEHOLDER_PREFIX = "IMAGE_PLACEHOLDER_"

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*IMAGE_PLACEHOLDER_(\d+)\s*\}\}")

# Longer indices cannot name a slot; they parse to UNMATCHABLE_INDEX
MAX_INDEX_DIGITS = 9
UNMATCHABLE_INDEX = -1


@dataclass(frozen=True)
class PlaceholderMatch:
    """One placeholder occurrence."""
    index: int
    offset: int  # UTF-8 byte offset
    start: int   # character offset
    token: str

    @property
    def end(self) -> int:
        return self.start + len(self.token)


def render_placeholder(index: int) -> str:
    """Canonical token for a slot index."""
    if index < 0:
        raise ValueError(f"Placeholder index must be non-negative, got {index}")
    return "{{" + f"{PLACEHOLDER_PREFIX}{index}" + "}}"


def _parse_index(digits: str) -> int:
    digits = digits.lstrip("0") or "0"
    if len(digits) > MAX_INDEX_DIGITS:
        return UNMATCHABLE_INDEX
    return int(digits)


def find_placeholders(text: str) -> Iterator[PlaceholderMatch]:
    """
    Yield every placeholder in text, in document order.

    Each call rescans from the start, so the sequence is restartable.
    """
    byte_offset = 0
    last = 0
    for match in PLACEHOLDER_PATTERN.finditer(text):
        byte_offset += len(text[last:match.start()].encode("utf-8"))
        last = match.start()
        yield PlaceholderMatch(
            index=_parse_index(match.group(1)),
            offset=byte_offset,
            start=match.start(),
            token=match.group(0),
        )


def has_placeholders(text: str) -> bool:
    return PLACEHOLDER_PATTERN.search(text) is not None


def replace_placeholder(text: str, index: int, replacement: str) -> Tuple[str, bool]:
    """
    Replace the first placeholder carrying exactly this index.

    Returns (new_text, replaced). Tokens with other indices are never
    touched; later duplicates of the same index are left for the sweep.
    """
    for match in find_placeholders(text):
        if match.index == index:
            return text[:match.start] + replacement + text[match.end:], True
    return text, False


def strip_placeholders(text: str, replacement: str) -> Tuple[str, int]:
    """Replace every remaining placeholder with one uniform string."""
    return PLACEHOLDER_PATTERN.subn(lambda _: replacement, text)


def neutralize_placeholders(text: str) -> str:
    """
    Defuse placeholder tokens inside caller-supplied strings.

    Prompts and error messages are echoed into substitutions; stripping the
    braces guarantees a substitution can never introduce a new token.
    """
    # Repeat: "{{{{IMAGE_PLACEHOLDER_1}}}}" leaves a fresh token after one pass
    while has_placeholders(text):
        text = PLACEHOLDER_PATTERN.sub(lambda m: f"{PLACEHOLDER_PREFIX}{m.group(1)}", text)
    return text
