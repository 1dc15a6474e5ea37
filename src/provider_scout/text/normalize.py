"""Text normalization and noise filtering for rendered page text.

Rendered ``innerText`` from site builders (Squarespace in particular) leaks
style-sheet fragments and layout tokens into the visible text. Those lines are
dropped before any heuristic reads the text.
"""

import html
import re
import unicodedata
from typing import Iterable
from urllib.parse import urlsplit

_WS_RE = re.compile(r"\s+")
_NOISE_TOKENS = (
    "sqs-",
    "squarespace",
    "grid-area",
    "grid-gutter",
    "cell-max-width",
    "calc(",
    "var(",
)
_CSS_PROPERTY_RE = re.compile(r"\b--[a-z-]+\s*:")
_FE_CLASS_RE = re.compile(r"\.fe-\w+")


def normalize_text(text: str) -> str:
    """Normalize scraped text for display.

    Steps:
    1. NFC normalization
    2. HTML entity decoding (&amp; → &, &#8217; → ', etc.)
    3. Collapse whitespace
    """
    text = unicodedata.normalize("NFC", text)
    text = html.unescape(text)
    return normalize_whitespace(text)


def normalize_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def is_noisy_line(line: str) -> bool:
    lower = line.lower()
    if any(token in lower for token in _NOISE_TOKENS):
        return True
    if _CSS_PROPERTY_RE.search(lower):
        return True
    if _FE_CLASS_RE.search(lower):
        return True
    return "{" in line or "}" in line


def clean_text_lines(text: str) -> list[str]:
    """Split page text into whitespace-normalized, non-empty, non-noisy lines."""
    lines = (normalize_whitespace(line) for line in text.splitlines())
    return [line for line in lines if line and not is_noisy_line(line)]


def dedupe_strings(values: Iterable[str]) -> list[str]:
    """Drop empty and repeated values, comparing by normalized whitespace. Keeps first-seen order."""
    out: list[str] = []
    seen: set[str] = set()
    for value in values:
        normalized = normalize_whitespace(value)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        out.append(normalized)
    return out


def first_non_empty(values: Iterable[str | None]) -> str:
    for value in values:
        if value and value.strip():
            return value.strip()
    return ""


def to_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL, or the input unchanged if it has no host."""
    if not url:
        return ""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url
    return f"{parts.scheme}://{parts.netloc}"
