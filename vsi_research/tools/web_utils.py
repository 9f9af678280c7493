from __future__ import annotations

import re
from typing import Iterator, Sequence, TypeVar
from urllib.parse import unquote, urlparse

T = TypeVar("T")

_TRAILING_PUNCTUATION = ".,;:!?)]}'\""


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    if not isinstance(url, str):
        return False
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def clean_content(text: str, max_length: int = 8000) -> str:
    """Collapse whitespace and trim to max length."""
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return text


def extract_domain(url: str) -> str:
    """Lower-cased host without a leading www."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return url
    if host.startswith("www."):
        host = host[4:]
    return host


def title_from_url(url: str) -> str:
    """Readable title guess from the last path segment, else the domain."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "External Source"
    segments = [s for s in parsed.path.split("/") if s]
    if segments:
        last = unquote(segments[-1])
        last = re.sub(r"\.[a-z0-9]{2,5}$", "", last, flags=re.IGNORECASE)
        words = re.sub(r"[-_]+", " ", last).strip()
        if words:
            return words.title()
    return extract_domain(url) or "External Source"


def extract_urls(text: str, *, exclude_domains: Sequence[str] = (), limit: int = 5) -> list[str]:
    """Pull http(s) links out of free text, skipping excluded domains."""
    found: list[str] = []
    for match in re.findall(r"https?://[^\s<>\"']+", text or ""):
        url = match.rstrip(_TRAILING_PUNCTUATION)
        domain = extract_domain(url)
        if any(domain == d or domain.endswith("." + d) for d in exclude_domains):
            continue
        if url not in found and is_valid_url(url):
            found.append(url)
        if len(found) >= limit:
            break
    return found


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    size = max(int(size), 1)
    for start in range(0, len(items), size):
        yield list(items[start:start + size])
