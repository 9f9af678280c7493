from __future__ import annotations

import asyncio
import time
from collections import OrderedDict, deque
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from urllib.parse import quote_plus

from vsi_research.config import settings
from vsi_research.errors import InvalidRequestError, RateLimitExceededError
from vsi_research.research_core.models.interfaces import SearchResponse, SearchResult
from vsi_research.services import logger as log_service
from vsi_research.tools import brave_search, duckduckgo_search, tavily_search
from vsi_research.tools.web_utils import extract_domain, is_valid_url

if TYPE_CHECKING:
    from vsi_research.tools.web_browser import WebBrowserService

SUPPORTED_PROVIDERS = ("duckduckgo", "brave", "tavily", "google", "bing")

SEARCH_PAGE_URLS = {
    "duckduckgo": "https://duckduckgo.com/?q={q}",
    "google": "https://www.google.com/search?q={q}",
    "bing": "https://www.bing.com/search?q={q}",
    "brave": "https://search.brave.com/search?q={q}",
    "tavily": "https://duckduckgo.com/?q={q}",
}

DOMAIN_AUTHORITY = {
    "wikipedia.org": 0.2,
    "github.com": 0.15,
    "stackoverflow.com": 0.15,
    "mozilla.org": 0.1,
    "w3.org": 0.1,
    "ieee.org": 0.1,
}

# (domain, relevance) for generated results when a provider gives too little.
FALLBACK_DOMAINS = (
    ("wikipedia.org", 0.6),
    ("stackoverflow.com", 0.5),
    ("github.com", 0.4),
)
SEARCH_PAGE_RELEVANCE = 0.8
MIN_PROVIDER_RESULTS = 3
DEFAULT_BASE_RELEVANCE = 0.5
TITLE_MATCH_WEIGHT = 0.3
DESCRIPTION_MATCH_WEIGHT = 0.2
CONTENT_ENRICHMENT_LIMIT = 3

# Providers are called as fetch(query, limit, language=..., region=...).
ProviderFn = Callable[..., Awaitable[list[SearchResult]]]


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def query_terms(query: str) -> list[str]:
    return [t for t in query.lower().split() if len(t) > 2]


def domain_authority(url: str) -> float:
    domain = extract_domain(url)
    for known, bonus in DOMAIN_AUTHORITY.items():
        if domain == known or domain.endswith("." + known):
            return bonus
    return 0.0


def fallback_results(query: str, provider: str) -> list[SearchResult]:
    """Search-page link plus generated results on well-known reference domains."""
    template = SEARCH_PAGE_URLS.get(provider, SEARCH_PAGE_URLS["duckduckgo"])
    results = [
        SearchResult(
            title=f"{provider.title()} search: {query}",
            url=template.format(q=quote_plus(query)),
            description=f"Search results page for '{query}'",
            source=provider,
            relevance_score=SEARCH_PAGE_RELEVANCE,
            type="search_page",
        )
    ]
    slug = "-".join(query_terms(query)) or quote_plus(query.strip().lower())
    for domain, relevance in FALLBACK_DOMAINS:
        results.append(
            SearchResult(
                title=f"{query} - {domain}",
                url=f"https://{domain}/{slug}",
                description=f"Reference material about {query} on {domain}",
                source=provider,
                relevance_score=relevance,
                type="generated",
            )
        )
    return results


def filter_results(results: list[SearchResult], quality_threshold: float) -> list[SearchResult]:
    return [
        r
        for r in results
        if r.url
        and r.title
        and is_valid_url(r.url)
        and r.relevance_score >= quality_threshold
    ]


def rank_results(results: list[SearchResult], query: str) -> list[SearchResult]:
    """Score by term overlap and domain authority; stable sort, best first."""
    terms = query_terms(query)
    for result in results:
        score = result.relevance_score if result.relevance_score is not None else DEFAULT_BASE_RELEVANCE
        if terms:
            title = result.title.lower()
            description = result.description.lower()
            title_matches = sum(1 for t in terms if t in title)
            desc_matches = sum(1 for t in terms if t in description)
            score += (title_matches / len(terms)) * TITLE_MATCH_WEIGHT
            score += (desc_matches / len(terms)) * DESCRIPTION_MATCH_WEIGHT
        score += domain_authority(result.url)
        result.final_relevance_score = max(0.0, min(1.0, score))
    return sorted(results, key=lambda r: r.final_relevance_score, reverse=True)


class SlidingWindowRateLimiter:
    """Counts requests in a trailing time window."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = max(int(limit), 1)
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._requests: deque[float] = deque()

    def _prune(self) -> float:
        now = self._clock()
        while self._requests and now - self._requests[0] >= self.window_seconds:
            self._requests.popleft()
        return now

    def check(self) -> None:
        now = self._prune()
        if len(self._requests) >= self.limit:
            reset_in = self.window_seconds - (now - self._requests[0])
            raise RateLimitExceededError(self.limit, self.window_seconds, max(reset_in, 0.0))

    def record(self) -> None:
        self._prune()
        self._requests.append(self._clock())

    def status(self) -> dict[str, Any]:
        now = self._prune()
        reset_in = self.window_seconds - (now - self._requests[0]) if self._requests else 0.0
        return {
            "requests_in_window": len(self._requests),
            "limit": self.limit,
            "window_seconds": self.window_seconds,
            "reset_in_seconds": round(max(reset_in, 0.0), 3),
        }


class TTLCache:
    """Insertion-ordered cache; oldest entry goes first once over capacity."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max(int(max_entries), 1)
        self._clock = clock
        self._entries: OrderedDict[Any, tuple[float, Any]] = OrderedDict()

    def get(self, key: Any) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: Any, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock(), value)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class WebSearchService:
    """Provider-agnostic web search with rate limiting, caching and ranking."""

    def __init__(
        self,
        *,
        enabled: bool | None = None,
        provider: str | None = None,
        max_results: int | None = None,
        quality_threshold: float | None = None,
        timeout_seconds: float | None = None,
        rate_limit: int | None = None,
        rate_window_seconds: float | None = None,
        cache_ttl_seconds: float | None = None,
        cache_max_entries: int | None = None,
        providers: dict[str, ProviderFn] | None = None,
        browser: WebBrowserService | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.enabled = settings.web_search_enabled if enabled is None else bool(enabled)
        self.provider = (provider or settings.web_search_provider).lower().strip()
        self.max_results = int(max_results or settings.web_search_max_results)
        self.quality_threshold = (
            settings.web_search_quality_threshold if quality_threshold is None else float(quality_threshold)
        )
        self.timeout_seconds = float(timeout_seconds or settings.web_search_timeout_seconds)
        self.rate_limiter = SlidingWindowRateLimiter(
            rate_limit or settings.web_search_rate_limit,
            rate_window_seconds or settings.web_search_rate_window_seconds,
            clock=clock,
        )
        self.cache = TTLCache(
            cache_ttl_seconds or settings.web_search_cache_ttl_seconds,
            cache_max_entries or settings.web_search_cache_max_entries,
            clock=clock,
        )
        self.browser = browser
        self._providers: dict[str, ProviderFn] = {
            "duckduckgo": self._search_duckduckgo,
            "brave": self._search_brave,
            "tavily": self._search_tavily,
            "google": self._search_page_only("google"),
            "bing": self._search_page_only("bing"),
        }
        if providers:
            self._providers.update(providers)

    async def search(
        self,
        query: str,
        *,
        max_results: int | None = None,
        provider: str | None = None,
        language: str = "en",
        region: str = "us",
    ) -> SearchResponse:
        if not isinstance(query, str) or not query.strip():
            raise InvalidRequestError("Invalid query")
        query = query.strip()
        provider_name = (provider or self.provider).lower().strip()
        limit = int(max_results or self.max_results)
        options = {
            "max_results": limit,
            "provider": provider_name,
            "language": language,
            "region": region,
        }

        if not self.enabled:
            return SearchResponse(
                query=query,
                provider=provider_name,
                results=[],
                timestamp=_utcnow(),
                metadata={"enabled": False, "search_options": options, "cached": False},
            )

        self.rate_limiter.check()

        cache_key = (query, provider_name, limit, language, region)
        cached = self.cache.get(cache_key)
        if cached is not None:
            log_service.logger.debug("Using cached search results for %r", query)
            return replace(
                cached,
                results=list(cached.results),
                metadata={**cached.metadata, "cached": True},
            )

        fetch = self._providers.get(provider_name)
        if fetch is None:
            return SearchResponse(
                query=query,
                provider=provider_name,
                results=[],
                timestamp=_utcnow(),
                success=False,
                error=f"Unsupported search provider: {provider_name}",
                metadata={"search_options": options, "cached": False},
            )

        started = time.monotonic()
        try:
            raw = await fetch(query, limit, language=language, region=region)
        except Exception as e:
            log_service.log_external_call(
                service="web_search",
                operation=provider_name,
                status="error",
                duration_ms=int((time.monotonic() - started) * 1000),
                target=query[:100],
                error=str(e),
            )
            raw = fallback_results(query, provider_name)

        ranked = rank_results(filter_results(raw, self.quality_threshold), query)[:limit]
        response = SearchResponse(
            query=query,
            provider=provider_name,
            results=ranked,
            timestamp=_utcnow(),
            metadata={"search_options": options, "cached": False},
        )
        self.cache.set(cache_key, response)
        self.rate_limiter.record()
        log_service.log_external_call(
            service="web_search",
            operation=provider_name,
            status="success",
            duration_ms=int((time.monotonic() - started) * 1000),
            target=query[:100],
        )
        return response

    async def search_with_content(self, query: str, **kwargs: Any) -> SearchResponse:
        """Search, then pull page content for the top results through the browser."""
        response = await self.search(query, **kwargs)
        if not response.success or not response.results or self.browser is None:
            return response

        top = response.results[:CONTENT_ENRICHMENT_LIMIT]
        outcomes = await asyncio.gather(
            *(self.browser.analyze_web_content(r.url, "general") for r in top),
            return_exceptions=True,
        )
        extracted: list[dict[str, Any]] = []
        for result, outcome in zip(top, outcomes):
            if isinstance(outcome, Exception):
                extracted.append({"url": result.url, "success": False, "error": str(outcome)})
            else:
                extracted.append(
                    {
                        "url": result.url,
                        "success": outcome.success,
                        "content": outcome.content,
                        "error": outcome.error,
                    }
                )
        return replace(response, metadata={**response.metadata, "extracted_content": extracted})

    def get_rate_limit_status(self) -> dict[str, Any]:
        return self.rate_limiter.status()

    def get_status(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "provider": self.provider,
            "supported_providers": list(SUPPORTED_PROVIDERS),
            "max_results": self.max_results,
            "quality_threshold": self.quality_threshold,
            "cache_size": len(self.cache),
            "rate_limit": self.get_rate_limit_status(),
        }

    def clear_cache(self) -> None:
        self.cache.clear()
        log_service.logger.info("Search cache cleared")

    async def _search_duckduckgo(self, query: str, max_results: int, **_locale: Any) -> list[SearchResult]:
        try:
            results = await duckduckgo_search.search(
                query, max_results=max_results, timeout=self.timeout_seconds
            )
        except Exception as e:
            log_service.logger.warning("DuckDuckGo search failed for %r: %s", query, e)
            return fallback_results(query, "duckduckgo")
        if len(results) < MIN_PROVIDER_RESULTS:
            results.extend(fallback_results(query, "duckduckgo"))
        return results

    async def _search_brave(
        self,
        query: str,
        max_results: int,
        *,
        language: str | None = None,
        region: str | None = None,
    ) -> list[SearchResult]:
        return await brave_search.search(
            query,
            max_results=max_results,
            timeout=self.timeout_seconds,
            language=language,
            region=region,
        )

    async def _search_tavily(self, query: str, max_results: int, **_locale: Any) -> list[SearchResult]:
        return await tavily_search.search(query, max_results=max_results)

    @staticmethod
    def _search_page_only(provider: str) -> ProviderFn:
        async def _fetch(query: str, _max_results: int, **_locale: Any) -> list[SearchResult]:
            return fallback_results(query, provider)

        return _fetch
