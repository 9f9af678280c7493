from __future__ import annotations

import asyncio
import hashlib
import time
from datetime import datetime, timezone
from typing import Any, Sequence

from vsi_research.config import settings
from vsi_research.errors import InvalidRequestError, ResearchServiceError
from vsi_research.research_core.models.interfaces import (
    ExternalAnalysisResult,
    ItemResult,
    SearchResponse,
    Source,
)
from vsi_research.research_core.web_analysis import combine_frequencies, parse_web_analysis
from vsi_research.services import logger as log_service
from vsi_research.tools.web_browser import ANALYSIS_PROMPTS, WebBrowserService
from vsi_research.tools.web_search import WebSearchService
from vsi_research.tools.web_utils import chunked, is_valid_url, title_from_url

EXTERNAL_COLLECTION_ID = "external"
EXTERNAL_COLLECTION_NAME = "External Web Sources"
USER_URL_RELEVANCE = 0.8
DEFAULT_ITEM_RELEVANCE = 0.5
MAX_DISCOVERY_SEARCH_RESULTS = 10
COMPREHENSIVE_ANALYSIS_LIMIT = 3
COMBINED_THEME_LIMIT = 5
COMBINED_ENTITY_LIMIT = 10

# Analysis types accepted by the HTTP analyze endpoint, mapped to extraction prompts.
API_ANALYSIS_TYPES = {
    "summary": "summary",
    "comparison": "general",
    "trends": "themes",
    "facts": "facts",
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _url_id(prefix: str, url: str) -> str:
    return f"{prefix}_{hashlib.sha1(url.encode('utf-8')).hexdigest()[:12]}"


def empty_summary(analysis_type: str) -> dict[str, Any]:
    return {
        "total_analyzed": 0,
        "successful": 0,
        "failed": 0,
        "analysis_type": analysis_type,
        "duration_ms": 0,
        "themes": [],
        "entities": [],
        "avg_relevance": 0.0,
    }


class ExternalContentService:
    """Coordinates web search and remote browsing for the research agents.

    Either sub-service may be absent; every entry point then returns a
    neutral result instead of raising.
    """

    def __init__(
        self,
        *,
        search: WebSearchService | None = None,
        browser: WebBrowserService | None = None,
        max_external_sources: int | None = None,
        chunk_size: int | None = None,
        chunk_delay_seconds: float | None = None,
    ):
        self.search_service = search
        self.browser_service = browser
        self.max_external_sources = int(max_external_sources or settings.max_external_sources)
        self.chunk_size = int(chunk_size or settings.external_chunk_size)
        self.chunk_delay_seconds = (
            settings.external_chunk_delay_seconds if chunk_delay_seconds is None else chunk_delay_seconds
        )
        self.stats: dict[str, Any] = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "average_response_time": 0.0,
            "last_activity": None,
        }

    @classmethod
    def from_settings(cls) -> ExternalContentService:
        browser = WebBrowserService() if settings.web_browsing_enabled else None
        search = WebSearchService(browser=browser) if settings.web_search_enabled else None
        return cls(search=search, browser=browser)

    @property
    def search_enabled(self) -> bool:
        return self.search_service is not None and self.search_service.enabled

    @property
    def browsing_enabled(self) -> bool:
        return self.browser_service is not None and self.browser_service.enabled

    def is_enabled(self) -> bool:
        return self.search_enabled or self.browsing_enabled

    def _update_stats(self, success: bool, duration_ms: int) -> None:
        stats = self.stats
        stats["total_requests"] += 1
        if success:
            stats["successful_requests"] += 1
        else:
            stats["failed_requests"] += 1
        n = stats["total_requests"]
        stats["average_response_time"] = (stats["average_response_time"] * (n - 1) + duration_ms) / n
        stats["last_activity"] = _utcnow()

    async def _analyze_one(self, url: str, analysis_type: str) -> ExternalAnalysisResult:
        started = time.monotonic()
        if not is_valid_url(url):
            return ExternalAnalysisResult(source=url, success=False, error="Invalid URL format")
        browse = await self.browser_service.analyze_web_content(url, analysis_type)
        duration_ms = int((time.monotonic() - started) * 1000)
        analysis = parse_web_analysis(browse.content) if browse.success else None
        if analysis is None:
            return ExternalAnalysisResult(
                source=url,
                success=False,
                duration_ms=duration_ms,
                error=browse.error or "No content extracted",
            )
        return ExternalAnalysisResult(
            source=url,
            success=True,
            duration_ms=duration_ms,
            analysis=analysis,
            relevance_score=DEFAULT_ITEM_RELEVANCE,
        )

    async def _analyze_isolated(self, url: str, analysis_type: str) -> ItemResult[ExternalAnalysisResult]:
        try:
            return ItemResult(key=url, ok=True, value=await self._analyze_one(url, analysis_type))
        except Exception as e:
            log_service.logger.warning("External analysis failed for %s: %s", url, e)
            return ItemResult(key=url, ok=False, error=str(e))

    async def analyze_external_content(
        self,
        urls: Sequence[str],
        analysis_type: str = "general",
    ) -> dict[str, Any]:
        """Analyze pages in bounded concurrent chunks with a pause between chunks."""
        if not self.browsing_enabled:
            return {
                "type": "external_analysis",
                "sources": [],
                "summary": empty_summary(analysis_type),
                "timestamp": _utcnow(),
                "metadata": {"enabled": False, "message": "Web browsing is disabled"},
            }
        if not urls:
            return {
                "type": "external_analysis",
                "sources": [],
                "summary": empty_summary(analysis_type),
                "timestamp": _utcnow(),
            }

        started = time.monotonic()
        capped = list(urls)[: self.max_external_sources]
        size = min(self.chunk_size, len(capped))
        chunks = list(chunked(capped, size))
        results: list[ExternalAnalysisResult] = []

        for index, chunk in enumerate(chunks):
            outcomes = await asyncio.gather(
                *(self._analyze_isolated(url, analysis_type) for url in chunk)
            )
            for outcome in outcomes:
                if outcome.ok:
                    results.append(outcome.value)
                else:
                    results.append(
                        ExternalAnalysisResult(source=outcome.key, success=False, error=outcome.error)
                    )
            if index < len(chunks) - 1:
                await asyncio.sleep(self.chunk_delay_seconds)

        successful = [r for r in results if r.success]
        duration_ms = int((time.monotonic() - started) * 1000)
        self._update_stats(bool(successful), duration_ms)
        log_service.log_event(
            event_type="external_analysis_completed",
            message="External content analysis completed",
            total=len(results),
            successful=len(successful),
            chunks=len(chunks),
            duration_ms=duration_ms,
        )

        avg_relevance = 0.0
        if successful:
            avg_relevance = sum(r.relevance_score for r in successful) / len(successful)
        return {
            "type": "external_analysis",
            "sources": results,
            "summary": {
                "total_analyzed": len(results),
                "successful": len(successful),
                "failed": len(results) - len(successful),
                "analysis_type": analysis_type,
                "duration_ms": duration_ms,
                "themes": combine_frequencies(
                    (t for r in successful for t in r.analysis.themes), "theme", COMBINED_THEME_LIMIT
                ),
                "entities": combine_frequencies(
                    (e for r in successful for e in r.analysis.entities), "entity", COMBINED_ENTITY_LIMIT
                ),
                "avg_relevance": avg_relevance,
            },
            "timestamp": _utcnow(),
        }

    def _search_result_to_source(self, response: SearchResponse, index: int, query: str) -> Source:
        result = response.results[index]
        return Source(
            id=_url_id("external_search", result.url),
            collection_id=EXTERNAL_COLLECTION_ID,
            collection_name=EXTERNAL_COLLECTION_NAME,
            content=f"{result.title}\n\n{result.description}".strip(),
            metadata={
                "title": result.title,
                "url": result.url,
                "search_query": query,
                "search_provider": response.provider,
                "source": "web_search",
            },
            type="external",
            score=result.ranking_score or DEFAULT_ITEM_RELEVANCE,
            url=result.url,
            discovered_at=_utcnow(),
        )

    def _user_url_to_source(self, url: str) -> Source:
        title = title_from_url(url)
        return Source(
            id=_url_id("external_url", url),
            collection_id=EXTERNAL_COLLECTION_ID,
            collection_name=EXTERNAL_COLLECTION_NAME,
            content=f"{title}\n\nUser-specified external source: {url}",
            metadata={"title": title, "url": url, "user_provided": True, "source": "user_provided"},
            type="external",
            score=USER_URL_RELEVANCE,
            url=url,
            discovered_at=_utcnow(),
        )

    async def enhance_source_discovery(
        self,
        internal_sources: list[Any],
        query: str,
        *,
        external_urls: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        if not self.is_enabled():
            return {
                "internal": internal_sources,
                "external": [],
                "combined": list(internal_sources),
                "metadata": {"external_sources_enabled": False},
            }

        started = time.monotonic()
        external: list[Source] = []
        errors: list[dict[str, str]] = []

        if self.search_enabled:
            try:
                response = await self.search_service.search(
                    query, max_results=min(self.max_external_sources, MAX_DISCOVERY_SEARCH_RESULTS)
                )
                if response.success:
                    external.extend(
                        self._search_result_to_source(response, i, query)
                        for i in range(len(response.results))
                    )
            except ResearchServiceError as e:
                log_service.logger.warning("External source search failed for %r: %s", query, e)
                errors.append({"service": "web_search", "error": str(e)})

        for url in external_urls or []:
            if is_valid_url(url):
                external.append(self._user_url_to_source(url))
            else:
                errors.append({"service": "user_urls", "error": f"Invalid URL: {url}"})

        limited = external[: self.max_external_sources]
        duration_ms = int((time.monotonic() - started) * 1000)
        self._update_stats(True, duration_ms)
        metadata: dict[str, Any] = {
            "external_sources_enabled": True,
            "search_performed": self.search_enabled,
            "user_urls_added": len(external_urls or []),
            "total_external_sources": len(limited),
            "discovery_duration_ms": duration_ms,
            "timestamp": _utcnow(),
        }
        if errors:
            metadata["errors"] = errors
        return {
            "internal": internal_sources,
            "external": limited,
            "combined": [*internal_sources, *limited],
            "metadata": metadata,
        }

    async def search_and_analyze(self, query: str, analysis_type: str = "general") -> dict[str, Any]:
        if not (self.search_enabled and self.browsing_enabled):
            return {
                "query": query,
                "search_result": None,
                "analysis": None,
                "success": False,
                "error": "Both web search and browsing services are required",
            }
        try:
            search_result = await self.search_service.search(query, max_results=self.max_external_sources)
        except ResearchServiceError as e:
            log_service.logger.warning("Search and analyze failed for %r: %s", query, e)
            return {
                "query": query,
                "search_result": None,
                "analysis": None,
                "success": False,
                "error": str(e),
            }

        if not search_result.success or not search_result.results:
            return {
                "query": query,
                "search_result": search_result,
                "analysis": {
                    "type": "external_analysis",
                    "sources": [],
                    "summary": empty_summary(analysis_type),
                },
                "success": False,
                "error": "No search results found",
            }

        analysis = await self.analyze_external_content(
            [r.url for r in search_result.results], analysis_type
        )
        return {
            "query": query,
            "search_result": search_result,
            "analysis": analysis,
            "success": True,
            "metadata": {
                "search_provider": search_result.provider,
                "analysis_duration_ms": analysis["summary"]["duration_ms"],
            },
        }

    async def perform_comprehensive_research(
        self,
        query: str,
        *,
        analysis_type: str = "general",
    ) -> dict[str, Any]:
        if not self.is_enabled():
            return {
                "query": query,
                "enabled": False,
                "search_results": [],
                "content_analysis": [],
                "summary": "External content services are disabled.",
                "statistics": self.get_statistics(),
            }

        started = time.monotonic()
        search_results = []
        if self.search_enabled:
            try:
                response = await self.search_service.search(query, max_results=self.max_external_sources)
                search_results = response.results
            except ResearchServiceError as e:
                log_service.logger.warning("Web search failed during research for %r: %s", query, e)

        content_analysis: list[dict[str, Any]] = []
        if self.browsing_enabled and search_results:
            top = search_results[:COMPREHENSIVE_ANALYSIS_LIMIT]
            outcomes = await asyncio.gather(
                *(self._analyze_isolated(r.url, analysis_type) for r in top)
            )
            for result, outcome in zip(top, outcomes):
                if outcome.ok:
                    content_analysis.append(
                        {"url": result.url, "title": result.title, "analysis": outcome.value}
                    )

        if search_results or content_analysis:
            summary = f"Research found {len(search_results)} relevant sources"
            if content_analysis:
                summary += f" with detailed analysis of {len(content_analysis)} pages"
            summary += "."
        else:
            summary = "No external sources found or analysis could not be performed."

        duration_ms = int((time.monotonic() - started) * 1000)
        self._update_stats(True, duration_ms)
        return {
            "query": query,
            "enabled": True,
            "search_results": search_results,
            "content_analysis": content_analysis,
            "summary": summary,
            "statistics": {
                "duration_ms": duration_ms,
                "search_results_count": len(search_results),
                "analyzed_pages_count": len(content_analysis),
                **self.get_statistics(),
            },
        }

    async def _resolve_source(self, source: str | dict[str, Any]) -> list[tuple[str, str | None]]:
        """Turn an analyze-endpoint source entry into (url, title) pairs."""
        if isinstance(source, str):
            return [(source, None)]
        kind = source.get("type", "url")
        value = source.get("value", "")
        if kind == "url":
            return [(value, source.get("title"))]
        if kind == "search":
            if not self.search_enabled:
                raise InvalidRequestError("Web search is disabled; search sources are unavailable")
            response = await self.search_service.search(value, max_results=COMPREHENSIVE_ANALYSIS_LIMIT)
            return [(r.url, r.title) for r in response.results]
        raise InvalidRequestError(f"Invalid source type: {kind}")

    async def analyze_external_sources(
        self,
        sources: Sequence[str | dict[str, Any]],
        analysis_type: str = "summary",
        *,
        max_sources: int | None = None,
    ) -> dict[str, Any]:
        """Analyze a mix of URLs and search queries and produce a combined report."""
        limit = int(max_sources or self.max_external_sources)
        titles: dict[str, str | None] = {}
        urls: list[str] = []
        for source in sources:
            for url, title in await self._resolve_source(source):
                if url not in titles:
                    titles[url] = title
                    urls.append(url)
        urls = urls[:limit]

        prompt_type = API_ANALYSIS_TYPES.get(analysis_type, "general")
        result = await self.analyze_external_content(urls, prompt_type)
        items: list[dict[str, Any]] = []
        for item in result["sources"]:
            items.append(
                {
                    "url": item.source,
                    "title": titles.get(item.source) or title_from_url(item.source),
                    "summary": item.analysis.summary if item.analysis else None,
                    "success": item.success,
                    "error": item.error,
                }
            )

        summary = result["summary"]
        lines = [
            f"Analyzed {summary['successful']} of {summary['total_analyzed']} external sources "
            f"({analysis_type})."
        ]
        if summary["themes"]:
            lines.append("Main themes: " + ", ".join(t["theme"] for t in summary["themes"]) + ".")
        if summary["entities"]:
            lines.append(
                "Frequently mentioned: " + ", ".join(e["entity"] for e in summary["entities"]) + "."
            )
        for item in items:
            if item["summary"]:
                lines.append(f"- {item['title']}: {item['summary']}")

        return {
            "analysis": "\n".join(lines),
            "sources": items,
            "analysis_type": analysis_type,
            "analyzed_at": _utcnow(),
            "metadata": {
                "total_sources": summary["total_analyzed"],
                "successful": summary["successful"],
                "failed": summary["failed"],
                "themes": summary["themes"],
                "entities": summary["entities"],
                "duration_ms": summary["duration_ms"],
                **({"enabled": False} if not self.browsing_enabled else {}),
            },
        }

    def get_statistics(self) -> dict[str, Any]:
        total = self.stats["total_requests"]
        success_rate = (self.stats["successful_requests"] / total * 100) if total else 0.0
        return {
            "total_requests": total,
            "successful_requests": self.stats["successful_requests"],
            "failed_requests": self.stats["failed_requests"],
            "success_rate": round(success_rate, 2),
            "average_response_time": round(self.stats["average_response_time"]),
            "last_activity": self.stats["last_activity"],
            "services_enabled": {
                "web_search": self.search_enabled,
                "web_browsing": self.browsing_enabled,
            },
        }

    def get_status(self) -> dict[str, Any]:
        return {
            "enabled": self.is_enabled(),
            "services": {
                "web_search": {
                    "enabled": self.search_enabled,
                    "available": self.search_service is not None,
                    "status": self.search_service.get_status() if self.search_service else None,
                },
                "web_browsing": {
                    "enabled": self.browsing_enabled,
                    "available": self.browser_service is not None,
                    "status": self.browser_service.get_status() if self.browser_service else None,
                },
            },
            "configuration": {
                "max_external_sources": self.max_external_sources,
                "chunk_size": self.chunk_size,
                "analysis_types": list(ANALYSIS_PROMPTS),
            },
            "statistics": dict(self.stats),
        }

    async def cleanup(self) -> None:
        if self.browser_service is not None:
            await self.browser_service.cleanup_all_sessions()
        if self.search_service is not None:
            self.search_service.clear_cache()
        log_service.logger.info("External content service cleaned up")
