from __future__ import annotations

from tavily import AsyncTavilyClient

from vsi_research.config import settings
from vsi_research.research_core.models.interfaces import SearchResult


async def search(
    query: str,
    *,
    max_results: int = 10,
    search_depth: str = "basic",
) -> list[SearchResult]:
    """Execute a Tavily web search and return structured results."""
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")

    client = AsyncTavilyClient(api_key=settings.tavily_api_key)
    response = await client.search(
        query=query,
        search_depth=search_depth,
        max_results=max_results,
    )
    return [
        SearchResult(
            title=r.get("title", ""),
            url=r.get("url", ""),
            description=r.get("content", ""),
            source="tavily",
            relevance_score=float(r.get("score", 0.0) or 0.0),
        )
        for r in response.get("results", [])
    ]
