from __future__ import annotations

from typing import Any

import httpx

from vsi_research.config import settings
from vsi_research.research_core.models.interfaces import SearchResult

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


async def search(
    query: str,
    *,
    max_results: int = 10,
    timeout: float = 30.0,
    language: str | None = None,
    region: str | None = None,
) -> list[SearchResult]:
    """Execute a Brave web search and normalize results."""
    if not settings.brave_api_key:
        raise RuntimeError("BRAVE_API_KEY is not configured")

    params: dict[str, Any] = {
        "q": query,
        "count": max_results,
    }
    if language:
        params["search_lang"] = language
    if region:
        params["country"] = region

    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(
            BRAVE_SEARCH_URL,
            params=params,
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": settings.brave_api_key,
            },
        )
        response.raise_for_status()
        payload = response.json()

    raw_results = payload.get("web", {}).get("results", [])
    total = max(len(raw_results), 1)
    mapped: list[SearchResult] = []
    for idx, item in enumerate(raw_results):
        snippets = item.get("extra_snippets", []) or []
        description = (item.get("description", "") or "").strip() or " ".join(snippets).strip()
        # Brave has no relevance score in this response shape; rank position stands in.
        mapped.append(
            SearchResult(
                title=item.get("title", ""),
                url=item.get("url", ""),
                description=description,
                source="brave",
                relevance_score=max(0.0, 1.0 - (idx / total)),
            )
        )
    return mapped
