from __future__ import annotations

import httpx

from vsi_research.research_core.models.interfaces import SearchResult

DUCKDUCKGO_API_URL = "https://api.duckduckgo.com/"

ABSTRACT_RELEVANCE = 0.9
RELATED_TOPIC_RELEVANCE = 0.7
MAX_RELATED_TOPICS = 5


async def search(
    query: str,
    *,
    max_results: int = 10,
    timeout: float = 30.0,
) -> list[SearchResult]:
    """Query the DuckDuckGo Instant Answer API and normalize results.

    The instant answer endpoint only returns an abstract plus related topics,
    so callers usually top the list up with generated results.
    """
    params = {
        "q": query,
        "format": "json",
        "no_html": "1",
        "skip_disambig": "1",
    }
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(DUCKDUCKGO_API_URL, params=params)
        response.raise_for_status()
        payload = response.json()

    results: list[SearchResult] = []
    abstract = (payload.get("AbstractText") or "").strip()
    abstract_url = payload.get("AbstractURL") or ""
    if abstract and abstract_url:
        results.append(
            SearchResult(
                title=payload.get("Heading") or query,
                url=abstract_url,
                description=abstract,
                source=payload.get("AbstractSource") or "duckduckgo",
                relevance_score=ABSTRACT_RELEVANCE,
                type="abstract",
            )
        )

    for topic in (payload.get("RelatedTopics") or [])[:MAX_RELATED_TOPICS]:
        text = (topic.get("Text") or "").strip() if isinstance(topic, dict) else ""
        url = topic.get("FirstURL") if isinstance(topic, dict) else None
        if not text or not url:
            continue
        results.append(
            SearchResult(
                title=text.split(" - ")[0][:100],
                url=url,
                description=text,
                source="duckduckgo",
                relevance_score=RELATED_TOPIC_RELEVANCE,
                type="related_topic",
            )
        )
    return results[:max_results]
