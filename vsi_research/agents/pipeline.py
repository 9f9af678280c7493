from __future__ import annotations

import asyncio
from typing import Any, Sequence

from vsi_research.agents.base import EventSink
from vsi_research.agents.content_analysis import ContentAnalysisAgent
from vsi_research.agents.source_discovery import SourceDiscoveryAgent
from vsi_research.services import logger as log_service
from vsi_research.services.collections_client import CollectionsClient
from vsi_research.services.external_content import ExternalContentService
from vsi_research.services.shared_memory import InMemorySharedMemory, SharedMemoryStore


async def run_research(
    query: str,
    *,
    collections: list[dict[str, Any]] | None = None,
    external_urls: Sequence[str] = (),
    frameworks: Sequence[str] | None = None,
    memory: SharedMemoryStore | None = None,
    collections_client: CollectionsClient | None = None,
    external_content: ExternalContentService | None = None,
    event_sink: EventSink | None = None,
) -> dict[str, Any]:
    """Run discovery and analysis side by side on one memory store.

    Analysis blocks on the discovery completion signal, so both agents are
    started together and the ordering comes from the store alone. If either
    agent fails, the other is cancelled before the error propagates.
    """
    memory = memory or InMemorySharedMemory()
    await memory.store_memory(
        "shared_current_task",
        {"query": query, "externalUrls": list(external_urls)},
        scope="shared",
    )

    discovery = SourceDiscoveryAgent(
        query=query,
        collections=collections,
        collections_client=collections_client,
        external_content=external_content,
        external_urls=list(external_urls),
        memory=memory,
        event_sink=event_sink,
    )
    analysis = ContentAnalysisAgent(
        query=query,
        frameworks=frameworks,
        external_content=external_content,
        memory=memory,
        event_sink=event_sink,
    )

    log_service.log_event(event_type="research_started", message="Research run started", query=query[:100])
    tasks = [
        asyncio.create_task(discovery.execute(), name="source_discovery"),
        asyncio.create_task(analysis.execute(), name="content_analysis"),
    ]
    try:
        discovery_result, analysis_result = await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    log_service.log_event(
        event_type="research_completed",
        message="Research run completed",
        curated=discovery_result["curated"],
        themes=analysis_result["theme_count"],
        insights=analysis_result["insight_count"],
    )
    return {
        "query": query,
        "discovery": discovery_result,
        "analysis": analysis_result,
        "themes": analysis.themes,
        "insights": analysis.insights,
        "artifacts": [*discovery.artifacts, *analysis.artifacts],
    }
