from __future__ import annotations

import math
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

import httpx

from vsi_research.agents.base import BaseAgent
from vsi_research.config import settings
from vsi_research.errors import ResearchServiceError
from vsi_research.research_core import quality, source_reports
from vsi_research.research_core.models.interfaces import Source
from vsi_research.research_core.quality import DEFAULT_WEIGHTS, QualityWeights
from vsi_research.services import logger as log_service
from vsi_research.services import streaming
from vsi_research.services.collections_client import CollectionsClient
from vsi_research.services.external_content import ExternalContentService

PREVIEW_CHARS = 500


def _float_or_none(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def hit_to_source(hit: dict[str, Any], collection: dict[str, Any]) -> Source:
    collection_id = str(collection.get("id", ""))
    return Source(
        id=str(hit.get("id") or hit.get("chunk_id") or hit.get("chunkId") or ""),
        collection_id=collection_id,
        collection_name=collection.get("name") or f"Collection {collection_id}",
        content=hit.get("content") or hit.get("text") or "",
        metadata=dict(hit.get("metadata") or {}),
        score=_float_or_none(hit.get("score")),
        similarity=_float_or_none(hit.get("similarity")),
        collection_relevance=_float_or_none(collection.get("relevanceScore")),
        discovered_at=datetime.now(timezone.utc).isoformat(),
    )


def source_preview(source: Source) -> dict[str, Any]:
    content = source.content or ""
    return {
        "id": source.id,
        "type": source.type,
        "collection_id": source.collection_id,
        "collection_name": source.collection_name,
        "quality_score": source.quality_score,
        "quality_factors": asdict(source.quality_factors) if source.quality_factors else None,
        "score": source.score,
        "content": content[:PREVIEW_CHARS] + ("..." if len(content) > PREVIEW_CHARS else ""),
        "metadata": source.metadata,
    }


class SourceDiscoveryAgent(BaseAgent):
    """Finds, deduplicates, scores and curates sources for a research query."""

    name = "source_discovery"

    def __init__(
        self,
        *,
        query: str | None = None,
        collections: list[dict[str, Any]] | None = None,
        quality_threshold: float | None = None,
        max_sources: int | None = None,
        quality_weights: QualityWeights = DEFAULT_WEIGHTS,
        collections_client: CollectionsClient | None = None,
        external_content: ExternalContentService | None = None,
        external_urls: list[str] | None = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.query = query or self.inputs.get("query")
        self.collections = collections if collections is not None else self.inputs.get("collections")
        self.quality_threshold = (
            settings.discovery_quality_threshold if quality_threshold is None else quality_threshold
        )
        self.max_sources = int(max_sources or settings.discovery_max_sources)
        self.quality_weights = quality_weights
        self.collections_client = collections_client or CollectionsClient()
        self.external_content = external_content
        self.external_urls = list(external_urls or self.inputs.get("externalUrls") or [])
        self.discovered_sources: list[Source] = []
        self.curated_sources: list[Source] = []

    async def discover(
        self,
        query: str,
        collections: list[dict[str, Any]] | None = None,
    ) -> list[Source]:
        """Search every collection, flatten and deduplicate the hits."""
        if not query:
            raise ValueError("No search query provided")
        if collections is None:
            collections = await self.collections_client.list_collections()

        per_collection_limit = math.ceil(self.max_sources / len(collections)) if collections else 0
        search_results: list[dict[str, Any]] = []
        all_sources: list[Source] = []
        for collection in collections:
            collection_id = collection.get("id")
            try:
                hits = await self.collections_client.search(
                    str(collection_id),
                    query,
                    limit=per_collection_limit,
                    include_metadata=True,
                )
            except (httpx.HTTPError, ResearchServiceError) as e:
                log_service.logger.warning("Search failed for collection %s: %s", collection_id, e)
                continue
            if hits is None:
                log_service.logger.warning(
                    "Search response for collection %s has no result list", collection_id
                )
                continue
            sources = [hit_to_source(hit, collection) for hit in hits if isinstance(hit, dict)]
            search_results.append(
                {
                    "collection_id": collection_id,
                    "collection_name": collection.get("name"),
                    "result_count": len(sources),
                }
            )
            all_sources.extend(sources)

        unique = quality.deduplicate(all_sources)
        log_service.log_event(
            event_type="sources_discovered",
            message="Source discovery search finished",
            query=query[:100],
            collections=len(collections),
            total=len(all_sources),
            unique=len(unique),
        )
        await self.store_memory(
            "source_discovery",
            {
                "search_results": search_results,
                "all_sources": unique,
                "query": query,
                "discovered_at": datetime.now(timezone.utc).isoformat(),
                "stats": {
                    "total_collections": len(collections),
                    "collections_with_results": len(search_results),
                    "total_sources": len(all_sources),
                    "unique_sources": len(unique),
                },
            },
        )
        self.discovered_sources = unique
        return unique

    async def discover_external(self, query: str) -> list[Source]:
        """Append web sources to the discovered set; failures leave it unchanged."""
        if self.external_content is None or not self.external_content.is_enabled():
            return []
        try:
            result = await self.external_content.enhance_source_discovery(
                self.discovered_sources,
                query,
                external_urls=self.external_urls,
            )
        except (httpx.HTTPError, ResearchServiceError) as e:
            log_service.logger.warning("External source discovery failed: %s", e)
            return []

        seen = {s.dedupe_key for s in self.discovered_sources}
        added: list[Source] = []
        for source in quality.deduplicate(result["external"]):
            if source.dedupe_key not in seen:
                seen.add(source.dedupe_key)
                added.append(source)
        self.discovered_sources.extend(added)
        return added

    def evaluate_quality(self, sources: list[Source]) -> list[Source]:
        scored = quality.score_sources(sources, weights=self.quality_weights)
        return sorted(scored, key=lambda s: s.quality_score, reverse=True)

    async def curate(self) -> list[Source]:
        """Score discovered sources, keep the best and publish them."""
        evaluated = self.evaluate_quality(self.discovered_sources)
        above_threshold = [s for s in evaluated if s.quality_score >= self.quality_threshold]
        final = quality.curate(
            evaluated, threshold=self.quality_threshold, max_sources=self.max_sources
        )
        average = (
            sum(s.quality_score for s in evaluated) / len(evaluated) if evaluated else 0.0
        )
        await self.create_artifact(
            "source_evaluation",
            {
                "total_sources": len(self.discovered_sources),
                "evaluated_sources": len(evaluated),
                "curated_sources": len(above_threshold),
                "final_sources": len(final),
                "quality_threshold": self.quality_threshold,
                "average_quality": average,
                "quality_distribution": quality.quality_distribution(evaluated),
                "sources": [source_preview(s) for s in final],
            },
        )
        await self.store_shared_memory("curated_sources", final)
        self.curated_sources = final
        self.emit(
            streaming.sources_curated(
                self.name,
                count=len(final),
                external=sum(1 for s in final if s.type == "external"),
                average_quality=average,
            )
        )
        return final

    async def perform_work(self) -> dict[str, Any]:
        if not self.query:
            raise ValueError("No search query provided")

        await self.update_progress(10, "Discovering relevant sources")
        await self.discover(self.query, self.collections)

        external_added: list[Source] = []
        if self.external_content is not None and self.external_content.is_enabled():
            await self.update_progress(30, "Discovering external sources")
            external_added = await self.discover_external(self.query)

        await self.update_progress(40, "Evaluating source quality")
        curated = await self.curate()

        await self.update_progress(70, "Creating source bibliography")
        bibliography = source_reports.build_bibliography(curated, self.query)
        await self.create_artifact("source_bibliography", bibliography)

        await self.update_progress(90, "Analyzing source distribution")
        distribution = source_reports.distribution_analysis(curated, self.query)
        await self.create_artifact("source_distribution_analysis", distribution)
        await self.store_memory("distribution_analysis", distribution)

        await self.update_progress(100, "Source discovery completed")
        external_found = sum(1 for s in self.discovered_sources if s.type == "external")
        await self.signal_completion(
            source_count=len(self.discovered_sources),
            external_sources_found=external_found,
        )
        return {
            "query": self.query,
            "discovered": len(self.discovered_sources),
            "external_added": len(external_added),
            "curated": len(curated),
            "recommendations": distribution["recommendations"],
        }
