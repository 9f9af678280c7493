from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

import httpx

from vsi_research.agents.base import BaseAgent
from vsi_research.config import settings
from vsi_research.errors import DependencyNotReadyError, ResearchServiceError
from vsi_research.research_core import aggregation
from vsi_research.research_core.frameworks import get_framework
from vsi_research.research_core.models.interfaces import (
    AnalysisRecord,
    ExternalAnalysisResult,
    FrameworkResult,
    Insight,
    ItemResult,
    Source,
    ThemeAggregate,
)
from vsi_research.services import logger as log_service
from vsi_research.services import streaming
from vsi_research.services.external_content import ExternalContentService

MAX_EXTERNAL_URLS = 3
EXTERNAL_INSIGHT_CONFIDENCE = 0.6
KEY_FINDINGS = 10
EXPECTED_CONCEPTS = 10


def coerce_source(value: Source | dict[str, Any]) -> Source:
    return value if isinstance(value, Source) else Source.from_dict(value)


def record_confidence(record: AnalysisRecord) -> float:
    """Mean of the facet confidences the record has; 0.5 when it has none."""
    facets: list[float] = []
    if record.themes:
        facets.append(sum(t.confidence or 0 for t in record.themes) / len(record.themes))
    if record.sentiment:
        facets.append(record.sentiment.get("confidence") or 0)
    if record.concepts:
        facets.append(min(1.0, len(record.concepts) / EXPECTED_CONCEPTS))
    if record.quality and record.quality.get("completeness"):
        facets.append(record.quality["completeness"])
    return sum(facets) / len(facets) if facets else 0.5


def merge_framework_result(record: AnalysisRecord, result: FrameworkResult) -> None:
    record.themes.extend(result.themes)
    record.concepts.extend(result.concepts)
    record.insights.extend(result.insights)
    if result.sentiment is not None:
        record.sentiment = result.sentiment
    if result.quality is not None:
        record.quality = {**(record.quality or {}), **result.quality}
    if result.temporal is not None:
        record.temporal = result.temporal


def analyze_source(source: Source, frameworks: Sequence[str]) -> AnalysisRecord:
    record = AnalysisRecord(
        source_id=source.id,
        source_type=source.type,
        frameworks=list(frameworks),
        collection_name=source.collection_name,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    if not source.content:
        log_service.logger.warning("No content available for analysis of source %s", source.id)
        return record

    for name in frameworks:
        scorer = get_framework(name)
        if scorer is None:
            log_service.logger.warning("Unknown analysis framework: %s", name)
            continue
        merge_framework_result(record, scorer.score(source.content, source))

    for insight in record.insights:
        insight.source_id = source.id
    record.confidence = record_confidence(record)
    return record


def merge_external_analysis(
    themes: list[ThemeAggregate],
    results: Sequence[ExternalAnalysisResult],
) -> tuple[list[ThemeAggregate], list[Insight]]:
    """Fold successful web analyses into the theme aggregates.

    Same-named themes accumulate frequency and evidence; unseen themes are
    added as new aggregates. Key points become insights of type "external".
    """
    by_category = {t.category: t for t in themes}
    merged = list(themes)
    insights: list[Insight] = []
    for result in results:
        if not result.success or result.analysis is None:
            continue
        origin = f"external:{result.source}"
        for web_theme in result.analysis.themes:
            category = web_theme.get("theme")
            if not category:
                continue
            frequency = web_theme.get("frequency") or 1
            theme = by_category.get(category)
            if theme is None:
                theme = ThemeAggregate(
                    category=category,
                    avg_confidence=web_theme.get("confidence") or 0.0,
                )
                by_category[category] = theme
                merged.append(theme)
            theme.external_frequency += frequency
            theme.total_score += frequency
            theme.evidence.append(f"{category} ({result.source})")
            if origin not in theme.sources:
                theme.sources.append(origin)

        for point in result.analysis.key_points:
            insights.append(
                Insight(
                    type="external",
                    category="external_key_point",
                    content=point["point"],
                    confidence=EXTERNAL_INSIGHT_CONFIDENCE,
                    evidence=[result.source],
                    priority="medium" if point.get("position") == 1 else "low",
                    source_id=origin,
                )
            )
    return merged, insights


class ContentAnalysisAgent(BaseAgent):
    """Applies analysis frameworks to curated sources and aggregates the results."""

    name = "content_analysis"

    def __init__(
        self,
        *,
        frameworks: Sequence[str] | None = None,
        query: str | None = None,
        external_content: ExternalContentService | None = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("dependencies", ["source_discovery"])
        super().__init__(**kwargs)
        self.frameworks = list(frameworks or settings.analysis_framework_list)
        self.query = query or self.inputs.get("query")
        self.external_content = external_content
        self.records: list[AnalysisRecord] = []
        self.failures: list[ItemResult[AnalysisRecord]] = []
        self.themes: list[ThemeAggregate] = []
        self.insights: list[Insight] = []
        self.external_results: list[ExternalAnalysisResult] = []
        self.external_insight_count = 0

    async def load_curated_sources(self) -> list[Source]:
        entry = await self.get_shared_memory("curated_sources")
        if entry is None or entry.value is None:
            raise DependencyNotReadyError(
                "shared_curated_sources",
                "Curated sources not found. Ensure source discovery has completed.",
            )
        return [coerce_source(value) for value in entry.value]

    def _analyze_isolated(self, source: Source) -> ItemResult[AnalysisRecord]:
        try:
            return ItemResult(key=source.id, ok=True, value=analyze_source(source, self.frameworks))
        except Exception as e:
            log_service.logger.warning("Analysis failed for source %s: %s", source.id, e)
            return ItemResult(key=source.id, ok=False, error=str(e))

    async def analyze_sources(self, sources: list[Source]) -> list[AnalysisRecord]:
        records: list[AnalysisRecord] = []
        for index, source in enumerate(sources):
            await self.update_progress(
                15 + int(index / len(sources) * 30),
                f"Analyzing source {index + 1}/{len(sources)}",
            )
            outcome = self._analyze_isolated(source)
            if outcome.ok:
                records.append(outcome.value)
            else:
                self.failures.append(outcome)

        self.records = records
        await self.store_memory(
            "content_analysis",
            {
                "results": records,
                "frameworks": self.frameworks,
                "total_sources": len(sources),
                "analyzed_sources": len(records),
                "failed_sources": [{"source_id": f.key, "error": f.error} for f in self.failures],
                "statistics": aggregation.analysis_statistics(records),
            },
        )
        log_service.log_event(
            event_type="content_analyzed",
            message="Per-source content analysis finished",
            analyzed=len(records),
            failed=len(self.failures),
            frameworks=self.frameworks,
        )
        return records

    async def external_urls(self) -> list[str]:
        """Explicit task URLs, else URLs found by searching for the query."""
        entry = await self.get_shared_memory("current_task")
        task = entry.value if entry is not None and isinstance(entry.value, dict) else {}
        urls = list(task.get("externalUrls") or [])
        if urls:
            return urls
        query = task.get("query") or self.query
        if not query or not self.external_content.search_enabled:
            return []
        response = await self.external_content.search_service.search(
            query, max_results=MAX_EXTERNAL_URLS
        )
        return [r.url for r in response.results[:MAX_EXTERNAL_URLS]]

    async def analyze_external(self) -> list[ExternalAnalysisResult]:
        if self.external_content is None or not self.external_content.is_enabled():
            return []
        try:
            urls = await self.external_urls()
            if not urls:
                return []
            result = await self.external_content.analyze_external_content(urls, "general")
        except (httpx.HTTPError, ResearchServiceError) as e:
            log_service.logger.warning(
                "External content analysis failed, continuing with internal analysis only: %s", e
            )
            return []
        self.emit(streaming.external_analysis(self.name, result["summary"]))
        return [r for r in result["sources"] if r.success]

    async def identify_themes(self) -> list[ThemeAggregate]:
        themes = aggregation.aggregate_themes(self.records)
        relationships = aggregation.theme_relationships(self.records)
        await self.create_artifact(
            "theme_analysis",
            {
                "themes": [t.to_dict() for t in themes],
                "relationships": relationships,
                "statistics": aggregation.theme_statistics(themes, len(self.records)),
                "cross_references": aggregation.theme_cross_references(self.records),
            },
        )
        await self.store_shared_memory("key_themes", themes)
        self.themes = themes
        return themes

    async def extract_insights(self) -> list[Insight]:
        collected = [i for record in self.records for i in record.insights]
        collected.extend(aggregation.meta_insights(self.records, self.themes))
        ranked = aggregation.rank_insights(collected)
        await self.create_artifact(
            "insights_analysis",
            {
                "total_insights": len(ranked),
                "insights": [i.to_dict() for i in ranked],
                "categories": aggregation.categorize_insights(ranked),
                "key_findings": [i.to_dict() for i in ranked[:KEY_FINDINGS]],
                "confidence_distribution": aggregation.confidence_distribution(ranked),
            },
        )
        await self.store_shared_memory("extracted_insights", ranked)
        self.insights = ranked
        return ranked

    async def combine_external(self) -> None:
        themes, external_insights = merge_external_analysis(self.themes, self.external_results)
        self.themes = themes
        self.insights = aggregation.rank_insights([*self.insights, *external_insights])
        self.external_insight_count = len(external_insights)
        await self.store_shared_memory("key_themes", self.themes)
        await self.store_shared_memory("extracted_insights", self.insights)
        log_service.log_event(
            event_type="external_analysis_merged",
            message="External analysis merged into themes and insights",
            internal_sources=len(self.records),
            external_sources=len(self.external_results),
            external_insights=len(external_insights),
        )

    async def create_report(self) -> dict[str, Any]:
        report = {
            "frameworks": self.frameworks,
            "analysis_count": len(self.records),
            "failed_count": len(self.failures),
            "theme_count": len(self.themes),
            "insight_count": len(self.insights),
            "external_sources_analyzed": len(self.external_results),
            "external_insight_count": self.external_insight_count,
            "top_themes": [t.category for t in self.themes[:5]],
            "statistics": aggregation.analysis_statistics(self.records),
        }
        await self.create_artifact("content_analysis_report", report)
        return report

    async def perform_work(self) -> dict[str, Any]:
        await self.update_progress(5, "Waiting for source discovery")
        await self.wait_for_dependencies()

        await self.update_progress(15, "Performing deep content analysis")
        sources = await self.load_curated_sources()
        await self.analyze_sources(sources)

        if self.external_content is not None and self.external_content.is_enabled():
            await self.update_progress(35, "Analyzing external sources")
            self.external_results = await self.analyze_external()

        await self.update_progress(50, "Identifying key themes")
        await self.identify_themes()

        await self.update_progress(75, "Extracting insights")
        await self.extract_insights()

        if self.external_results:
            await self.update_progress(85, "Combining internal and external analysis")
            await self.combine_external()

        await self.update_progress(90, "Creating analysis report")
        report = await self.create_report()

        await self.update_progress(100, "Content analysis completed")
        await self.signal_completion(
            analysis_count=len(self.records),
            theme_count=len(self.themes),
            insight_count=len(self.insights),
            external_sources_analyzed=len(self.external_results),
            external_insight_count=self.external_insight_count,
        )
        return report
