from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException

from vsi_research.api.deps import get_external_content_service
from vsi_research.config import settings
from vsi_research.errors import InvalidRequestError, ResourceExhaustedError
from vsi_research.models.schemas import (
    ANALYSIS_TYPES,
    EXTRACTION_TYPES,
    MAX_ANALYSIS_SOURCES,
    MAX_SEARCH_RESULTS,
    AnalyzeRequest,
    BrowseRequest,
    ExternalConfigResponse,
    SearchRequest,
    SearchResponseBody,
)
from vsi_research.services import logger as log_service
from vsi_research.services.external_content import ExternalContentService
from vsi_research.tools.web_search import SUPPORTED_PROVIDERS
from vsi_research.tools.web_utils import is_valid_url

router = APIRouter(prefix="/api/external", tags=["external"])


def _bad_request(error: str, message: str) -> HTTPException:
    return HTTPException(status_code=400, detail={"error": error, "message": message})


def _unavailable(error: str, message: str = "External content features are not configured or enabled") -> HTTPException:
    return HTTPException(status_code=503, detail={"error": error, "message": message})


def _require_service() -> ExternalContentService:
    service = get_external_content_service()
    if service is None or not service.is_enabled():
        raise _unavailable("External content service not available")
    return service


def _failure(error: str, e: Exception) -> HTTPException:
    if isinstance(e, InvalidRequestError):
        return _bad_request(error, str(e))
    if isinstance(e, ResourceExhaustedError):
        return _unavailable(error, str(e))
    log_service.logger.exception("%s: %s", error, e)
    return HTTPException(status_code=500, detail={"error": error, "message": str(e)})


@router.post("/search", response_model=SearchResponseBody)
async def search(request: SearchRequest):
    """Run a web search through the configured provider."""
    if not request.query or not request.query.strip():
        raise _bad_request("Invalid query", "Query must be a non-empty string")
    if not 1 <= request.max_results <= MAX_SEARCH_RESULTS:
        raise _bad_request("Invalid maxResults", f"maxResults must be between 1 and {MAX_SEARCH_RESULTS}")

    service = _require_service()
    if not service.search_enabled:
        raise _unavailable("Web search service not available")

    try:
        if request.include_content:
            response = await service.search_service.search_with_content(
                request.query, max_results=request.max_results, provider=request.provider
            )
        else:
            response = await service.search_service.search(
                request.query, max_results=request.max_results, provider=request.provider
            )
    except Exception as e:
        raise _failure("Search failed", e) from e

    if not response.success:
        raise _bad_request("Search failed", response.error or "Search provider returned no results")

    contents = {
        item["url"]: item.get("content")
        for item in response.metadata.get("extracted_content", [])
        if item.get("success")
    }
    results = [{**asdict(r), "content": contents.get(r.url)} for r in response.results]
    return {
        "results": results,
        "query": response.query,
        "provider": response.provider,
        "timestamp": response.timestamp,
        "cached": bool(response.metadata.get("cached")),
    }


@router.post("/browse")
async def browse(request: BrowseRequest):
    """Load a page in the remote browser and extract its content."""
    if not request.url:
        raise _bad_request("Invalid URL", "URL must be a valid string")
    if not is_valid_url(request.url):
        raise _bad_request("Invalid URL format", "Please provide a valid URL")
    if request.extraction_type not in EXTRACTION_TYPES:
        raise _bad_request(
            "Invalid extractionType",
            f"extractionType must be one of: {', '.join(EXTRACTION_TYPES)}",
        )

    service = _require_service()
    if not service.browsing_enabled:
        raise _unavailable("Web browser service not available")

    try:
        result = await service.browser_service.browse_and_extract(
            request.url,
            extraction_type=request.extraction_type,
            include_metadata=request.include_metadata,
            wait_for_js=request.wait_for_js,
        )
    except Exception as e:
        raise _failure("Browsing failed", e) from e

    body: dict[str, Any] = {
        "url": request.url,
        "title": result["title"],
        "content": result["content"],
        "extractedAt": result["extracted_at"],
        "extractionType": request.extraction_type,
    }
    if request.include_metadata:
        body["metadata"] = result.get("metadata")
    return body


@router.post("/analyze")
async def analyze(request: AnalyzeRequest):
    """Analyze a mix of URLs and search queries and summarize them together."""
    if not request.sources:
        raise _bad_request("Invalid sources", "Sources must be a non-empty array")
    if not 1 <= request.max_sources <= MAX_ANALYSIS_SOURCES:
        raise _bad_request(
            "Invalid maxSources", f"maxSources must be between 1 and {MAX_ANALYSIS_SOURCES}"
        )
    if request.analysis_type not in ANALYSIS_TYPES:
        raise _bad_request(
            "Invalid analysisType",
            f"analysisType must be one of: {', '.join(ANALYSIS_TYPES)}",
        )

    service = _require_service()
    if not service.browsing_enabled:
        raise _unavailable("Web browser service not available")

    try:
        result = await service.analyze_external_sources(
            request.sources[: request.max_sources],
            request.analysis_type,
            max_sources=request.max_sources,
        )
    except Exception as e:
        raise _failure("Analysis failed", e) from e

    return {
        "analysis": result["analysis"],
        "sources": result["sources"],
        "analysisType": request.analysis_type,
        "analyzedAt": datetime.now(timezone.utc).isoformat(),
        "metadata": result["metadata"],
    }


@router.get("/config", response_model=ExternalConfigResponse)
async def config():
    """Report which external content services are switched on."""
    service = get_external_content_service()
    search_enabled = service is not None and service.search_enabled
    return {
        "enabled": service is not None and service.is_enabled(),
        "services": {
            "webSearch": {
                "enabled": search_enabled,
                "providers": list(SUPPORTED_PROVIDERS) if search_enabled else [],
            },
            "webBrowser": {
                "enabled": service is not None and service.browsing_enabled,
                "headless": True,
            },
        },
        "limits": {
            "maxSearchResults": MAX_SEARCH_RESULTS,
            "maxAnalysisSources": MAX_ANALYSIS_SOURCES,
            "requestTimeout": int(settings.web_search_timeout_seconds * 1000),
        },
    }
