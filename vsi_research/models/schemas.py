from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

EXTRACTION_TYPES = ("summary", "full", "structured", "facts")
ANALYSIS_TYPES = ("summary", "comparison", "trends", "facts")
MAX_SEARCH_RESULTS = 50
MAX_ANALYSIS_SOURCES = 20

# Requests accept camelCase field names; range checks happen in the routes so
# that violations come back as 400 with an error/message body.
_camel = {"populate_by_name": True}


# --- Requests ---


class SearchRequest(BaseModel):
    model_config = _camel

    query: str = ""
    max_results: int = Field(10, alias="maxResults")
    provider: str | None = None
    include_content: bool = Field(False, alias="includeContent")


class BrowseRequest(BaseModel):
    model_config = _camel

    url: str = ""
    extraction_type: str = Field("summary", alias="extractionType")
    include_metadata: bool = Field(True, alias="includeMetadata")
    wait_for_js: bool = Field(False, alias="waitForJs")


class AnalyzeRequest(BaseModel):
    model_config = _camel

    sources: list[str | dict[str, Any]] = Field(default_factory=list)
    analysis_type: str = Field("summary", alias="analysisType")
    max_sources: int = Field(5, alias="maxSources")


# --- Responses ---


class SearchResultItem(BaseModel):
    title: str
    url: str
    description: str
    source: str
    relevance_score: float
    final_relevance_score: float | None = None
    content: str | None = None


class SearchResponseBody(BaseModel):
    results: list[SearchResultItem]
    query: str
    provider: str
    timestamp: str
    cached: bool = False


class WebSearchConfig(BaseModel):
    enabled: bool
    providers: list[str]


class WebBrowserConfig(BaseModel):
    enabled: bool
    headless: bool = True


class ExternalServicesConfig(BaseModel):
    webSearch: WebSearchConfig
    webBrowser: WebBrowserConfig


class ExternalLimits(BaseModel):
    maxSearchResults: int = MAX_SEARCH_RESULTS
    maxAnalysisSources: int = MAX_ANALYSIS_SOURCES
    requestTimeout: int


class ExternalConfigResponse(BaseModel):
    enabled: bool
    services: ExternalServicesConfig
    limits: ExternalLimits
