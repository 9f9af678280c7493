from __future__ import annotations

import httpx
import pytest

from vsi_research.agents.source_discovery import (
    SourceDiscoveryAgent,
    hit_to_source,
    source_preview,
)
from vsi_research.research_core.models.interfaces import Source
from vsi_research.services.collections_client import CollectionsClient
from vsi_research.services.shared_memory import InMemorySharedMemory

BODY = "Software and data platforms help the market grow. " * 30


class FakeCollections:
    def __init__(self, collections, hits, failing=()):
        self.collections = collections
        self.hits = hits
        self.failing = set(failing)
        self.calls = []

    async def list_collections(self):
        return self.collections

    async def search(self, collection_id, query, *, limit, include_metadata=True):
        self.calls.append((collection_id, limit))
        if collection_id in self.failing:
            raise httpx.ConnectError("collection offline")
        return self.hits.get(collection_id)


def _hit(hit_id: str, filename: str, similarity: float = 0.9) -> dict:
    return {
        "id": hit_id,
        "content": BODY,
        "similarity": similarity,
        "metadata": {"filename": filename, "title": filename.title()},
    }


COLLECTIONS = [
    {"id": "c1", "name": "Reports", "relevanceScore": 0.9},
    {"id": "c2", "name": "Offline"},
    {"id": "c3"},
]


def _agent(client, memory=None, **kwargs) -> SourceDiscoveryAgent:
    return SourceDiscoveryAgent(
        query=kwargs.pop("query", "data platforms"),
        collections_client=client,
        memory=memory or InMemorySharedMemory(),
        **kwargs,
    )


def test_hit_to_source_maps_fields():
    source = hit_to_source(
        {"chunkId": "h1", "text": "body", "score": "0.7"},
        {"id": 5, "relevanceScore": 0.4},
    )
    assert source.id == "h1"
    assert source.content == "body"
    assert source.score == 0.7
    assert source.collection_id == "5"
    assert source.collection_name == "Collection 5"
    assert source.collection_relevance == 0.4
    assert source.type == "internal"


def test_source_preview_truncates_content():
    source = Source(id="1", collection_id="c", collection_name="C", content="x" * 600)
    preview = source_preview(source)
    assert preview["content"] == "x" * 500 + "..."
    assert preview["quality_factors"] is None


@pytest.mark.asyncio
async def test_discover_skips_failing_and_empty_collections():
    client = FakeCollections(
        COLLECTIONS,
        {"c1": [_hit("1", "a.pdf"), _hit("2", "a.pdf"), _hit("3", "b.pdf")], "c3": None},
        failing={"c2"},
    )
    agent = _agent(client, max_sources=5)

    sources = await agent.discover("data platforms")

    assert [s.id for s in sources] == ["1", "3"]
    assert client.calls == [("c1", 2), ("c2", 2), ("c3", 2)]
    stats = agent.local_memory["source_discovery"].value["stats"]
    assert stats == {
        "total_collections": 3,
        "collections_with_results": 1,
        "total_sources": 3,
        "unique_sources": 2,
    }


@pytest.mark.asyncio
async def test_discover_continues_past_collection_with_html_reply():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/collections/bad/search":
            return httpx.Response(200, text="<html>upstream timeout</html>")
        return httpx.Response(
            200, json={"data": {"results": [_hit("g1", "good.pdf"), "stray", _hit("g2", "other.pdf")]}}
        )

    client = CollectionsClient(
        "http://collections.test", token="t", transport=httpx.MockTransport(handler)
    )
    agent = _agent(client, max_sources=4)

    sources = await agent.discover("data platforms", [{"id": "bad"}, {"id": "good", "name": "Good"}])

    assert [s.id for s in sources] == ["g1", "g2"]
    assert {s.collection_name for s in sources} == {"Good"}
    stats = agent.local_memory["source_discovery"].value["stats"]
    assert stats["collections_with_results"] == 1


@pytest.mark.asyncio
async def test_discover_requires_query():
    agent = _agent(FakeCollections([], {}))
    with pytest.raises(ValueError):
        await agent.discover("")


@pytest.mark.asyncio
async def test_execute_curates_and_signals_completion():
    memory = InMemorySharedMemory()
    client = FakeCollections(
        COLLECTIONS,
        {"c1": [_hit("1", "a.pdf"), _hit("2", "b.pdf", similarity=0.1)], "c3": [_hit("3", "c.pdf")]},
        failing={"c2"},
    )
    agent = _agent(client, memory, collections=COLLECTIONS, max_sources=5)

    result = await agent.execute()

    assert result["discovered"] == 3
    assert result["external_added"] == 0
    assert 0 < result["curated"] <= min(5, result["discovered"])
    assert agent.status == "completed"

    curated = memory.entries["shared_curated_sources"].value
    assert len(curated) == result["curated"]
    assert all(s.quality_score >= agent.quality_threshold for s in curated)
    scores = [s.quality_score for s in curated]
    assert scores == sorted(scores, reverse=True)

    completion = memory.entries["shared_source_discovery_completed"].value
    assert completion["status"] == "completed"
    assert completion["source_count"] == 3
    assert completion["external_sources_found"] == 0

    assert [a["type"] for a in memory.artifacts] == [
        "source_evaluation",
        "source_bibliography",
        "source_distribution_analysis",
    ]
    event_types = [e.event.value for e in agent.events]
    assert event_types[0] == "agent_started"
    assert "sources_curated" in event_types
    assert event_types[-1] == "agent_completed"
    assert [p["progress"] for p in memory.progress] == [10, 40, 70, 90, 100]


@pytest.mark.asyncio
async def test_high_threshold_curates_nothing_but_still_completes():
    memory = InMemorySharedMemory()
    client = FakeCollections(COLLECTIONS[:1], {"c1": [_hit("1", "a.pdf")]})
    agent = _agent(client, memory, collections=COLLECTIONS[:1], quality_threshold=0.99)

    result = await agent.execute()

    assert result["curated"] == 0
    assert memory.entries["shared_curated_sources"].value == []
    assert "shared_source_discovery_completed" in memory.entries


@pytest.mark.asyncio
async def test_execute_without_query_fails():
    agent = _agent(FakeCollections([], {}), query=None)
    with pytest.raises(ValueError):
        await agent.execute()
    assert agent.status == "failed"
    assert agent.events[-1].event.value == "error"


@pytest.mark.asyncio
async def test_collections_client_parses_listing_and_search():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/collections":
            return httpx.Response(200, json={"data": {"collections": [{"id": "c1"}]}})
        if request.url.path == "/collections/c1/search":
            return httpx.Response(200, json={"data": {"results": [{"id": "h1"}]}})
        return httpx.Response(200, json={"data": {}})

    client = CollectionsClient(
        "http://collections.test", token="t", transport=httpx.MockTransport(handler)
    )
    assert await client.list_collections() == [{"id": "c1"}]
    assert await client.search("c1", "q", limit=3) == [{"id": "h1"}]
    assert await client.search("c2", "q", limit=3) is None


@pytest.mark.asyncio
async def test_collections_client_search_ignores_malformed_replies():
    replies = {
        "/collections/html/search": httpx.Response(200, text="<html>oops</html>"),
        "/collections/list/search": httpx.Response(200, json=[{"id": "h1"}]),
        "/collections/flat/search": httpx.Response(200, json={"data": []}),
        "/collections/odd/search": httpx.Response(200, json={"data": {"results": "none"}}),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return replies[request.url.path]

    client = CollectionsClient(
        "http://collections.test", token="t", transport=httpx.MockTransport(handler)
    )
    for collection_id in ("html", "list", "flat", "odd"):
        assert await client.search(collection_id, "q", limit=3) is None


@pytest.mark.asyncio
async def test_collections_client_raises_on_server_error():
    client = CollectionsClient(
        "http://collections.test",
        token="t",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    with pytest.raises(httpx.HTTPStatusError):
        await client.search("c1", "q", limit=3)
