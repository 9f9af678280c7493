from __future__ import annotations

from typing import Any

import httpx

from vsi_research.config import settings
from vsi_research.services import logger as log_service


class CollectionsClient:
    """Client for the platform's collection listing and vector search API."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.collections_api_base).rstrip("/")
        self.token = settings.collections_api_token if token is None else token
        self.timeout_seconds = timeout_seconds or settings.collections_api_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            headers=headers,
            transport=self._transport,
        )

    async def list_collections(self) -> list[dict[str, Any]]:
        async with self._client() as client:
            response = await client.get("/collections")
            response.raise_for_status()
            payload = response.json()
        data = payload.get("data", payload) if isinstance(payload, dict) else payload
        if isinstance(data, dict):
            data = data.get("collections", [])
        return data if isinstance(data, list) else []

    async def search(
        self,
        collection_id: str,
        query: str,
        *,
        limit: int,
        include_metadata: bool = True,
    ) -> list[dict[str, Any]] | None:
        """Return raw hits, or None when the response has no result list."""
        async with self._client() as client:
            response = await client.post(
                f"/collections/{collection_id}/search",
                json={"query": query, "limit": limit, "includeMetadata": include_metadata},
            )
            response.raise_for_status()
        try:
            payload = response.json()
        except ValueError:
            log_service.logger.warning(
                "Collection %s search returned a non-JSON body", collection_id
            )
            return None
        data = payload.get("data") if isinstance(payload, dict) else None
        results = data.get("results") if isinstance(data, dict) else None
        return results if isinstance(results, list) else None
