from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

import httpx

from vsi_research.config import settings
from vsi_research.errors import DependencyNotReadyError, TransientNetworkError
from vsi_research.services import logger as log_service

Scope = Literal["local", "shared"]
SHARED_PREFIX = "shared_"


def shared_key(key: str) -> str:
    return key if key.startswith(SHARED_PREFIX) else f"{SHARED_PREFIX}{key}"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_object(response: httpx.Response) -> dict[str, Any]:
    """Decode a reply that must be a JSON object."""
    try:
        payload = response.json()
    except ValueError as e:
        raise TransientNetworkError(f"{response.request.url.path} returned a non-JSON body") from e
    if not isinstance(payload, dict):
        raise TransientNetworkError(
            f"{response.request.url.path} returned {type(payload).__name__}, expected an object"
        )
    return payload


@dataclass(slots=True)
class MemoryEntry:
    key: str
    value: Any
    scope: Scope = "local"
    timestamp: str = ""
    agent_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class SharedMemoryStore(Protocol):
    async def store_memory(
        self,
        key: str,
        value: Any,
        *,
        scope: Scope = "local",
        agent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryEntry: ...

    async def retrieve_memory(self, key: str) -> MemoryEntry | None: ...

    async def create_artifact(
        self,
        artifact_type: str,
        content: Any,
        *,
        agent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...

    async def update_progress(self, agent_id: str, percent: int, message: str) -> None: ...

    async def wait_for(self, key: str, timeout: float) -> MemoryEntry: ...


class InMemorySharedMemory:
    """Process-local store; `wait_for` is an event barrier per key."""

    def __init__(self) -> None:
        self.entries: dict[str, MemoryEntry] = {}
        self.artifacts: list[dict[str, Any]] = []
        self.progress: list[dict[str, Any]] = []
        self._events: dict[str, asyncio.Event] = {}

    def _event(self, key: str) -> asyncio.Event:
        event = self._events.get(key)
        if event is None:
            event = self._events[key] = asyncio.Event()
        return event

    async def store_memory(
        self,
        key: str,
        value: Any,
        *,
        scope: Scope = "local",
        agent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryEntry:
        entry = MemoryEntry(
            key=key,
            value=value,
            scope=scope,
            timestamp=_utcnow(),
            agent_id=agent_id,
            metadata=dict(metadata or {}),
        )
        self.entries[key] = entry
        self._event(key).set()
        return entry

    async def retrieve_memory(self, key: str) -> MemoryEntry | None:
        return self.entries.get(key)

    async def create_artifact(
        self,
        artifact_type: str,
        content: Any,
        *,
        agent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        artifact = {
            "id": str(uuid.uuid4()),
            "type": artifact_type,
            "content": content,
            "metadata": dict(metadata or {}),
            "agent_id": agent_id,
            "status": "draft",
            "created_at": _utcnow(),
        }
        self.artifacts.append(artifact)
        return artifact

    async def update_progress(self, agent_id: str, percent: int, message: str) -> None:
        self.progress.append(
            {"agent_id": agent_id, "progress": percent, "message": message, "timestamp": _utcnow()}
        )

    async def wait_for(self, key: str, timeout: float) -> MemoryEntry:
        entry = self.entries.get(key)
        if entry is not None:
            return entry
        try:
            await asyncio.wait_for(self._event(key).wait(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise DependencyNotReadyError(key, f"Timed out after {timeout:g}s waiting for {key}") from e
        return self.entries[key]

    def artifacts_of_type(self, artifact_type: str) -> list[dict[str, Any]]:
        return [a for a in self.artifacts if a["type"] == artifact_type]


class HttpSharedMemory:
    """Shared memory and artifacts kept by the platform's agent API.

    The remote store cannot push, so `wait_for` polls at a fixed interval.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        poll_interval_seconds: float | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.poll_interval_seconds = (
            settings.dependency_poll_interval_seconds
            if poll_interval_seconds is None
            else poll_interval_seconds
        )
        self.timeout_seconds = timeout_seconds
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

    async def store_memory(
        self,
        key: str,
        value: Any,
        *,
        scope: Scope = "local",
        agent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryEntry:
        entry = MemoryEntry(
            key=key,
            value=value,
            scope=scope,
            timestamp=_utcnow(),
            agent_id=agent_id,
            metadata=dict(metadata or {}),
        )
        async with self._client() as client:
            response = await client.post("/agents/memory", json=asdict(entry))
            response.raise_for_status()
        return entry

    async def retrieve_memory(self, key: str) -> MemoryEntry | None:
        async with self._client() as client:
            response = await client.get(f"/agents/memory/{key}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = _json_object(response)
        data = payload.get("data", payload)
        if not data:
            return None
        if not isinstance(data, dict):
            raise TransientNetworkError(f"Memory entry {key} is not an object")
        return MemoryEntry(
            key=data.get("key", key),
            value=data.get("value"),
            scope=data.get("scope", "local"),
            timestamp=data.get("timestamp", ""),
            agent_id=data.get("agent_id"),
            metadata=data.get("metadata") or {},
        )

    async def create_artifact(
        self,
        artifact_type: str,
        content: Any,
        *,
        agent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body = {
            "type": artifact_type,
            "content": content,
            "metadata": dict(metadata or {}),
            "agent_id": agent_id,
            "status": "draft",
        }
        async with self._client() as client:
            response = await client.post("/agents/artifacts", json=body)
            response.raise_for_status()
            payload = _json_object(response)
        data = payload.get("data", payload)
        return data if isinstance(data, dict) else payload

    async def update_progress(self, agent_id: str, percent: int, message: str) -> None:
        async with self._client() as client:
            response = await client.post(
                f"/agents/{agent_id}/progress",
                json={"progress": percent, "message": message},
            )
            response.raise_for_status()

    async def wait_for(self, key: str, timeout: float) -> MemoryEntry:
        deadline = time.monotonic() + timeout
        while True:
            entry = await self.retrieve_memory(key)
            if entry is not None:
                return entry
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise DependencyNotReadyError(key, f"Timed out after {timeout:g}s waiting for {key}")
            await asyncio.sleep(min(self.poll_interval_seconds, remaining))


_store: SharedMemoryStore | None = None


def get_shared_memory() -> SharedMemoryStore:
    global _store
    if _store is None:
        if settings.shared_memory_api_base:
            _store = HttpSharedMemory(
                settings.shared_memory_api_base,
                token=settings.shared_memory_api_token,
            )
        else:
            _store = InMemorySharedMemory()
        log_service.logger.info("Shared memory backend: %s", type(_store).__name__)
    return _store
