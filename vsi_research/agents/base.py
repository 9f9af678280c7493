from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from vsi_research.config import settings
from vsi_research.models.events import AgentEvent
from vsi_research.services import logger as log_service
from vsi_research.services import streaming
from vsi_research.services.shared_memory import (
    MemoryEntry,
    SharedMemoryStore,
    get_shared_memory,
    shared_key,
)

EventSink = Callable[[AgentEvent], None]


class BaseAgent:
    """Lifecycle, memory and artifact plumbing shared by the research agents.

    Subclasses implement `perform_work`. Agents never call each other; they
    exchange data through the shared memory store and block on completion
    signals written by the agents they depend on.
    """

    name: str = "base"

    def __init__(
        self,
        *,
        agent_id: str | None = None,
        memory: SharedMemoryStore | None = None,
        inputs: dict[str, Any] | None = None,
        dependencies: list[str] | None = None,
        dependency_timeout_seconds: float | None = None,
        event_sink: EventSink | None = None,
    ):
        self.agent_id = agent_id or f"{self.name}_{uuid.uuid4().hex[:8]}"
        self.memory = memory or get_shared_memory()
        self.inputs = dict(inputs or {})
        self.dependencies = list(dependencies or [])
        self.dependency_timeout_seconds = (
            settings.dependency_timeout_seconds
            if dependency_timeout_seconds is None
            else dependency_timeout_seconds
        )
        self.event_sink = event_sink
        self.local_memory: dict[str, MemoryEntry] = {}
        self.artifacts: list[dict[str, Any]] = []
        self.events: list[AgentEvent] = []
        self.progress = 0
        self.status = "idle"

    def emit(self, event: AgentEvent) -> None:
        self.events.append(event)
        if self.event_sink is not None:
            self.event_sink(event)

    async def store_memory(
        self,
        key: str,
        value: Any,
        *,
        scope: str = "local",
        metadata: dict[str, Any] | None = None,
    ) -> MemoryEntry:
        entry = await self.memory.store_memory(
            key,
            value,
            scope=scope,
            agent_id=self.agent_id,
            metadata=metadata,
        )
        self.local_memory[key] = entry
        return entry

    async def retrieve_memory(self, key: str) -> MemoryEntry | None:
        entry = self.local_memory.get(key)
        if entry is not None:
            return entry
        return await self.memory.retrieve_memory(key)

    async def store_shared_memory(self, key: str, value: Any) -> MemoryEntry:
        return await self.store_memory(shared_key(key), value, scope="shared")

    async def get_shared_memory(self, key: str) -> MemoryEntry | None:
        return await self.memory.retrieve_memory(shared_key(key))

    async def create_artifact(
        self,
        artifact_type: str,
        content: Any,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        artifact = await self.memory.create_artifact(
            artifact_type,
            content,
            agent_id=self.agent_id,
            metadata=metadata,
        )
        self.artifacts.append(artifact)
        self.emit(streaming.artifact_created(self.name, artifact_type, str(artifact.get("id", ""))))
        return artifact

    async def update_progress(self, percent: int, message: str) -> None:
        self.progress = percent
        await self.memory.update_progress(self.agent_id, percent, message)
        self.emit(streaming.agent_progress(self.name, percent, message))
        log_service.log_agent_step(self.name, message, "progress", {"progress": percent})

    async def wait_for_dependencies(self) -> dict[str, MemoryEntry]:
        """Block until every dependency has published its completion signal."""
        signals: dict[str, MemoryEntry] = {}
        for dependency in self.dependencies:
            key = shared_key(f"{dependency}_completed")
            signals[dependency] = await self.memory.wait_for(key, self.dependency_timeout_seconds)
        return signals

    async def signal_completion(self, **details: Any) -> MemoryEntry:
        return await self.store_shared_memory(
            f"{self.name}_completed",
            {"status": "completed", "timestamp": datetime.now(timezone.utc).isoformat(), **details},
        )

    async def perform_work(self) -> dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} must implement perform_work")

    async def cleanup(self) -> None:
        return None

    async def execute(self) -> dict[str, Any]:
        self.status = "running"
        started = time.monotonic()
        self.emit(streaming.agent_started(self.name, agent_id=self.agent_id))
        log_service.log_agent_step(self.name, "execute", "started")
        try:
            result = await self.perform_work()
        except Exception as e:
            self.status = "failed"
            self.emit(streaming.error(str(e), agent=self.name))
            log_service.log_agent_step(self.name, "execute", "failed", {"error": str(e)})
            raise
        finally:
            await self.cleanup()

        self.status = "completed"
        duration_ms = int((time.monotonic() - started) * 1000)
        self.emit(streaming.agent_completed(self.name, duration_ms=duration_ms))
        log_service.log_agent_step(self.name, "execute", "completed", {"duration_ms": duration_ms})
        return result
