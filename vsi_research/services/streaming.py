from __future__ import annotations

from typing import Any

from vsi_research.models.events import AgentEvent, EventType


def agent_started(agent: str, **kwargs: Any) -> AgentEvent:
    return AgentEvent(event=EventType.AGENT_STARTED, data={"agent": agent, **kwargs})


def agent_progress(agent: str, progress: int, message: str, **kwargs: Any) -> AgentEvent:
    return AgentEvent(
        event=EventType.AGENT_PROGRESS,
        data={"agent": agent, "progress": progress, "message": message, **kwargs},
    )


def agent_completed(agent: str, **kwargs: Any) -> AgentEvent:
    return AgentEvent(event=EventType.AGENT_COMPLETED, data={"agent": agent, **kwargs})


def artifact_created(agent: str, artifact_type: str, artifact_id: str) -> AgentEvent:
    return AgentEvent(
        event=EventType.ARTIFACT_CREATED,
        data={"agent": agent, "artifact_type": artifact_type, "artifact_id": artifact_id},
    )


def sources_curated(agent: str, count: int, external: int, average_quality: float) -> AgentEvent:
    return AgentEvent(
        event=EventType.SOURCES_CURATED,
        data={
            "agent": agent,
            "count": count,
            "external": external,
            "average_quality": round(average_quality, 3),
        },
    )


def external_analysis(agent: str, summary: dict[str, Any]) -> AgentEvent:
    return AgentEvent(event=EventType.EXTERNAL_ANALYSIS, data={"agent": agent, **summary})


def error(message: str, recoverable: bool = False, **kwargs: Any) -> AgentEvent:
    return AgentEvent(
        event=EventType.ERROR,
        data={"message": message, "recoverable": recoverable, **kwargs},
    )
