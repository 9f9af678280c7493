from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    AGENT_STARTED = "agent_started"
    AGENT_PROGRESS = "agent_progress"
    AGENT_COMPLETED = "agent_completed"
    ARTIFACT_CREATED = "artifact_created"
    SOURCES_CURATED = "sources_curated"
    EXTERNAL_ANALYSIS = "external_analysis"
    ERROR = "error"


@dataclass
class AgentEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data, default=str)}\n\n"
