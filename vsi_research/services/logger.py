"""Centralized logging for the research agents and external content services."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from vsi_research.config import settings

LOG_DIR = Path(settings.log_dir)
LOG_DIR.mkdir(parents=True, exist_ok=True)

APP_LOG_LEVEL = getattr(logging, settings.app_log_level.upper(), logging.INFO)
NOISY_LOG_LEVEL = getattr(logging, settings.noisy_log_level.upper(), logging.WARNING)

logging.basicConfig(
    level=APP_LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(LOG_DIR / "vsi_research.log"),
        logging.StreamHandler(),
    ],
)

for logger_name in (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "httpx",
    "httpcore",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(NOISY_LOG_LEVEL)

logger = logging.getLogger("vsi_research")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_agent_step(
    agent: str,
    step: str,
    status: str,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Log an agent lifecycle step."""
    step_data = {
        "timestamp": _utcnow(),
        "agent": agent,
        "step": step,
        "status": status,
        "data": data,
    }
    logger.info(f"AGENT_STEP: {json.dumps(step_data, default=str)}")


def log_external_call(
    service: str,
    operation: str,
    status: str,
    duration_ms: int = 0,
    target: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Log a call to a remote search, browser or collection API."""
    call_data = {
        "timestamp": _utcnow(),
        "service": service,
        "operation": operation,
        "status": status,
        "duration_ms": duration_ms,
        "target": target,
        "error": error,
    }
    level = logging.WARNING if status == "error" else logging.INFO
    logger.log(level, f"EXTERNAL_CALL: {json.dumps(call_data)}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": _utcnow(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {json.dumps(event_data, default=str)}")
