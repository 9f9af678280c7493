from __future__ import annotations


class ResearchServiceError(Exception):
    """Base class for errors raised by the research services."""


class ServiceDisabledError(ResearchServiceError):
    """The requested feature is switched off by configuration."""


class InvalidRequestError(ResearchServiceError, ValueError):
    """A query, URL or parameter failed validation."""


class TransientNetworkError(ResearchServiceError):
    """Timeout or 5xx from a remote service; safe to retry."""


class ResourceExhaustedError(ResearchServiceError):
    """A local limit rejected the call before any network traffic."""


class RateLimitExceededError(ResourceExhaustedError):
    def __init__(self, limit: int, window_seconds: float, reset_in_seconds: float = 0.0):
        super().__init__(
            f"Rate limit exceeded: {limit} requests per {window_seconds:g}s"
        )
        self.limit = limit
        self.window_seconds = window_seconds
        self.reset_in_seconds = reset_in_seconds


class SessionLimitError(ResourceExhaustedError):
    def __init__(self, max_sessions: int):
        super().__init__(f"Maximum concurrent sessions ({max_sessions}) reached")
        self.max_sessions = max_sessions


class DependencyNotReadyError(ResearchServiceError):
    """A shared-memory key another agent should have written is missing."""

    def __init__(self, key: str, message: str | None = None):
        super().__init__(message or f"Dependency not ready: {key}")
        self.key = key
