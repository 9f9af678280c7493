from __future__ import annotations

from vsi_research.services.external_content import ExternalContentService

_external_content: ExternalContentService | None = None


def get_external_content_service() -> ExternalContentService:
    """Process-wide orchestrator; its caches, limiter and sessions live here."""
    global _external_content
    if _external_content is None:
        _external_content = ExternalContentService.from_settings()
    return _external_content


async def shutdown_external_content() -> None:
    global _external_content
    if _external_content is not None:
        await _external_content.cleanup()
        _external_content = None
