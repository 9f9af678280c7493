from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from urllib.parse import quote_plus

import httpx
from bs4 import BeautifulSoup

from vsi_research.config import settings
from vsi_research.errors import (
    InvalidRequestError,
    ResearchServiceError,
    ResourceExhaustedError,
    ServiceDisabledError,
    SessionLimitError,
    TransientNetworkError,
)
from vsi_research.research_core.models.interfaces import BrowseResult, BrowserSession
from vsi_research.services import logger as log_service
from vsi_research.tools.web_utils import extract_urls, is_valid_url, title_from_url

NETWORK_TIMEOUT_S = 30.0
NAVIGATION_TIMEOUT_S = 35.0
EXTRACTION_TIMEOUT_S = 45.0
SCREENSHOT_TIMEOUT_S = 20.0
CLEANUP_TIMEOUT_S = 10.0

# Timeouts the remote service applies inside the page, in milliseconds.
REMOTE_NAVIGATION_TIMEOUT_MS = 30000
REMOTE_SCREENSHOT_TIMEOUT_MS = 15000

SEARCH_RESULT_EXCLUDED_DOMAINS = ("google.com", "youtube.com")

ANALYSIS_PROMPTS = {
    "general": (
        "Extract the main content of this page. Summarize the key information, "
        "main topics, and important details in clear, structured text."
    ),
    "themes": (
        "Identify the main themes and topics discussed on this page. For each theme "
        "give a short description and the supporting evidence from the page."
    ),
    "sentiment": (
        "Analyze the overall sentiment and tone of this page. State whether it is "
        "positive, negative or neutral and quote the phrases that show it."
    ),
    "entities": (
        "List the important people, organizations, places, products and technologies "
        "mentioned on this page with a short note on each."
    ),
    "summary": (
        "Write a concise summary of this page covering its purpose, main points "
        "and conclusions."
    ),
    "search_results": (
        "List the search results shown on this page. For each result give the title, "
        "the full URL and the snippet text."
    ),
    "full": "Extract the complete readable text content of this page without navigation or ads.",
    "structured": (
        "Extract the content of this page as structured sections with headings, "
        "lists and key data points."
    ),
    "facts": "List the concrete facts, figures, dates and claims stated on this page.",
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_page_metadata(html: str) -> dict[str, Any]:
    """Pull title and common meta tags out of page HTML."""
    soup = BeautifulSoup(html or "", "html.parser")

    def meta(*names: str) -> str | None:
        for name in names:
            tag = soup.find("meta", attrs={"name": name}) or soup.find(
                "meta", attrs={"property": name}
            )
            if tag and tag.get("content"):
                return tag["content"].strip()
        return None

    title = None
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
    title = title or meta("og:title", "twitter:title")
    if not title:
        h1 = soup.find("h1")
        title = h1.get_text(strip=True) if h1 else None

    keywords = meta("keywords")
    html_tag = soup.find("html")
    return {
        "title": title,
        "description": meta("description", "og:description"),
        "keywords": [k.strip() for k in keywords.split(",") if k.strip()] if keywords else [],
        "author": meta("author", "article:author"),
        "publish_date": meta("article:published_time", "date", "pubdate"),
        "language": html_tag.get("lang") if html_tag else None,
    }


class WebBrowserService:
    """Client for a remote browser-automation service.

    Every page visit owns one remote session for its whole duration; the
    session is released on every exit path through `session()`.
    """

    def __init__(
        self,
        *,
        enabled: bool | None = None,
        api_base: str | None = None,
        api_key: str | None = None,
        timeout_ms: int | None = None,
        max_commands: int | None = None,
        max_concurrent_sessions: int | None = None,
        retry_attempts: int | None = None,
        retry_delay_seconds: float | None = None,
        settle_delay_seconds: float | None = None,
        take_screenshots: bool | None = None,
        project_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.enabled = settings.web_browsing_enabled if enabled is None else bool(enabled)
        self.api_base = (api_base or settings.browser_api_base).rstrip("/")
        self.api_key = settings.browser_api_key if api_key is None else api_key
        self.timeout_ms = int(timeout_ms or settings.browser_api_timeout_ms)
        self.max_commands = int(max_commands or settings.browser_max_commands)
        self.max_concurrent_sessions = int(
            max_concurrent_sessions or settings.browser_max_concurrent_sessions
        )
        self.retry_attempts = max(
            int(settings.browser_retry_attempts if retry_attempts is None else retry_attempts), 1
        )
        self.retry_delay_seconds = (
            settings.browser_retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )
        self.settle_delay_seconds = (
            settings.browser_settle_delay_seconds if settle_delay_seconds is None else settle_delay_seconds
        )
        self.take_screenshots = (
            settings.browser_take_screenshots if take_screenshots is None else bool(take_screenshots)
        )
        self.project_id = project_id or settings.project_id
        self._transport = transport
        self.sessions: dict[str, BrowserSession] = {}
        self._reserved = 0
        self.total_commands = 0

    @property
    def active_session_count(self) -> int:
        return len(self.sessions)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        timeout: float = NETWORK_TIMEOUT_S,
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(
                base_url=self.api_base,
                timeout=timeout,
                headers=headers,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 500:
            raise TransientNetworkError(f"{method} {path} returned {response.status_code}")
        response.raise_for_status()
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise TransientNetworkError(f"{method} {path} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise TransientNetworkError(f"{method} {path} returned {type(data).__name__}, expected an object")
        return data

    def _count_command(self, session_id: str) -> None:
        session = self.sessions.get(session_id)
        if session is not None:
            if session.command_count >= self.max_commands:
                raise ResourceExhaustedError(
                    f"Session {session_id} used its {self.max_commands} command budget"
                )
            session.command_count += 1
        self.total_commands += 1

    async def _command(
        self,
        session_id: str,
        command_type: str,
        payload: dict[str, Any],
        *,
        timeout: float,
    ) -> dict[str, Any]:
        self._count_command(session_id)
        return await self._request(
            "POST",
            f"/api/sessions/{session_id}/commands",
            json={"type": command_type, "payload": payload},
            timeout=timeout,
        )

    async def create_session(self, metadata: dict[str, Any] | None = None) -> str:
        if not self.enabled:
            raise ServiceDisabledError("Web browsing is disabled")
        if len(self.sessions) + self._reserved >= self.max_concurrent_sessions:
            raise SessionLimitError(self.max_concurrent_sessions)

        self._reserved += 1
        try:
            session_metadata = {
                "browser": "chrome",
                "purpose": "content-analysis",
                "project": self.project_id,
                **(metadata or {}),
            }
            data = await self._request(
                "POST",
                "/api/sessions",
                json={
                    "metadata": session_metadata,
                    "options": {"timeout": self.timeout_ms, "maxCommands": self.max_commands},
                },
            )
            session_id = data.get("id") or (data.get("session") or {}).get("id")
            if not session_id:
                raise TransientNetworkError("Browser API returned no session id")
            self.sessions[session_id] = BrowserSession(
                id=session_id,
                created_at=time.time(),
                metadata=session_metadata,
            )
        finally:
            self._reserved -= 1

        log_service.log_event(
            event_type="browser_session_created",
            message="Browser session created",
            session_id=session_id,
            active_sessions=len(self.sessions),
        )
        return session_id

    async def cleanup_session(self, session_id: str) -> None:
        """Release a session; local tracking is dropped even if the DELETE fails."""
        session = self.sessions.pop(session_id, None)
        if session is None:
            return
        try:
            await self._request("DELETE", f"/api/sessions/{session_id}", timeout=CLEANUP_TIMEOUT_S)
        except (ResearchServiceError, httpx.HTTPError) as e:
            log_service.logger.warning("Failed to delete browser session %s: %s", session_id, e)

    async def cleanup_all_sessions(self) -> None:
        session_ids = list(self.sessions)
        await asyncio.gather(*(self.cleanup_session(sid) for sid in session_ids))
        log_service.log_event(
            event_type="browser_sessions_cleaned",
            message="All browser sessions cleaned up",
            count=len(session_ids),
        )

    @asynccontextmanager
    async def session(self, metadata: dict[str, Any] | None = None) -> AsyncIterator[str]:
        session_id = await self.create_session(metadata)
        try:
            yield session_id
        finally:
            await self.cleanup_session(session_id)

    async def navigate_to_url(self, session_id: str, url: str) -> bool:
        data = await self._command(
            session_id,
            "navigate",
            {"url": url, "timeout": REMOTE_NAVIGATION_TIMEOUT_MS},
            timeout=NAVIGATION_TIMEOUT_S,
        )
        return bool(data.get("success"))

    async def extract_content(self, session_id: str, prompt: str) -> str:
        self._count_command(session_id)
        data = await self._request(
            "POST",
            f"/api/sessions/{session_id}/nl-tasks",
            json={"task": prompt},
            timeout=EXTRACTION_TIMEOUT_S,
        )
        task = data.get("task")
        if not isinstance(task, dict):
            task = {}
        text = task.get("response") or task.get("description") or ""
        return text if isinstance(text, str) else str(text)

    async def get_page_html(self, session_id: str) -> str:
        data = await self._command(session_id, "content", {}, timeout=NETWORK_TIMEOUT_S)
        html = data.get("content") or data.get("html") or ""
        return html if isinstance(html, str) else ""

    async def take_screenshot(self, session_id: str, *, full_page: bool = True) -> bool:
        try:
            data = await self._command(
                session_id,
                "screenshot",
                {"fullPage": full_page, "timeout": REMOTE_SCREENSHOT_TIMEOUT_MS},
                timeout=SCREENSHOT_TIMEOUT_S,
            )
        except (ResearchServiceError, httpx.HTTPError) as e:
            log_service.logger.warning("Screenshot failed for session %s: %s", session_id, e)
            return False
        return data.get("status") == "success"

    async def navigate_with_retry(self, session_id: str, url: str) -> bool:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                if await self.navigate_to_url(session_id, url):
                    return True
                log_service.logger.warning("Navigation to %s unsuccessful (attempt %d)", url, attempt)
            except TransientNetworkError as e:
                log_service.logger.warning("Navigation to %s failed (attempt %d): %s", url, attempt, e)
            if attempt < self.retry_attempts:
                await asyncio.sleep(self.retry_delay_seconds)
        return False

    def _disabled_result(self, url: str, analysis_type: str) -> BrowseResult:
        return BrowseResult(
            url=url,
            analysis_type=analysis_type,
            timestamp=_utcnow(),
            duration_ms=0,
            success=False,
            error="Web browsing is disabled",
            metadata={"enabled": False},
        )

    async def analyze_web_content(self, url: str, analysis_type: str = "general") -> BrowseResult:
        """Visit a page and run the natural-language extraction for `analysis_type`."""
        if not self.enabled:
            return self._disabled_result(url, analysis_type)
        if not is_valid_url(url):
            raise InvalidRequestError("Invalid URL format")

        prompt = ANALYSIS_PROMPTS.get(analysis_type, ANALYSIS_PROMPTS["general"])
        started = time.monotonic()
        session_id: str | None = None
        navigation_success = False
        try:
            async with self.session({"url": url, "analysisType": analysis_type}) as sid:
                session_id = sid
                navigation_success = await self.navigate_with_retry(sid, url)
                if not navigation_success:
                    raise TransientNetworkError(f"Failed to navigate to {url}")
                await asyncio.sleep(self.settle_delay_seconds)
                if self.take_screenshots:
                    await self.take_screenshot(sid)
                content = await self.extract_content(sid, prompt)
        except (ResearchServiceError, httpx.HTTPError) as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            log_service.log_external_call(
                service="web_browser",
                operation="analyze",
                status="error",
                duration_ms=duration_ms,
                target=url,
                error=str(e),
            )
            return BrowseResult(
                url=url,
                analysis_type=analysis_type,
                timestamp=_utcnow(),
                duration_ms=duration_ms,
                success=False,
                error=str(e),
                metadata={"session_id": session_id, "navigation_success": navigation_success},
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        log_service.log_external_call(
            service="web_browser",
            operation="analyze",
            status="success",
            duration_ms=duration_ms,
            target=url,
        )
        return BrowseResult(
            url=url,
            analysis_type=analysis_type,
            timestamp=_utcnow(),
            duration_ms=duration_ms,
            success=True,
            content=content,
            metadata={"session_id": session_id, "navigation_success": navigation_success},
        )

    async def browse_and_extract(
        self,
        url: str,
        *,
        extraction_type: str = "summary",
        include_metadata: bool = True,
        wait_for_js: bool = False,
    ) -> dict[str, Any]:
        """Extract one page for the browse endpoint, optionally with HTML metadata."""
        extracted_at = _utcnow()
        if not self.enabled:
            return {
                "url": url,
                "title": None,
                "content": None,
                "extraction_type": extraction_type,
                "extracted_at": extracted_at,
                "success": False,
                "error": "Web browsing is disabled",
                "metadata": {"enabled": False},
            }
        if not is_valid_url(url):
            raise InvalidRequestError("Invalid URL format")

        prompt = ANALYSIS_PROMPTS.get(extraction_type, ANALYSIS_PROMPTS["summary"])
        page_metadata: dict[str, Any] = {}
        async with self.session({"url": url, "extractionType": extraction_type}) as sid:
            if not await self.navigate_with_retry(sid, url):
                raise TransientNetworkError(f"Failed to navigate to {url}")
            settle = self.settle_delay_seconds * (2 if wait_for_js else 1)
            await asyncio.sleep(settle)
            content = await self.extract_content(sid, prompt)
            if include_metadata:
                page_metadata = parse_page_metadata(await self.get_page_html(sid))

        result: dict[str, Any] = {
            "url": url,
            "title": page_metadata.get("title") or title_from_url(url),
            "content": content,
            "extraction_type": extraction_type,
            "extracted_at": extracted_at,
            "success": True,
            "error": None,
        }
        if include_metadata:
            result["metadata"] = {**page_metadata, "wait_for_js": wait_for_js}
        return result

    async def search_and_analyze(self, query: str, *, max_results: int = 5) -> dict[str, Any]:
        """Read a search-results page, then analyze the result pages it links to."""
        search_url = f"https://www.google.com/search?q={quote_plus(query)}"
        search_analysis = await self.analyze_web_content(search_url, "search_results")
        urls: list[str] = []
        analyses: list[BrowseResult] = []
        if search_analysis.success and search_analysis.content:
            urls = extract_urls(
                search_analysis.content,
                exclude_domains=SEARCH_RESULT_EXCLUDED_DOMAINS,
                limit=max_results,
            )
            for url in urls:
                analyses.append(await self.analyze_web_content(url, "general"))
        return {
            "query": query,
            "search_analysis": search_analysis,
            "urls": urls,
            "analyses": analyses,
            "success": search_analysis.success,
            "timestamp": _utcnow(),
        }

    def get_status(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "api_base": self.api_base,
            "active_sessions": len(self.sessions),
            "max_concurrent_sessions": self.max_concurrent_sessions,
            "total_commands": self.total_commands,
            "sessions": [
                {
                    "id": s.id,
                    "created_at": s.created_at,
                    "command_count": s.command_count,
                }
                for s in self.sessions.values()
            ],
        }
