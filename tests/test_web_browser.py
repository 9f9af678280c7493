from __future__ import annotations

import json

import httpx
import pytest

from vsi_research.errors import (
    InvalidRequestError,
    ServiceDisabledError,
    SessionLimitError,
    TransientNetworkError,
)
from vsi_research.tools.web_browser import WebBrowserService, parse_page_metadata

PAGE_HTML = (
    "<html lang='en'><head><title> Test Page </title>"
    "<meta name='description' content='A page about tests'>"
    "<meta name='keywords' content='pytest, httpx ,'>"
    "<meta name='author' content='Jo Doe'>"
    "<meta property='article:published_time' content='2025-01-02'>"
    "</head><body><h1>Heading</h1></body></html>"
)


class FakeBrowserApi:
    """Records calls and answers like the remote browser service."""

    def __init__(
        self,
        *,
        navigate_ok: bool = True,
        delete_status: int = 204,
        session_reply: httpx.Response | None = None,
        task_reply: httpx.Response | None = None,
    ):
        self.navigate_ok = navigate_ok
        self.delete_status = delete_status
        self.session_reply = session_reply
        self.task_reply = task_reply
        self.calls: list[tuple[str, str, dict | None]] = []
        self._next_id = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path
        self.calls.append((request.method, path, body))

        if request.method == "POST" and path == "/api/sessions":
            if self.session_reply is not None:
                return self.session_reply
            self._next_id += 1
            return httpx.Response(200, json={"id": f"s{self._next_id}"})
        if request.method == "DELETE":
            return httpx.Response(self.delete_status)
        if path.endswith("/nl-tasks"):
            if self.task_reply is not None:
                return self.task_reply
            return httpx.Response(200, json={"task": {"response": "Extracted page text"}})
        if path.endswith("/commands"):
            kind = body["type"]
            if kind == "navigate":
                return httpx.Response(200, json={"success": self.navigate_ok})
            if kind == "content":
                return httpx.Response(200, json={"content": PAGE_HTML})
            if kind == "screenshot":
                return httpx.Response(200, json={"status": "success"})
        return httpx.Response(404)

    def paths(self, method: str) -> list[str]:
        return [p for m, p, _ in self.calls if m == method]


def _browser(api: FakeBrowserApi, **kwargs) -> WebBrowserService:
    defaults = dict(
        enabled=True,
        api_base="https://browser.test",
        api_key="key",
        max_concurrent_sessions=3,
        retry_attempts=2,
        retry_delay_seconds=0,
        settle_delay_seconds=0,
        take_screenshots=False,
        transport=httpx.MockTransport(api),
    )
    defaults.update(kwargs)
    return WebBrowserService(**defaults)


def test_parse_page_metadata_reads_title_and_meta_tags():
    metadata = parse_page_metadata(PAGE_HTML)
    assert metadata["title"] == "Test Page"
    assert metadata["description"] == "A page about tests"
    assert metadata["keywords"] == ["pytest", "httpx"]
    assert metadata["author"] == "Jo Doe"
    assert metadata["publish_date"] == "2025-01-02"
    assert metadata["language"] == "en"


def test_parse_page_metadata_falls_back_to_h1():
    assert parse_page_metadata("<body><h1>Only heading</h1></body>")["title"] == "Only heading"


@pytest.mark.asyncio
async def test_analyze_web_content_runs_full_session_lifecycle():
    api = FakeBrowserApi()
    browser = _browser(api, take_screenshots=True)

    result = await browser.analyze_web_content("https://example.com/page", "summary")

    assert result.success is True
    assert result.content == "Extracted page text"
    assert result.metadata == {"session_id": "s1", "navigation_success": True}
    assert browser.active_session_count == 0
    command_types = [b["type"] for m, p, b in api.calls if p.endswith("/commands")]
    assert command_types == ["navigate", "screenshot"]
    assert api.paths("DELETE") == ["/api/sessions/s1"]


@pytest.mark.asyncio
async def test_analyze_web_content_cleans_up_after_failed_navigation():
    api = FakeBrowserApi(navigate_ok=False)
    browser = _browser(api)

    result = await browser.analyze_web_content("https://example.com/page")

    assert result.success is False
    assert "Failed to navigate" in result.error
    navigations = [b for m, p, b in api.calls if p.endswith("/commands") and b["type"] == "navigate"]
    assert len(navigations) == 2
    assert api.paths("DELETE") == ["/api/sessions/s1"]
    assert browser.active_session_count == 0


@pytest.mark.asyncio
async def test_analyze_web_content_rejects_invalid_url():
    browser = _browser(FakeBrowserApi())
    with pytest.raises(InvalidRequestError):
        await browser.analyze_web_content("not a url")


@pytest.mark.asyncio
async def test_disabled_browser_returns_deterministic_results():
    api = FakeBrowserApi()
    browser = _browser(api, enabled=False)

    first = await browser.analyze_web_content("https://example.com")
    second = await browser.analyze_web_content("https://example.com")
    extracted = await browser.browse_and_extract("https://example.com")

    assert first.success is False and second.success is False
    assert first.error == second.error == "Web browsing is disabled"
    assert first.metadata == {"enabled": False}
    assert extracted["success"] is False
    assert api.calls == []
    with pytest.raises(ServiceDisabledError):
        await browser.create_session()


@pytest.mark.asyncio
async def test_session_cap_and_cleanup_all_sessions():
    api = FakeBrowserApi()
    browser = _browser(api, max_concurrent_sessions=2)

    await browser.create_session()
    await browser.create_session()
    with pytest.raises(SessionLimitError):
        await browser.create_session()
    assert browser.active_session_count == 2

    await browser.cleanup_all_sessions()
    assert browser.active_session_count == 0
    assert sorted(api.paths("DELETE")) == ["/api/sessions/s1", "/api/sessions/s2"]


@pytest.mark.asyncio
async def test_cleanup_drops_session_even_when_delete_fails():
    api = FakeBrowserApi(delete_status=500)
    browser = _browser(api)

    session_id = await browser.create_session()
    await browser.cleanup_session(session_id)
    await browser.cleanup_session(session_id)

    assert browser.active_session_count == 0
    assert api.paths("DELETE") == [f"/api/sessions/{session_id}"]


@pytest.mark.asyncio
async def test_command_budget_exhaustion_fails_the_analysis():
    api = FakeBrowserApi()
    browser = _browser(api, max_commands=1)

    result = await browser.analyze_web_content("https://example.com")

    assert result.success is False
    assert "command budget" in result.error
    assert browser.active_session_count == 0


@pytest.mark.asyncio
async def test_browse_and_extract_includes_page_metadata():
    api = FakeBrowserApi()
    browser = _browser(api)

    result = await browser.browse_and_extract("https://example.com/article", extraction_type="facts")

    assert result["success"] is True
    assert result["title"] == "Test Page"
    assert result["content"] == "Extracted page text"
    assert result["metadata"]["description"] == "A page about tests"
    assert result["metadata"]["wait_for_js"] is False
    assert browser.active_session_count == 0


@pytest.mark.asyncio
async def test_browse_and_extract_without_metadata_skips_html_fetch():
    api = FakeBrowserApi()
    browser = _browser(api)

    result = await browser.browse_and_extract("https://example.com/my-article", include_metadata=False)

    assert result["title"] == "My Article"
    assert "metadata" not in result
    assert not any(b and b.get("type") == "content" for _, _, b in api.calls)


@pytest.mark.asyncio
async def test_status_lists_open_sessions():
    browser = _browser(FakeBrowserApi())
    session_id = await browser.create_session()

    status = browser.get_status()
    assert status["active_sessions"] == 1
    assert [s["id"] for s in status["sessions"]] == [session_id]

    await browser.cleanup_all_sessions()
    assert browser.get_status()["active_sessions"] == 0


@pytest.mark.asyncio
async def test_search_and_analyze_without_links_in_results_page():
    api = FakeBrowserApi()
    browser = _browser(api)

    result = await browser.search_and_analyze("pytest fixtures")

    assert result["success"] is True
    assert result["urls"] == []
    assert result["analyses"] == []
    assert browser.active_session_count == 0


@pytest.mark.asyncio
async def test_html_reply_from_extraction_fails_the_analysis():
    api = FakeBrowserApi(task_reply=httpx.Response(200, text="<html>gateway error</html>"))
    browser = _browser(api)

    result = await browser.analyze_web_content("https://example.com/page")

    assert result.success is False
    assert "non-JSON" in result.error
    assert result.metadata["navigation_success"] is True
    assert api.paths("DELETE") == ["/api/sessions/s1"]
    assert browser.active_session_count == 0


@pytest.mark.asyncio
async def test_non_object_session_reply_is_a_transient_error():
    api = FakeBrowserApi(session_reply=httpx.Response(200, json=["s1"]))
    browser = _browser(api)

    with pytest.raises(TransientNetworkError, match="expected an object"):
        await browser.create_session()
    assert browser.active_session_count == 0

    result = await browser.analyze_web_content("https://example.com/page")
    assert result.success is False
    assert result.metadata["session_id"] is None


@pytest.mark.asyncio
async def test_extraction_tolerates_unexpected_task_shapes():
    api = FakeBrowserApi(task_reply=httpx.Response(200, json={"task": "done"}))
    browser = _browser(api)

    result = await browser.analyze_web_content("https://example.com/page")

    assert result.success is True
    assert result.content == ""
