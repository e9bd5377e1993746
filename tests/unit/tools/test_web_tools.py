"""Unit tests for web search and page scraping."""

import json

import httpx
import pytest

from parley.tools.base import ToolContext
from parley.tools.builtin.web import (
    ScrapeUrlTool,
    WebSearchTool,
    extract_page_text,
    parse_search_results,
    unwrap_result_link,
)

SEARCH_HTML = """
<html><body>
  <div class="result">
    <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fcats&rut=abc">Cats</a>
    <a class="result__snippet">All about <b>cats</b>.</a>
  </div>
  <div class="result">
    <a class="result__a" href="https://dogs.example.org/">Dogs</a>
  </div>
  <div class="result"><span>no anchor</span></div>
  <div class="result">
    <a class="result__a" href="https://birds.example.net/">Birds</a>
    <a class="result__snippet">Tweet.</a>
  </div>
</body></html>
"""

PAGE_HTML = """
<html>
  <head><title>Ignored</title><style>body { color: red; }</style></head>
  <body>
    <nav>Home | About</nav>
    <h1>Opening   hours</h1>
    <p>Monday to Friday,
       9 to 5.</p>
    <script>track();</script>
    <footer>© Example</footer>
  </body>
</html>
"""

CONTEXT = ToolContext(tenant_id="tenant-1", platform="playground")


class TestParsing:
    def test_unwrap_redirect(self):
        href = "//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fcats&rut=abc"
        assert unwrap_result_link(href) == "https://example.com/cats"

    def test_unwrap_plain_link(self):
        assert unwrap_result_link("https://example.com/") == "https://example.com/"

    def test_search_results(self):
        results = parse_search_results(SEARCH_HTML, limit=5)
        assert results == [
            {"title": "Cats", "link": "https://example.com/cats", "snippet": "All about cats ."},
            {"title": "Dogs", "link": "https://dogs.example.org/", "snippet": ""},
            {"title": "Birds", "link": "https://birds.example.net/", "snippet": "Tweet."},
        ]

    def test_search_results_limit(self):
        assert len(parse_search_results(SEARCH_HTML, limit=2)) == 2

    def test_page_text_strips_noise(self):
        assert extract_page_text(PAGE_HTML, 1000) == "Opening hours Monday to Friday, 9 to 5."

    def test_page_text_budget(self):
        assert extract_page_text(PAGE_HTML, 7) == "Opening"


class TestWebSearchTool:
    @pytest.mark.asyncio
    async def test_returns_json_results(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["agent"] = request.headers["User-Agent"]
            return httpx.Response(200, text=SEARCH_HTML)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await WebSearchTool(client, settings.tools).call({"query": "cute cats"}, CONTEXT)

        assert "q=cute+cats" in seen["url"]
        assert seen["agent"] == settings.tools.user_agent
        assert [r["title"] for r in json.loads(result)] == ["Cats", "Dogs", "Birds"]

    @pytest.mark.asyncio
    async def test_no_results(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html></html>"))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await WebSearchTool(client, settings.tools).call({"query": "zzz"}, CONTEXT)
        assert result == "No results found."

    @pytest.mark.asyncio
    async def test_http_error_raises(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await WebSearchTool(client, settings.tools).call({"query": "cats"}, CONTEXT)


class TestScrapeUrlTool:
    @pytest.mark.asyncio
    async def test_returns_page_text(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=PAGE_HTML))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await ScrapeUrlTool(client, settings.tools).call({"url": "https://example.com"}, CONTEXT)
        assert result == "Opening hours Monday to Friday, 9 to 5."

    @pytest.mark.asyncio
    async def test_empty_page(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html><body></body></html>"))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await ScrapeUrlTool(client, settings.tools).call({"url": "https://example.com"}, CONTEXT)
        assert result == "The page has no readable text."

    @pytest.mark.asyncio
    async def test_rejects_non_http_urls(self, settings):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
            with pytest.raises(ValueError, match="http"):
                await ScrapeUrlTool(client, settings.tools).call({"url": "file:///etc/passwd"}, CONTEXT)
