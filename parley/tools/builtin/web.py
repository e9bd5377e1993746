"""
Web search and page scraping.

Search scrapes DuckDuckGo's HTML endpoint, which needs no API key. Scraping
reduces a page to its visible body text within a character budget.
"""

import json
import re
from typing import Any
from urllib.parse import parse_qs, quote_plus, urlparse

import httpx
from bs4 import BeautifulSoup

from parley.config.logging import get_logger
from parley.config.settings import ToolSettings
from parley.tools.base import BuiltinTool, ToolContext, ToolHandler, require_str

logger = get_logger(__name__)

SEARCH_URL = "https://html.duckduckgo.com/html/?q="

# Elements that never carry readable page content
_NOISE_TAGS = ("script", "style", "nav", "footer", "iframe", "noscript")

_WHITESPACE_RE = re.compile(r"\s+")


def unwrap_result_link(href: str) -> str:
    """Resolve DuckDuckGo redirect links (``//duckduckgo.com/l/?uddg=...``) to the target URL."""
    if not href:
        return href
    parsed = urlparse("https:" + href if href.startswith("//") else href)
    if parsed.path.startswith("/l/"):
        target = parse_qs(parsed.query).get("uddg")
        if target:
            return target[0]
    return href


def parse_search_results(html: str, limit: int) -> list[dict[str, str]]:
    soup = BeautifulSoup(html, "html.parser")
    results: list[dict[str, str]] = []
    for node in soup.select(".result"):
        if len(results) >= limit:
            break
        anchor = node.select_one(".result__a")
        if anchor is None:
            continue
        title = anchor.get_text(strip=True)
        link = unwrap_result_link(anchor.get("href", ""))
        snippet_node = node.select_one(".result__snippet")
        snippet = snippet_node.get_text(" ", strip=True) if snippet_node else ""
        if title and link:
            results.append({"title": title, "link": link, "snippet": snippet})
    return results


def extract_page_text(html: str, max_chars: int) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(list(_NOISE_TAGS)):
        tag.decompose()
    root = soup.body or soup
    text = _WHITESPACE_RE.sub(" ", root.get_text(" ")).strip()
    return text[:max_chars]


class WebSearchTool(ToolHandler):
    tool = BuiltinTool.WEB_SEARCH
    description = "Search the web for current information, news, or facts."
    parameters = {
        "type": "object",
        "properties": {"query": {"type": "string", "description": "The search query"}},
        "required": ["query"],
    }

    def __init__(self, client: httpx.AsyncClient, settings: ToolSettings):
        self._client = client
        self._settings = settings

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        query = require_str(arguments, "query")
        response = await self._client.get(
            SEARCH_URL + quote_plus(query),
            headers={"User-Agent": self._settings.user_agent},
        )
        response.raise_for_status()

        results = parse_search_results(response.text, self._settings.search_max_results)
        logger.debug(f"web_search '{query}' returned {len(results)} results")
        if not results:
            return "No results found."
        return json.dumps(results)


class ScrapeUrlTool(ToolHandler):
    tool = BuiltinTool.SCRAPE_URL
    description = "Read the text content of a specific web page URL."
    parameters = {
        "type": "object",
        "properties": {"url": {"type": "string", "description": "The URL to read"}},
        "required": ["url"],
    }

    def __init__(self, client: httpx.AsyncClient, settings: ToolSettings):
        self._client = client
        self._settings = settings

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        url = require_str(arguments, "url")
        if urlparse(url).scheme not in ("http", "https"):
            raise ValueError("URL must start with http:// or https://")

        response = await self._client.get(url, headers={"User-Agent": self._settings.user_agent})
        response.raise_for_status()

        text = extract_page_text(response.text, self._settings.scrape_max_chars)
        return text or "The page has no readable text."
