"""Web search and page browsing tools (Tavily, with a plain fetch fallback)."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import httpx
import structlog
from bs4 import BeautifulSoup

from flomail.agent.tools import Tool, ToolContext, ToolResult
from flomail.config import SearchConfig

logger = structlog.get_logger()

_USER_AGENT = "Mozilla/5.0 (compatible; FloMail/1.0; +https://flomail.app)"
TRUNCATION_MARKER = "\n\n[Content truncated...]"


class WebSearchTool(Tool):
    def __init__(self, config: SearchConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return (
            "Search the web for current information. Returns the top results with titles, "
            "links, and snippets, plus a short answer summary when available."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query, e.g. 'Acme Corp quarterly earnings date'",
                },
            },
            "required": ["query"],
        }

    async def execute(self, context: ToolContext, query: str = "") -> ToolResult:
        query = (query or "").strip()
        if not query:
            return ToolResult("Error: query is required.", success=False)

        if not self._config.tavily_api_key:
            return ToolResult(
                "Web search is not configured. Set TAVILY_API_KEY to enable it.",
                success=False,
            )

        payload = {
            "api_key": self._config.tavily_api_key,
            "query": query,
            "search_depth": "basic",
            "include_answer": True,
            "include_raw_content": False,
            "max_results": self._config.max_results,
        }

        logger.info("web_search.request", query=query)
        client = self._client or httpx.AsyncClient(timeout=self._config.timeout_s)
        try:
            resp = await client.post(self._config.tavily_search_url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            return ToolResult(
                f"Error: web search failed with status {e.response.status_code}.",
                success=False,
            )
        except Exception as e:
            return ToolResult(
                f"Error fetching search results: {type(e).__name__}: {e}",
                success=False,
            )
        finally:
            if client is not self._client:
                await client.aclose()

        results = data.get("results") or []
        answer = (data.get("answer") or "").strip()
        if not results and not answer:
            return ToolResult(f"No web results found for: {query}", success=True)

        lines = [f'Web search results for: "{query}"']
        if answer:
            lines.append(f"Summary: {answer}")
        lines.append("")
        for idx, item in enumerate(results, start=1):
            title = (item.get("title") or "(no title)").strip()
            url = (item.get("url") or "").strip()
            snippet = (item.get("content") or "").strip()[: self._config.snippet_chars]
            lines.append(f"[{idx}] {title}")
            if url:
                lines.append(f"    URL: {url}")
            if snippet:
                lines.append(f"    {snippet}")

        logger.info("web_search.results", query=query, count=len(results))
        return ToolResult("\n".join(lines), success=True)


def is_valid_url(url: str) -> bool:
    """Only absolute http(s) URLs with a host are fetched."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def cap_content(content: str, max_chars: int) -> str:
    if len(content) > max_chars:
        return content[:max_chars] + TRUNCATION_MARKER
    return content


def extract_readable_text(html: str) -> tuple[str | None, str]:
    """Title and readable text of an HTML page, chrome stripped."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.string.strip() if soup.title and soup.title.string else None
    for tag in soup(["head", "script", "style", "nav", "header", "footer", "noscript"]):
        tag.decompose()
    lines = [line.strip() for line in soup.get_text(separator="\n").splitlines()]
    return title, "\n".join(line for line in lines if line)


class BrowseUrlTool(Tool):
    def __init__(self, config: SearchConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client

    @property
    def name(self) -> str:
        return "browse_url"

    @property
    def description(self) -> str:
        return "Fetch a web page and return its readable text content."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "Absolute http(s) URL to read",
                },
            },
            "required": ["url"],
        }

    async def execute(self, context: ToolContext, url: str = "") -> ToolResult:
        url = (url or "").strip()
        if not is_valid_url(url):
            return ToolResult(f"Error: invalid URL format: {url!r}", success=False)

        client = self._client or httpx.AsyncClient(
            timeout=self._config.timeout_s, follow_redirects=True
        )
        try:
            if self._config.tavily_api_key:
                extracted = await self._tavily_extract(client, url)
                if extracted is not None:
                    return extracted
            return await self._basic_fetch(client, url)
        finally:
            if client is not self._client:
                await client.aclose()

    async def _tavily_extract(self, client: httpx.AsyncClient, url: str) -> ToolResult | None:
        """Clean extraction via Tavily; None means fall back to a plain fetch."""
        logger.info("browse.tavily", url=url)
        try:
            resp = await client.post(
                self._config.tavily_extract_url,
                json={"api_key": self._config.tavily_api_key, "urls": [url]},
            )
        except httpx.HTTPError as e:
            logger.warning("browse.tavily_error", url=url, error=str(e))
            return None
        if resp.status_code >= 400:
            logger.warning("browse.tavily_status", url=url, status=resp.status_code)
            return None

        results = resp.json().get("results") or []
        raw = (results[0].get("raw_content") or "") if results else ""
        if not raw.strip():
            logger.info("browse.tavily_empty", url=url)
            return None

        title = next((line.strip() for line in raw.splitlines() if line.strip()), url)[:100]
        content = cap_content(raw, self._config.browse_max_chars)
        return ToolResult(f"Page: {title}\nURL: {url}\n\n{content}", success=True)

    async def _basic_fetch(self, client: httpx.AsyncClient, url: str) -> ToolResult:
        logger.info("browse.fetch", url=url)
        try:
            resp = await client.get(
                url,
                headers={
                    "User-Agent": _USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                },
            )
        except httpx.HTTPError as e:
            return ToolResult(f"Error: failed to fetch URL: {type(e).__name__}: {e}", success=False)

        if resp.status_code >= 400:
            return ToolResult(
                f"Error: failed to fetch {url}: {resp.status_code} {resp.reason_phrase}",
                success=False,
            )

        content_type = resp.headers.get("content-type", "")
        if "text/html" not in content_type and "text/plain" not in content_type:
            return ToolResult(
                f"This URL points to a {content_type or 'non-text'} file, not a webpage.",
                success=True,
            )

        if "text/html" in content_type:
            title, text = extract_readable_text(resp.text)
        else:
            title, text = None, resp.text.strip()

        content = cap_content(text, self._config.browse_max_chars)
        return ToolResult(f"Page: {title or url}\nURL: {url}\n\n{content}", success=True)
