"""
Network Search Tool

Searches every configured network site through the WordPress REST search
endpoint and returns results formatted for model consumption. Problems the
model can act on (missing query, search unavailable) are reported inside the
result; transport failures raise and abort the turn.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, Field

from .registry import ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


class SiteConfig(BaseModel):
    """One site in the content network."""

    key: str
    name: str
    url: str
    description: str = ""

    @property
    def domain(self) -> str:
        return urlparse(self.url).netloc


class SearchResults(BaseModel):
    total: int = 0
    results: list[dict[str, Any]] = Field(default_factory=list)


class SearchBackend(Protocol):
    async def search(
        self, query: str, sites: list[str], limit: int
    ) -> SearchResults: ...


class WordPressSearchBackend:
    """Fan a query out to each site's `/wp-json/wp/v2/search` endpoint."""

    def __init__(
        self,
        sites: list[SiteConfig],
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.sites = sites
        self._client = client
        self._timeout = timeout

    def _select_sites(self, domains: list[str]) -> list[SiteConfig]:
        if not domains:
            return self.sites
        wanted = {d.strip().lower() for d in domains}
        return [site for site in self.sites if site.domain.lower() in wanted]

    async def _search_site(
        self, client: httpx.AsyncClient, site: SiteConfig, query: str, limit: int
    ) -> tuple[int, list[dict[str, Any]]]:
        response = await client.get(
            f"{site.url.rstrip('/')}/wp-json/wp/v2/search",
            params={"search": query, "per_page": limit, "_embed": "self"},
        )
        response.raise_for_status()
        total = int(response.headers.get("X-WP-Total", 0))

        results: list[dict[str, Any]] = []
        for item in response.json():
            embedded = (item.get("_embedded") or {}).get("self") or [{}]
            post = embedded[0] if embedded else {}
            results.append(
                {
                    "title": item.get("title", ""),
                    "excerpt": (post.get("excerpt") or {}).get("rendered", ""),
                    "url": item.get("url", ""),
                    "post_type": item.get("subtype", item.get("type", "")),
                    "date": post.get("date", ""),
                    "site_name": site.name,
                    "site_url": site.url,
                }
            )
        return total, results

    async def search(self, query: str, sites: list[str], limit: int) -> SearchResults:
        selected = self._select_sites(sites)
        if not selected:
            return SearchResults()

        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            # one request per site
            per_site = await asyncio.gather(
                *(self._search_site(client, site, query, limit) for site in selected)
            )
        finally:
            if owns_client:
                await client.aclose()

        merged = SearchResults()
        for total, results in per_site:
            merged.total += total
            merged.results.extend(results)
        merged.results = merged.results[:limit]
        return merged


def _parse_limit(value: Any) -> int:
    try:
        limit = abs(int(value))
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    # WordPress rejects per_page=0
    return min(limit, MAX_LIMIT) if limit else DEFAULT_LIMIT


class SearchTool:
    """Callable tool target for network-wide content search."""

    def __init__(self, backend: SearchBackend | None) -> None:
        self.backend = backend

    async def __call__(self, parameters: dict[str, Any]) -> dict[str, Any]:
        if self.backend is None:
            return {
                "error": "Search functionality is not available. No search backend is configured.",
                "success": False,
            }

        query = str(parameters.get("query") or "").strip()
        if not query:
            return {"error": "Search query is required", "success": False}

        limit = _parse_limit(parameters["limit"]) if "limit" in parameters else DEFAULT_LIMIT
        sites = parameters.get("sites")
        sites = [str(s) for s in sites] if isinstance(sites, list) else []

        logger.debug("→ Search: query=%r limit=%d sites=%s", query, limit, sites or "all")
        found = await self.backend.search(query, sites, limit)

        if not found.results:
            return {
                "success": True,
                "query": query,
                "total_results": 0,
                "results_returned": 0,
                "message": f'No results found for "{query}"',
                "results": [],
            }

        return {
            "success": True,
            "query": query,
            "total_results": found.total,
            "results_returned": len(found.results),
            "sites_searched": ", ".join(sites) if sites else "all network sites",
            "results": found.results,
        }


class SearchToolSource:
    """Tool source contributing the network search tool."""

    def __init__(self, backend: SearchBackend | None, tool_id: str = "search") -> None:
        self.backend = backend
        self.tool_id = tool_id

    def tools(self) -> dict[str, ToolDefinition]:
        return {
            self.tool_id: ToolDefinition(
                id=self.tool_id,
                function={
                    "name": self.tool_id,
                    "description": (
                        "Search across all network sites. Returns relevant posts, pages, "
                        "forum topics, products and other content. Use this for any "
                        "content search request."
                    ),
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "query": {
                                "type": "string",
                                "description": "Search query to find content across the network",
                            },
                            "limit": {
                                "type": "integer",
                                "description": "Maximum number of results to return (default: 10, max: 50)",
                            },
                            "sites": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": (
                                    "Optional: specific site domains to search. "
                                    "If omitted, searches all sites."
                                ),
                            },
                        },
                        "required": ["query"],
                    },
                },
                invoke=SearchTool(self.backend),
            )
        }
