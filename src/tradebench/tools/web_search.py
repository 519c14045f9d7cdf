"""
Best-effort web search for the ``webSearch`` tool.

Keyed providers (Tavily, SerpAPI, Brave) are used when configured with an API key; otherwise the
keyless DuckDuckGo Instant Answer API is queried.  Failures never raise: they come back as
``{"provider": ..., "error": ..., "results": []}``.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
)

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

MAX_RESULTS = 10

_DEFAULT_URLS = {
    "tavily": "https://api.tavily.com/search",
    "serpapi": "https://serpapi.com/search.json",
    "brave": "https://api.search.brave.com/res/v1/web/search",
    "duckduckgo": "https://api.duckduckgo.com/",
}


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    snippet: str = ""


def clamp_limit(limit: Any, default: int = 5) -> int:
    try:
        value = int(limit) if limit is not None else default
    except (TypeError, ValueError):
        value = default
    return max(1, min(MAX_RESULTS, value))


class WebSearch:
    """Small multi-provider search client."""

    def __init__(
        self,
        provider: str = "duckduckgo",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.provider = provider.lower()
        self.api_key = api_key
        self.base_url = base_url
        self._client = httpx.Client(timeout=timeout, transport=transport, follow_redirects=True)

    def _effective_provider(self) -> str:
        if self.provider in ("tavily", "serpapi", "brave") and self.api_key:
            return self.provider
        return "duckduckgo"

    def search(self, query: str, limit: Any = None) -> Dict[str, Any]:
        """Return ``{"provider": str, "results": [{title, url, snippet}, ...]}``."""
        provider = self._effective_provider()
        n = clamp_limit(limit)
        url = self.base_url or _DEFAULT_URLS[provider]
        try:
            results = getattr(self, f"_search_{provider}")(url, query, n)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Web search via %s failed: %s", provider, exc)
            return {"provider": provider, "error": str(exc), "results": []}
        return {
            "provider": provider,
            "results": [r.model_dump() for r in results[:n]],
        }

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------ #
    # Providers
    # ------------------------------------------------------------------ #
    def _get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        resp = self._client.get(url, **kwargs)
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _pick(items: List[Any], title: str, url: str, snippet: str) -> List[SearchResult]:
        return [
            SearchResult(
                title=item.get(title) or "",
                url=item.get(url) or "",
                snippet=item.get(snippet) or "",
            )
            for item in items
            if isinstance(item, dict)
        ]

    def _search_tavily(self, url: str, query: str, n: int) -> List[SearchResult]:
        body = {"api_key": self.api_key, "query": query, "search_depth": "basic", "max_results": n}
        resp = self._client.post(url, json=body)
        resp.raise_for_status()
        return self._pick(resp.json().get("results") or [], "title", "url", "content")

    def _search_serpapi(self, url: str, query: str, n: int) -> List[SearchResult]:
        data = self._get_json(
            url, params={"engine": "google", "q": query, "num": str(n), "api_key": self.api_key}
        )
        return self._pick(data.get("organic_results") or [], "title", "link", "snippet")

    def _search_brave(self, url: str, query: str, n: int) -> List[SearchResult]:
        data = self._get_json(
            url,
            params={"q": query, "count": str(n)},
            headers={"X-Subscription-Token": self.api_key or ""},
        )
        items = (data.get("web") or {}).get("results") or []
        return self._pick(items, "title", "url", "description")

    def _search_duckduckgo(self, url: str, query: str, n: int) -> List[SearchResult]:
        data = self._get_json(
            url, params={"q": query, "format": "json", "no_redirect": "1", "no_html": "1"}
        )
        collected = []
        for item in data.get("Results") or []:
            collected.append(
                SearchResult(
                    title=item.get("Text") or item.get("FirstURL") or "",
                    url=item.get("FirstURL") or "",
                    snippet=item.get("Text") or "",
                )
            )
        for topic in data.get("RelatedTopics") or []:
            # related topics are either entries or groups of entries under "Topics"
            for item in [topic, *(topic.get("Topics") or [])]:
                if item.get("Text") and item.get("FirstURL"):
                    collected.append(
                        SearchResult(title=item["Text"], url=item["FirstURL"], snippet=item["Text"])
                    )
        return collected
