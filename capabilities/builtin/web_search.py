"""Brave web search capability."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from shared.errors import CapabilityError, CapabilityValidationError

logger = logging.getLogger(__name__)

BRAVE_BASE_URL = "https://api.search.brave.com/res/v1"


def _summarize(item: dict[str, Any] | None) -> dict[str, str] | None:
    if not item:
        return None
    return {
        "title": item.get("title") or "No title available",
        "description": item.get("description") or "No description available",
        "url": item.get("url") or "No URL available",
    }


class BraveSearchClient:
    """Async Brave Search client exposing the ``search_internet`` handler."""

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        max_results: int = 5,
    ):
        self.api_key = api_key
        self.max_results = max_results
        self._client = client or httpx.AsyncClient(
            base_url=BRAVE_BASE_URL,
            timeout=30.0,
            headers={"Accept": "application/json", "X-Subscription-Token": api_key},
        )

    async def search_internet(self, arguments: dict[str, Any], session_id: str) -> dict[str, Any]:
        query = str(arguments.get("query") or "").strip()
        if not query:
            raise CapabilityValidationError("Search query must be a non-empty string.", capability="search_internet")
        if not self.api_key:
            raise CapabilityError("BRAVE_API_KEY is not configured.", capability="search_internet")

        logger.info("Brave search: %s", query)
        response = await self._client.get("/web/search", params={"q": query})
        response.raise_for_status()
        data = response.json()

        web = [_summarize(item) for item in ((data.get("web") or {}).get("results") or [])[: self.max_results]]
        videos = (data.get("videos") or {}).get("results") or []
        return {
            "query": query,
            "results": [item for item in web if item],
            "video": _summarize(videos[0]) if videos else None,
        }

    def handlers(self) -> dict[str, Any]:
        return {"search_internet": self.search_internet}

    async def aclose(self) -> None:
        await self._client.aclose()
