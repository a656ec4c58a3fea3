"""
Web Search Client

Thin client for the Tavily search API. Web search is an optional
collaborator: without an API key, or when the provider fails, ``search``
returns an empty list instead of raising.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from .models import WebResult

logger = logging.getLogger("legal_rag.web_search")


class WebSearchClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        base_url: str = "https://api.tavily.com/search",
        max_results: int = 5,
        search_depth: str = "advanced",
        timeout: float = 30.0,
    ) -> None:
        self._client = http_client
        self.api_key = api_key
        self.base_url = base_url
        self.max_results = max_results
        self.search_depth = search_depth
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str) -> List[WebResult]:
        """
        Return ranked web results for ``query``; never raises.
        """
        if not self.configured:
            logger.warning("Web search requested but no Tavily API key is configured")
            return []

        payload = {
            "query": query,
            "search_depth": self.search_depth,
            "max_results": self.max_results,
            "include_answer": True,
        }

        try:
            resp = await self._client.post(
                self.base_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Web search error: %s", exc)
            return []

        if not isinstance(data, dict):
            logger.error("Web search returned unexpected payload type: %s", type(data).__name__)
            return []

        results: List[WebResult] = []
        for raw in data.get("results") or []:
            try:
                results.append(WebResult(**raw))
            except (TypeError, ValidationError):
                logger.debug("Skipping malformed web result: %r", raw)
        return results
