"""Async Firecrawl API client: scraping and LLM extraction of web pages."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from clixen.errors import FirecrawlError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.firecrawl.dev/v1"


class FirecrawlClient:
    """Wraps ``/scrape``: plain scraping and schema-driven JSON extraction."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        api_key = api_key or os.environ.get("FIRECRAWL_API_KEY")
        if not api_key:
            raise FirecrawlError("FIRECRAWL_API_KEY environment variable not set")

        base_url = base_url or os.environ.get("FIRECRAWL_API_URL", DEFAULT_BASE_URL)
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "FirecrawlClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise FirecrawlError(f"Firecrawl {path} request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise FirecrawlError(
                f"Firecrawl {path} returned HTTP {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )

        body = response.json()
        if not body.get("success", False):
            raise FirecrawlError(f"Firecrawl {path} unsuccessful: {body.get('error', 'unknown error')}")
        return body.get("data") or {}

    async def scrape_url(
        self,
        url: str,
        *,
        formats: list[str] | None = None,
        only_main_content: bool = True,
        wait_for: int = 3000,
    ) -> dict[str, Any]:
        """Scrape one page; returns Firecrawl's ``data`` object (markdown, metadata...)."""
        payload = {
            "url": url,
            "formats": formats or ["markdown"],
            "onlyMainContent": only_main_content,
            "waitFor": wait_for,
        }
        logger.info("Scraping %s", url)
        return await self._post("/scrape", payload)

    async def extract_structured(
        self,
        url: str,
        schema: dict[str, Any],
        prompt: str = "Extract the data according to the provided schema",
    ) -> dict[str, Any]:
        """Scrape a page and have Firecrawl's LLM fill ``schema``."""
        payload = {
            "url": url,
            "formats": ["json"],
            "jsonOptions": {"schema": schema, "prompt": prompt},
            "onlyMainContent": True,
        }
        logger.info("Extracting structured data from %s", url)
        data = await self._post("/scrape", payload)
        return data.get("json") or {}
