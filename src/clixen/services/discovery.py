"""Template discovery: scrape the n8n.io gallery or a custom page via Firecrawl into the discovery cache."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote, urljoin

from pydantic import ValidationError

from clixen.schemas.template import DiscoveredTemplate
from clixen.shared.firecrawl_client import FirecrawlClient
from clixen.store.base import TemplateStore

logger = logging.getLogger(__name__)

GALLERY_URL = "https://n8n.io/workflows"

GALLERY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "templates": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "category": {"type": "string"},
                    "author": {"type": "string"},
                    "usageCount": {"type": "number"},
                    "url": {"type": "string"},
                    "tags": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
    },
}

GALLERY_PROMPT = (
    "Extract all n8n workflow templates with their titles, descriptions, categories, "
    "authors, usage counts, URLs, and tags"
)


def gallery_url(category: str | None = None) -> str:
    if not category:
        return GALLERY_URL
    return f"{GALLERY_URL}?category={quote(category)}"


def relevance_score(entry: DiscoveredTemplate, keywords: list[str]) -> float:
    """Share of ``keywords`` found in the entry's title, description or tags."""
    terms = [k.lower() for k in keywords if k.strip()]
    if not terms:
        return 0.0

    haystack = " ".join([entry.title, entry.description, *entry.tags]).lower()
    hits = sum(1 for term in terms if term in haystack)
    return round(hits / len(terms), 3)


class TemplateDiscoveryService:
    def __init__(
        self,
        firecrawl: FirecrawlClient,
        store: TemplateStore,
        keywords: list[str] | None = None,
    ) -> None:
        self.firecrawl = firecrawl
        self.store = store
        self.keywords = keywords or []

    async def discover(
        self,
        category: str | None = None,
        *,
        keywords: list[str] | None = None,
        limit: int = 50,
    ) -> list[DiscoveredTemplate]:
        """Scrape one gallery page, score and cache its entries, most relevant first."""
        url = gallery_url(category)
        data = await self.firecrawl.extract_structured(url, GALLERY_SCHEMA, GALLERY_PROMPT)
        return self._collect(data.get("templates") or [], url, "n8n.io", keywords, limit)

    async def discover_url(
        self,
        url: str,
        schema: dict[str, Any] | None = None,
        prompt: str = GALLERY_PROMPT,
        *,
        keywords: list[str] | None = None,
        limit: int = 50,
    ) -> list[DiscoveredTemplate]:
        """Scrape a user-supplied page with ``schema`` (the gallery schema by default).

        The extracted payload may hold a ``templates`` list or describe a
        single template itself.
        """
        data = await self.firecrawl.extract_structured(url, schema or GALLERY_SCHEMA, prompt)
        items = data.get("templates")
        if not isinstance(items, list):
            items = [data]
        return self._collect(items, url, "custom", keywords, limit)

    def _collect(
        self,
        raw_items: list[Any],
        page_url: str,
        source: str,
        keywords: list[str] | None,
        limit: int,
    ) -> list[DiscoveredTemplate]:
        query = keywords if keywords is not None else self.keywords

        entries: list[DiscoveredTemplate] = []
        for item in raw_items[:limit]:
            entry = self._to_entry(item, page_url, source)
            if entry is None:
                continue
            entry.relevance_score = relevance_score(entry, query)
            entries.append(entry)

        entries.sort(key=lambda e: e.relevance_score, reverse=True)
        for entry in entries:
            self.store.record_discovery(entry)

        logger.info("Discovered %d templates from %s", len(entries), page_url)
        return entries

    @staticmethod
    def _to_entry(item: Any, page_url: str, source: str) -> DiscoveredTemplate | None:
        if not isinstance(item, dict):
            return None
        title = item.get("title") or item.get("name")
        if not title:
            return None

        url = item.get("url") or ""
        if url:
            url = urljoin(page_url, url)
        try:
            return DiscoveredTemplate(
                source=source,
                external_id=url.rstrip("/").rsplit("/", 1)[-1] if url else "",
                external_url=url,
                title=title,
                description=item.get("description"),
                author=item.get("author"),
                tags=item.get("tags"),
            )
        except ValidationError as exc:
            logger.warning("Skipping malformed entry %r from %s: %s", title, page_url, exc)
            return None
