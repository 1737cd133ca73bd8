"""Async n8n REST API client: creates and activates adapted workflows."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from clixen.errors import N8nError

logger = logging.getLogger(__name__)

# Fields the public API accepts on create; everything else (id, active, tags, meta...) is rejected
_CREATE_FIELDS = ("name", "nodes", "connections", "settings", "staticData")


def prepare_workflow_payload(workflow: dict[str, Any]) -> dict[str, Any]:
    """Strip a workflow document down to what POST /workflows accepts."""
    payload = {k: workflow[k] for k in _CREATE_FIELDS if k in workflow}
    payload.setdefault("settings", {})
    return payload


class N8nClient:
    """Thin async wrapper over ``/api/v1/workflows``.

    Use as an async context manager so the underlying connection pool is closed.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = base_url or os.environ.get("N8N_API_URL", "")
        api_key = api_key or os.environ.get("N8N_API_KEY", "")
        if not base_url:
            raise N8nError("n8n base URL not configured (set n8n.base_url or N8N_API_URL)")
        if not api_key:
            raise N8nError("N8N_API_KEY environment variable not set")

        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=f"{self.base_url}/api/v1",
            headers={"X-N8N-API-KEY": api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "N8nClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise N8nError(f"n8n {method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise N8nError(f"n8n {method} {path} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            body = response.text[:500]
            raise N8nError(
                f"n8n {method} {path} returned HTTP {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )
        if not response.content:
            return {}
        return response.json()

    async def create_workflow(self, workflow: dict[str, Any]) -> dict[str, Any]:
        """Create a workflow and return the stored document (including ``id``)."""
        created = await self._request("POST", "/workflows", json=prepare_workflow_payload(workflow))
        logger.info("Created n8n workflow %s (%s)", created.get("id"), created.get("name"))
        return created

    async def activate_workflow(self, workflow_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/workflows/{workflow_id}/activate")

    async def get_workflow(self, workflow_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/workflows/{workflow_id}")

    async def delete_workflow(self, workflow_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/workflows/{workflow_id}")
