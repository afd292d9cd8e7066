"""Integration with the Apify actor API used to scrape people searches."""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from leadflow.domain.errors import RemoteJobExpiredError

from .collaborators import LeadPage, ScrapeResult, ScrapeStatus

logger = logging.getLogger(__name__)

RUNNING_STATES = {"READY", "RUNNING"}
FAILED_STATES = {"FAILED", "ABORTED", "ABORTING", "TIMED-OUT", "TIMING-OUT"}


class ApifyScrapeClient:
    """Start, poll and read actor runs on the Apify platform."""

    def __init__(
        self,
        token: str,
        *,
        actor_id: str = "code_crafter~apollo-io-scraper",
        api_base: str = "https://api.apify.com/v2",
        inline_limit: int = 250,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._token = token
        self._actor_id = actor_id
        self._api_base = api_base.rstrip("/")
        self._inline_limit = inline_limit
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._token}",
            "User-Agent": "leadflow/1.0",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.request(method, f"{self._api_base}{path}", headers=self._headers(), **kwargs)
        response.raise_for_status()
        return response

    @staticmethod
    def _data(response: httpx.Response) -> dict[str, Any]:
        payload = response.json()
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, dict) else {}

    async def _run(self, run_id: str) -> dict[str, Any]:
        try:
            response = await self._request("GET", f"/actor-runs/{run_id}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise RemoteJobExpiredError("Scrape job not found - may have expired") from exc
            raise
        return self._data(response)

    async def _items(self, dataset_id: str, offset: int, limit: int) -> tuple[list[dict[str, Any]], int | None]:
        response = await self._request(
            "GET",
            f"/datasets/{dataset_id}/items",
            params={"clean": "true", "format": "json", "offset": offset, "limit": limit},
        )
        items = response.json()
        if not isinstance(items, list):
            items = []
        total_header = response.headers.get("X-Apify-Pagination-Total")
        total = int(total_header) if total_header and total_header.isdigit() else None
        return [item for item in items if isinstance(item, dict)], total

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def start(self, url: str, limit: int) -> str:
        response = await self._request(
            "POST",
            f"/acts/{self._actor_id}/runs",
            json={"cleanOutput": True, "totalRecords": limit, "url": url},
        )
        run_id = self._data(response).get("id")
        if not run_id:
            raise ValueError("scrape provider did not return a run id")
        logger.info("Started scrape run %s for %d records", run_id, limit)
        return str(run_id)

    async def status(self, remote_job_id: str) -> ScrapeStatus:
        run = await self._run(remote_job_id)
        state = str(run.get("status") or "").upper()
        if state == "SUCCEEDED":
            return ScrapeStatus(status="completed", is_complete=True)
        if state in FAILED_STATES:
            return ScrapeStatus(
                status="failed",
                is_complete=True,
                error=str(run.get("statusMessage") or state.lower()),
            )
        return ScrapeStatus(status="running", is_complete=False)

    async def result(self, remote_job_id: str) -> ScrapeResult:
        run = await self._run(remote_job_id)
        dataset_id = run.get("defaultDatasetId")
        if not dataset_id:
            return ScrapeResult(count=0, leads=[], metadata={"run_id": remote_job_id})

        dataset = self._data(await self._request("GET", f"/datasets/{dataset_id}"))
        count = int(dataset.get("itemCount") or dataset.get("cleanItemCount") or 0)
        metadata = {"run_id": remote_job_id, "dataset_id": dataset_id, "total_available": count}
        if count > self._inline_limit:
            return ScrapeResult(count=count, session_id=str(dataset_id), metadata=metadata)

        leads, _ = await self._items(str(dataset_id), 0, max(count, 1))
        return ScrapeResult(count=len(leads), leads=leads, metadata=metadata)

    async def fetch_page(self, session_id: str, offset: int, limit: int) -> LeadPage:
        leads, total = await self._items(session_id, offset, limit)
        if total is None:
            has_more = len(leads) == limit
        else:
            has_more = offset + len(leads) < total
        return LeadPage(leads=leads, has_more=has_more and bool(leads))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["ApifyScrapeClient"]
