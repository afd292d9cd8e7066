"""HTTP webhook adapters for enrichment and outreach dispatch."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from leadflow.core.schema import Contact, EmailOptions
from leadflow.domain.errors import CollaboratorError

from .collaborators import DispatchOutcome

logger = logging.getLogger(__name__)


class _WebhookClient:
    def __init__(self, url: str, *, timeout: float = 120.0, http_client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def _post(self, payload: dict[str, Any]) -> Any:
        response = await self._client.post(self._url, json=payload)
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class WebhookEnrichmentClient(_WebhookClient):
    """Send one chunk of leads to an enrichment webhook and read them back."""

    async def enrich(self, leads: list[Contact]) -> list[Contact]:
        body = await self._post({"leads": [lead.model_dump() for lead in leads]})
        items = body.get("leads") if isinstance(body, dict) else body
        if not isinstance(items, list):
            raise CollaboratorError("enrichment webhook returned no leads")
        enriched = [Contact.from_raw(item) for item in items if isinstance(item, dict)]
        logger.debug("Enrichment webhook returned %d of %d leads", len(enriched), len(leads))
        return enriched


class WebhookDispatchClient(_WebhookClient):
    """Hand the final lead list to an outreach webhook."""

    async def dispatch(self, leads: list[Contact], options: EmailOptions) -> DispatchOutcome:
        body = await self._post(
            {
                "leads": [lead.model_dump() for lead in leads],
                "subject": options.subject,
                "template": options.template,
                "use_ai_generation": options.use_ai_generation,
            }
        )
        if not isinstance(body, dict):
            raise CollaboratorError("dispatch webhook returned an unexpected payload")
        return DispatchOutcome(
            success=bool(body.get("success", True)),
            sent=int(body.get("sent") or 0),
            failed=int(body.get("failed") or 0),
        )
