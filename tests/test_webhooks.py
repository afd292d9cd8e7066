from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from leadflow.core.schema import Contact, EmailOptions
from leadflow.domain.errors import CollaboratorError
from leadflow.infrastructure.webhooks import WebhookDispatchClient, WebhookEnrichmentClient


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_enrichment_round_trips_leads():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content.decode("utf-8"))
        leads = [dict(lead, outreach=f"Hi {lead['name']}") for lead in body["leads"]]
        return httpx.Response(200, json={"leads": leads})

    client = WebhookEnrichmentClient("https://hooks.test/enrich", http_client=_http(handler))
    enriched = asyncio.run(client.enrich([Contact(name="Ana", email="ana@a.com")]))

    assert enriched[0].enrichment == "Hi Ana"
    assert enriched[0].email == "ana@a.com"


def test_enrichment_without_leads_is_collaborator_error():
    client = WebhookEnrichmentClient(
        "https://hooks.test/enrich",
        http_client=_http(lambda request: httpx.Response(200, json={"ok": True})),
    )
    with pytest.raises(CollaboratorError):
        asyncio.run(client.enrich([Contact(name="Ana")]))


def test_dispatch_posts_options_and_reads_counts():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content.decode("utf-8")))
        return httpx.Response(200, json={"success": True, "sent": 1, "failed": 0})

    client = WebhookDispatchClient("https://hooks.test/send", http_client=_http(handler))
    outcome = asyncio.run(
        client.dispatch([Contact(name="Ana", email="ana@a.com")], EmailOptions(subject="Hello", template="Hi {{name}}"))
    )

    assert outcome.success and outcome.sent == 1
    assert captured["subject"] == "Hello"
    assert captured["template"] == "Hi {{name}}"
    assert captured["use_ai_generation"] is False
