from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from leadflow.core.exclusions import apply_exclusions
from leadflow.core.logs import redact
from leadflow.core.schema import Contact, ExclusionRules
from leadflow.domain.jobs import utcnow_iso
from leadflow.infrastructure.collaborators import Enricher
from leadflow.infrastructure.retry import RetryExecutor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChunkResult:
    leads: list[Contact] = field(default_factory=list)
    filtered_count: int = 0
    enriched: bool = False
    enrichment_error: str | None = None


class ChunkProcessor:
    """Filter one batch of contacts and enrich what survives.

    The enricher only ever sees a single filtered chunk. When it fails the
    chunk carries on unenriched.
    """

    def __init__(
        self,
        enricher: Enricher | None,
        retry: RetryExecutor,
        *,
        timestamp: Callable[[], str] = utcnow_iso,
    ) -> None:
        self._enricher = enricher
        self._retry = retry
        self._timestamp = timestamp

    async def process(
        self,
        contacts: list[Contact],
        rules: ExclusionRules,
        enrich: bool,
        *,
        index: int = 1,
        total: int = 1,
    ) -> ChunkResult:
        kept, dropped = apply_exclusions(contacts, rules)
        result = ChunkResult(leads=kept, filtered_count=dropped)
        if dropped:
            logger.debug("Chunk %d/%d: excluded %d contact(s)", index, total, dropped)

        if enrich and kept and self._enricher is not None:
            enricher = self._enricher
            try:
                result.leads = await self._retry.execute(
                    lambda: enricher.enrich(kept),
                    operation=f"Enrich chunk {index}/{total}",
                )
                result.enriched = True
            except Exception as exc:
                result.enrichment_error = redact(exc)
                logger.warning(
                    "Enrichment failed for chunk %d/%d, continuing without it: %s",
                    index,
                    total,
                    result.enrichment_error,
                )
                result.leads = kept

        stamp = self._timestamp()
        result.leads = [lead.model_copy(update={"processed_at": stamp}) for lead in result.leads]
        return result
