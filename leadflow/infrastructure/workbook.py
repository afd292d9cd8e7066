"""Local spreadsheet master list used as the default lead repository."""
from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from openpyxl import Workbook, load_workbook

from leadflow.core.identity import dedupe, identity_key
from leadflow.core.schema import Contact

from .collaborators import PersistOutcome

logger = logging.getLogger(__name__)

SHEET_TITLE = "Leads"

HEADER = [
    "Name",
    "Title",
    "Company Name",
    "Company Website",
    "Size",
    "Email",
    "Email Verified",
    "LinkedIn URL",
    "Industry",
    "Location",
    "Status",
    "Outreach",
    "Processed_At",
    "Date Added",
]


def _row(contact: Contact, added_at: str) -> list[str]:
    return [
        contact.name,
        contact.title,
        contact.organization_name,
        contact.organization_website_url,
        contact.estimated_num_employees,
        contact.email,
        contact.email_verified,
        contact.linkedin_url,
        contact.industry,
        contact.country,
        contact.conversion_status,
        contact.enrichment or "",
        contact.processed_at or "",
        added_at,
    ]


class WorkbookLeadRepository:
    """Append leads to an ``.xlsx`` master list, skipping known contacts."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def read_contacts(self) -> list[Contact]:
        if not self._path.exists():
            return []
        workbook = load_workbook(self._path, read_only=True, data_only=True)
        try:
            worksheet = workbook[SHEET_TITLE] if SHEET_TITLE in workbook.sheetnames else workbook.active
            rows = worksheet.iter_rows(values_only=True)
            header = next(rows, None)
            if not header:
                return []
            headers = [str(cell).strip() if cell is not None else "" for cell in header]
            contacts = []
            for row in rows:
                if all(cell is None for cell in row):
                    continue
                contacts.append(Contact.from_raw(dict(zip(headers, row))))
            return contacts
        finally:
            workbook.close()

    def _persist_sync(self, leads: list[Contact]) -> PersistOutcome:
        with self._write_lock:
            existing_keys = {identity_key(contact) for contact in self.read_contacts()}
            result = dedupe(leads, existing=existing_keys)

            if self._path.exists():
                workbook = load_workbook(self._path)
                worksheet = workbook[SHEET_TITLE] if SHEET_TITLE in workbook.sheetnames else workbook.active
            else:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                workbook = Workbook()
                worksheet = workbook.active
                worksheet.title = SHEET_TITLE
                worksheet.append(HEADER)

            added_at = datetime.now(timezone.utc).date().isoformat()
            for contact in result.unique:
                worksheet.append(_row(contact, added_at))
            workbook.save(self._path)

        logger.info(
            "Saved %d new lead(s) to %s (%d already present)",
            len(result.unique),
            self._path.name,
            result.removed_count,
        )
        return PersistOutcome(
            success=True,
            id=str(self._path),
            added=len(result.unique),
            skipped=result.removed_count,
        )

    async def persist(self, leads: list[Contact]) -> PersistOutcome:
        return await asyncio.to_thread(self._persist_sync, leads)
