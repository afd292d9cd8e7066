from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, Field

_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "Name", "full_name", "fullName", "Full Name"),
    "title": ("title", "Title", "job_title", "jobTitle", "Job Title"),
    "organization_name": (
        "organization_name",
        "organizationName",
        "company",
        "Company",
        "company_name",
        "Company Name",
    ),
    "organization_website_url": (
        "organization_website_url",
        "website",
        "Website",
        "company_website",
        "Company Website",
    ),
    "estimated_num_employees": (
        "estimated_num_employees",
        "company_size",
        "Company Size",
        "size",
        "Size",
    ),
    "email": ("email", "Email", "email_address", "emailAddress", "Email Address"),
    "linkedin_url": (
        "linkedin_url",
        "linkedinUrl",
        "linkedin",
        "LinkedIn",
        "LinkedIn URL",
        "LinkedIn_URL",
    ),
    "industry": ("industry", "Industry"),
    "country": ("country", "Country", "location", "Location"),
    "conversion_status": ("conversion_status", "Status", "status"),
    "enrichment": ("enrichment", "outreach", "Outreach", "AI_Generated_Email"),
    "processed_at": ("processed_at", "Processed_At"),
}

DEFAULT_COUNTRY = "Singapore"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class Contact(BaseModel):
    """Canonical contact record used by every pipeline stage."""

    name: str = ""
    title: str = ""
    organization_name: str = ""
    organization_website_url: str = ""
    estimated_num_employees: str = ""
    email: str = ""
    email_verified: str = "N"
    linkedin_url: str = ""
    industry: str = ""
    country: str = DEFAULT_COUNTRY
    conversion_status: str = "Pending"
    enrichment: str | None = None
    processed_at: str | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "Contact":
        """Map a scraped or uploaded row with arbitrary field names."""

        values: dict[str, Any] = {}
        for field_name, aliases in _FIELD_ALIASES.items():
            for alias in aliases:
                if alias in raw and _text(raw[alias]):
                    values[field_name] = _text(raw[alias])
                    break
        values["email_verified"] = "Y" if values.get("email") else "N"
        values.setdefault("country", DEFAULT_COUNTRY)
        return cls(**values)


class SearchCriteria(BaseModel):
    job_titles: list[str] = Field(default_factory=list)
    company_sizes: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=lambda: [DEFAULT_COUNTRY])


class ExclusionRules(BaseModel):
    domains: list[str] = Field(default_factory=list)
    industries: list[str] = Field(default_factory=list)


class EmailOptions(BaseModel):
    subject: str | None = None
    template: str | None = None
    use_ai_generation: bool = False


class WorkflowParams(BaseModel):
    """Parameters accepted by a workflow start request."""

    criteria: SearchCriteria
    max_records: int | None = Field(default=None, ge=0)
    enrich: bool = True
    chunk_size: int | None = Field(default=None, ge=1, le=1000)
    exclusions: ExclusionRules = Field(default_factory=ExclusionRules)
    save_to_store: bool = False
    send_emails: bool = False
    email: EmailOptions = Field(default_factory=EmailOptions)
    session_id: str | None = None
    campaign_type: str = "manual"

    @property
    def is_campaign(self) -> bool:
        return bool(self.session_id) and (self.save_to_store or self.send_emails)
