"""People-search URL construction for the scrape provider."""
from __future__ import annotations

from urllib.parse import quote

from leadflow.core.schema import SearchCriteria
from leadflow.core.validation import ValidationError

BASE_URL = "https://app.apollo.io/#/people?page=1"

DEFAULT_FILTERS = (
    "contactEmailStatusV2[]=verified",
    "existFields[]=person_title_normalized",
    "existFields[]=organization_domain",
    "sortAscending=true",
    "sortByField=sanitized_organization_name_unanalyzed",
)


class ApolloQueryBuilder:
    async def build(self, criteria: SearchCriteria) -> str:
        titles = [title.strip() for title in criteria.job_titles if title.strip()]
        sizes = [size.strip() for size in criteria.company_sizes if size.strip()]
        if not titles:
            raise ValidationError("Job titles are required and must be a non-empty array")
        if not sizes:
            raise ValidationError("Company sizes are required and must be a non-empty array")

        filters = list(DEFAULT_FILTERS)
        for location in criteria.locations:
            if location.strip():
                filters.append(f"personLocations[]={quote(location.strip(), safe='')}")
        filters.extend(f"personTitles[]={quote(title, safe='')}" for title in titles)
        filters.extend(
            f"organizationNumEmployeesRanges[]={quote(size.replace('-', ',', 1), safe='')}" for size in sizes
        )
        return f"{BASE_URL}&{'&'.join(filters)}"
