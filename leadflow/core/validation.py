from __future__ import annotations

from leadflow.core.schema import WorkflowParams


class ValidationError(Exception):
    """Raised when request parameters are semantically invalid."""


def validate_workflow_params(params: WorkflowParams) -> None:
    criteria = params.criteria
    if not [title for title in criteria.job_titles if title.strip()]:
        raise ValidationError("Job titles are required and must be a non-empty array")
    if not [size for size in criteria.company_sizes if size.strip()]:
        raise ValidationError("Company sizes are required and must be a non-empty array")
    if params.session_id is not None and not params.session_id.strip():
        raise ValidationError("session_id must not be blank")
