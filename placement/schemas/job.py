"""Job posting transition inputs and validators."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from placement.core.errors import FieldError
from placement.utils.constants import JOB_TYPES
from placement.utils.helpers import empty_to_none, to_naive_utc, utcnow

CONTENT_FIELDS = (
    "title",
    "description",
    "requirements",
    "location",
    "job_type",
    "salary_range",
    "deadline",
)


class JobDraft(BaseModel):
    """Draft content. Every field is optional; only maximum lengths apply."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    requirements: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=100)
    job_type: Optional[str] = None
    salary_range: Optional[str] = Field(None, max_length=50)
    deadline: Optional[datetime] = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return empty_to_none(v)

    @field_validator("job_type")
    @classmethod
    def known_job_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in JOB_TYPES:
            raise ValueError(f"Job type must be one of: {', '.join(JOB_TYPES)}")
        return v

    @field_validator("deadline")
    @classmethod
    def naive_deadline(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v is not None else None


class JobSubmission(BaseModel):
    """Complete content required to leave ``draft``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=50, max_length=5000)
    requirements: str = Field(min_length=1, max_length=2000)
    location: str = Field(min_length=2, max_length=100)
    job_type: str
    salary_range: str = Field(min_length=1, max_length=50)
    deadline: datetime

    @field_validator("job_type")
    @classmethod
    def known_job_type(cls, v: str) -> str:
        if v not in JOB_TYPES:
            raise ValueError(f"Job type must be one of: {', '.join(JOB_TYPES)}")
        return v

    @field_validator("deadline")
    @classmethod
    def future_deadline(cls, v: datetime) -> datetime:
        v = to_naive_utc(v)
        if v <= utcnow():
            raise ValueError("Deadline must be in the future")
        return v


# Human-readable messages keyed by (field, pydantic error type)
_MESSAGES = {
    "title": "Title must be 5-100 characters",
    "description": "Description must be 50-5000 characters",
    "requirements": "Requirements are required (max 2000 characters)",
    "location": "Location must be 2-100 characters",
    "salary_range": "Salary range is required (max 50 characters)",
    "job_type": f"Job type must be one of: {', '.join(JOB_TYPES)}",
    "deadline": "Application deadline is required",
}


@dataclass
class ValidationResult:
    """Typed outcome of a validator: ok, or a list of field errors."""

    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _to_field_errors(exc: ValidationError) -> List[FieldError]:
    errors = []
    for err in exc.errors():
        name = str(err["loc"][0]) if err["loc"] else "__root__"
        if err["type"] == "value_error":
            # Custom validator messages come prefixed with "Value error, "
            message = str(err["msg"]).removeprefix("Value error, ")
        else:
            message = _MESSAGES.get(name, err["msg"])
        errors.append(FieldError(name, message))
    return errors


def validate_draft(data: dict) -> "tuple[Optional[JobDraft], ValidationResult]":
    """Validate draft content with the relaxed rules."""
    try:
        return JobDraft.model_validate(data), ValidationResult()
    except ValidationError as exc:
        return None, ValidationResult(_to_field_errors(exc))


def validate_submission(job) -> ValidationResult:
    """Run full validation against a job posting's current content."""
    data = {name: getattr(job, name) for name in CONTENT_FIELDS}
    try:
        JobSubmission.model_validate(data)
    except ValidationError as exc:
        return ValidationResult(_to_field_errors(exc))
    return ValidationResult()
