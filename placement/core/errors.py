"""Error taxonomy for lifecycle transitions.

Every error here is raised synchronously, before the transaction commits and
before any side effect is dispatched. Side-effect failures never appear here;
they stop at the dispatcher boundary.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""

    field: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


class LifecycleError(Exception):
    """Base class for errors surfaced to the caller of an engine operation."""

    code = "lifecycle_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailed(LifecycleError):
    """Malformed or incomplete input to a transition."""

    code = "validation_error"

    def __init__(self, errors: List[FieldError]):
        message = errors[0].message if errors else "Invalid input"
        super().__init__(message, {"errors": [e.as_dict() for e in errors]})
        self.errors = errors


class GuardViolation(LifecycleError):
    """Transition attempted from a state/actor combination outside the graph."""

    code = "forbidden"


class ConflictError(LifecycleError):
    """The transition was already done, or lost a race with another writer."""

    code = "conflict"


class ConstraintViolation(ConflictError):
    """Duplicate-key conflict reported by the entity store."""

    code = "constraint_violation"


class NotFoundError(LifecycleError):
    """A referenced entity does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any = None):
        super().__init__(f"{entity} not found", {"entity": entity, "id": str(entity_id)})
        self.entity = entity
        self.entity_id = entity_id


class AdmissionDenied(LifecycleError):
    """AdmissionControl refused a new application."""

    code = "admission_denied"

    def __init__(
        self,
        reason: str,
        message: str,
        used: Optional[int] = None,
        limit: Optional[int] = None,
    ):
        super().__init__(message, {"reason": reason, "used": used, "limit": limit})
        self.reason = reason
        self.used = used
        self.limit = limit


class QuotaExceeded(AdmissionDenied):
    """The student has used every application slot their entitlement allows."""

    code = "quota_exceeded"

    def __init__(self, used: int, limit: int):
        super().__init__("limit", "Application limit reached", used=used, limit=limit)
