"""Email delivery result."""

from typing import Optional

from pydantic import BaseModel


class EmailResult(BaseModel):
    status: str  # success, skipped, error
    reason: Optional[str] = None
    fallback_base_url: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == "success"
