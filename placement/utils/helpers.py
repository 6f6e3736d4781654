"""Helper utilities."""

import re
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union


def utcnow() -> datetime:
    """Naive UTC now; all stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC, leaving naive values alone."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def empty_to_none(value):
    """Treat blank strings as missing values."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


def normalize_recipients(recipients: Union[str, Iterable[Optional[str]], None]) -> List[str]:
    """Flatten, trim and drop empty email recipients."""
    if recipients is None:
        return []
    if isinstance(recipients, str):
        recipients = [recipients]
    return [r.strip() for r in recipients if r and r.strip()]


def extract_email_domain(address: str) -> str:
    """Domain part of an address, accepting the "Name <user@host>" form."""
    raw = (address or "").strip()
    if not raw:
        return ""
    match = re.search(r"<([^>]+)>", raw)
    email = (match.group(1) if match else raw).strip()
    if "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].lower()


def as_uuid(value) -> Optional[uuid.UUID]:
    """Coerce ids that travelled through JSON payloads back to UUID."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))
