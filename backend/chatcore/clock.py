"""UTC timestamps.

DuckDB ``TIMESTAMP`` columns store naive UTC values. Records handed to the
rest of the core always carry an explicit UTC offset, so payloads serialize
with a zone designator and aware and naive values are never compared.
"""
from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive value read from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db(value: datetime) -> datetime:
    """Naive UTC for binding to a ``TIMESTAMP`` parameter."""
    return as_utc(value).replace(tzinfo=None)


UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]
