"""Column helpers shared by the table models."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime
from sqlmodel import Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_field(index: bool = False) -> Any:
    """A timezone-aware ``DateTime`` column defaulting to now (UTC)."""
    return Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
        index=index,
    )
