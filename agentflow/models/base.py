from datetime import datetime, UTC
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


class Timestamped(SQLModel):
    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
