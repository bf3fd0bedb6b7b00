"""
User API schemas.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime

    # Plain `timestamp` columns come back naive; they are stored as UTC.
    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
