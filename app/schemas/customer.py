from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.common import ApiModel


class CustomerCreate(ApiModel):
    name: str = Field(min_length=1, max_length=160)
    phone: str | None = Field(default=None, max_length=40)
    address: str | None = Field(default=None, max_length=255)
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Customer name is required")
        if " · " in value:
            raise ValueError("Customer name cannot contain the ' · ' label separator")
        return value


class CustomerRead(ApiModel):
    id: UUID
    customer_code: int
    name: str
    phone: str | None = None
    address: str | None = None
    notes: str | None = None
    created_at: datetime
