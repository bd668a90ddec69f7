from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, Field

from app.schemas.common import ApiModel


class TenantCreate(ApiModel):
    name: str = Field(min_length=1, max_length=160)
    contact_email: EmailStr | None = None
    notes: str | None = None


class TenantRead(ApiModel):
    id: UUID
    name: str
    contact_email: str | None = None
    is_active: bool
    created_at: datetime
