from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from app.models.delivery import DeliveryType
from app.schemas.common import ApiModel


class DeliveryEntryCreate(ApiModel):
    customer_id: UUID | None = None
    customer_name: str | None = Field(default=None, max_length=200)
    delivery_type: DeliveryType = DeliveryType.delivered
    delivery_date: datetime
    cylinder_label: str | None = Field(default=None, max_length=80)
    quantity: int = Field(ge=0)
    unit_price: int = Field(default=0, ge=0)
    amount: int | None = Field(default=None, ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def _require_customer_reference(self):
        if self.customer_id is None and not (self.customer_name or "").strip():
            raise ValueError("Either customerId or customerName is required")
        return self


class DeliveryEntryUpdate(ApiModel):
    customer_id: UUID | None = None
    customer_name: str | None = Field(default=None, max_length=200)
    delivery_type: DeliveryType | None = None
    delivery_date: datetime | None = None
    cylinder_label: str | None = Field(default=None, max_length=80)
    quantity: int | None = Field(default=None, ge=0)
    unit_price: int | None = Field(default=None, ge=0)
    amount: int | None = Field(default=None, ge=0)
    notes: str | None = None


class DeliveryEntryRead(ApiModel):
    id: UUID
    customer_id: UUID | None = None
    customer_name: str
    delivery_type: DeliveryType
    delivery_date: datetime
    cylinder_label: str | None = None
    quantity: int
    unit_price: int
    amount: int
    notes: str | None = None
    created_at: datetime
