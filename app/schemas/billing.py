from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from app.models.billing import BillStatus
from app.models.payment_log import PaymentEventType
from app.schemas.common import ApiModel


class BillRead(ApiModel):
    id: UUID
    customer_id: UUID
    customer_name: str
    customer_code: int
    period_start: datetime
    period_end: datetime
    prior_balance: int
    period_charge: int
    cylinder_count: int
    total_due: int
    paid_amount: int
    remaining_amount: int
    status: BillStatus
    invoice_id: UUID | None = None
    invoice_number: str | None = None
    created_at: datetime
    updated_at: datetime


class PaymentApply(ApiModel):
    bill_id: UUID
    amount: int = Field(gt=0)
    paid_on: datetime
    method: str = Field(min_length=1, max_length=60)
    notes: str | None = None

    @field_validator("method")
    @classmethod
    def strip_method(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Payment method is required")
        return value


class PaymentRead(ApiModel):
    id: UUID
    bill_id: UUID
    amount: int
    paid_on: datetime
    method: str
    notes: str | None = None
    created_at: datetime


class ResyncStats(ApiModel):
    customers_processed: int
    bills_created: int
    bills_updated: int
    errors: int


class ResyncResponse(ApiModel):
    success: bool
    message: str
    stats: ResyncStats
    errors: list[str] | None = None


class RegenerateStats(ApiModel):
    bills_deleted: int
    payments_deleted: int
    customers_processed: int
    bills_created: int
    errors: int


class RegenerateResponse(ApiModel):
    success: bool
    message: str
    stats: RegenerateStats
    errors: list[str] | None = None


class InvoiceGenerateRequest(ApiModel):
    bill_ids: list[UUID] = Field(min_length=1)


class InvoiceGenerateResult(ApiModel):
    bill_id: UUID
    success: bool
    invoice_id: UUID | None = None
    invoice_number: str | None = None
    error: str | None = None


class InvoiceGenerateResponse(ApiModel):
    success: bool
    results: list[InvoiceGenerateResult]
    message: str


class InvoiceRead(ApiModel):
    id: UUID
    bill_id: UUID
    customer_id: UUID
    invoice_number: str
    customer_name: str
    customer_code: int | None = None
    period_start: datetime
    period_end: datetime
    total_due: int
    paid_amount: int
    remaining_amount: int
    issued_by: str | None = None
    issued_at: datetime


class PaymentLogRead(ApiModel):
    id: UUID
    event_type: PaymentEventType
    bill_id: UUID | None = None
    payment_id: UUID | None = None
    customer_name: str
    customer_code: int | None = None
    amount: int | None = None
    details: str | None = None
    bill_start_date: datetime | None = None
    bill_end_date: datetime | None = None
    performed_at: datetime
