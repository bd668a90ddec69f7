"""Append-only audit trail of billing and payment lifecycle events.

Rows carry a denormalized snapshot of customer and period so history stays
readable after the Bill or Customer changes or disappears. There are no
foreign keys to bills or payments for the same reason.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base


class PaymentEventType(enum.Enum):
    bill_generated = "BILL_GENERATED"
    bill_updated = "BILL_UPDATED"
    bill_deleted = "BILL_DELETED"
    payment_received = "PAYMENT_RECEIVED"
    partial_payment = "PARTIAL_PAYMENT"
    invoice_generated = "INVOICE_GENERATED"
    invoice_downloaded = "INVOICE_DOWNLOADED"
    invoice_deleted = "INVOICE_DELETED"


class PaymentLogEntry(Base):
    __tablename__ = "payment_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True
    )
    event_type: Mapped[PaymentEventType] = mapped_column(
        Enum(PaymentEventType), nullable=False, index=True
    )
    bill_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)
    payment_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    customer_name: Mapped[str] = mapped_column(String(160), nullable=False, index=True)
    customer_code: Mapped[int | None] = mapped_column(Integer)
    amount: Mapped[int | None] = mapped_column(Integer)
    details: Mapped[str | None] = mapped_column(Text)
    bill_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    bill_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
