import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class BillStatus(enum.Enum):
    not_paid = "NOT_PAID"
    partially_paid = "PARTIALLY_PAID"
    paid = "PAID"


def derive_status(total_due: int, paid: int) -> BillStatus:
    if paid <= 0:
        return BillStatus.not_paid
    if paid < total_due:
        return BillStatus.partially_paid
    return BillStatus.paid


class Bill(Base):
    """One customer's statement for one calendar month.

    Status is never stored; it is derived from the sum of payments.
    """

    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "customer_id",
            "period_start",
            "period_end",
            name="uq_bills_tenant_customer_period",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True
    )
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    prior_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    period_charge: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cylinder_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    customer = relationship("Customer", back_populates="bills")
    payments = relationship(
        "Payment",
        back_populates="bill",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Payment.paid_on.desc()",
    )
    invoice = relationship("Invoice", back_populates="bill", uselist=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_due(self) -> int:
        return (self.prior_balance or 0) + (self.period_charge or 0)

    @property
    def paid_amount(self) -> int:
        return sum(payment.amount for payment in self.payments)

    @property
    def remaining_amount(self) -> int:
        return self.total_due - self.paid_amount

    @property
    def status(self) -> BillStatus:
        return derive_status(self.total_due, self.paid_amount)

    @property
    def invoice_id(self):
        return self.invoice.id if self.invoice else None

    @property
    def invoice_number(self) -> str | None:
        return self.invoice.invoice_number if self.invoice else None

    @property
    def customer_name(self) -> str | None:
        return self.customer.name if self.customer else None

    @property
    def customer_code(self) -> int | None:
        return self.customer.customer_code if self.customer else None


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True
    )
    bill_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    method: Mapped[str] = mapped_column(String(60), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    bill = relationship("Bill", back_populates="payments")


class Invoice(Base):
    """Numbered snapshot of a Bill; its existence locks the Bill's payments."""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True
    )
    bill_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bills.id"), nullable=False, unique=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(String(80), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(160), nullable=False)
    customer_code: Mapped[int | None] = mapped_column(Integer)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_due: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    paid_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    remaining_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    issued_by: Mapped[str | None] = mapped_column(String(120))
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    bill = relationship("Bill", back_populates="invoice")
