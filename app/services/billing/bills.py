"""Bill Aggregator and bill management.

A Bill is one customer's statement for one UTC calendar month. Its figures
are always re-derived from delivered entries in the Delivery Ledger.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session, selectinload

from app.models.billing import Bill, BillStatus, Invoice, Payment
from app.models.customer import Customer
from app.models.delivery import DeliveryEntry, DeliveryType
from app.models.payment_log import PaymentEventType
from app.services.billing.payment_logs import record, record_for_bill
from app.services.billing._common import (
    format_money,
    format_period,
    month_bounds,
    name_matches,
    paid_total,
)
from app.services.common import apply_ordering, apply_pagination, as_utc, coerce_uuid, validate_enum
from app.services.errors import ForbiddenError, NotFoundError, ValidationError
from app.services.response import ListResponseMixin
from app.services.tenancy import TenantScope

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


def billable_entries(
    db: Session,
    scope: TenantScope,
    customer: Customer,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[DeliveryEntry]:
    """Delivered entries for a customer, matched by id first and then by name.

    Entries carrying no customer id fall back to their denormalized name
    (bare name or ``"<code> · <name>"`` label). Each fallback match is logged.
    """
    base = scope.filter(db.query(DeliveryEntry), DeliveryEntry).filter(
        DeliveryEntry.delivery_type == DeliveryType.delivered
    )
    if start is not None:
        base = base.filter(DeliveryEntry.delivery_date >= start)
    if end is not None:
        base = base.filter(DeliveryEntry.delivery_date <= end)

    entries = base.filter(DeliveryEntry.customer_id == customer.id).all()
    for entry in base.filter(DeliveryEntry.customer_id.is_(None)).all():
        if name_matches(customer, entry.customer_name):
            logger.info(
                "Delivery entry %s matched to customer %s by name %r",
                entry.id,
                customer.id,
                entry.customer_name,
            )
            entries.append(entry)
    return sorted(entries, key=lambda entry: as_utc(entry.delivery_date))


def billable_months(db: Session, scope: TenantScope, customer: Customer) -> list[datetime]:
    """First instant of every month holding billable activity or a bill, ascending.

    Months whose bill outlived its deliveries are included so the bill gets
    re-derived to zero.
    """
    months = {
        month_bounds(entry.delivery_date)[0]
        for entry in billable_entries(db, scope, customer)
    }
    bill_starts = (
        scope.filter(db.query(Bill.period_start), Bill)
        .filter(Bill.customer_id == customer.id)
        .all()
    )
    months.update(as_utc(start) for (start,) in bill_starts)
    return sorted(months)


def _prior_balance(db: Session, scope: TenantScope, customer: Customer, start: datetime) -> int:
    previous = (
        scope.filter(db.query(Bill), Bill)
        .filter(Bill.customer_id == customer.id)
        .filter(Bill.period_end < start)
        .order_by(Bill.period_end.desc())
        .first()
    )
    if previous is None:
        return 0
    return max(0, previous.total_due - paid_total(db, previous.id))


def _ensure_covers_payments(db: Session, bill: Bill, total_due: int) -> None:
    paid = paid_total(db, bill.id)
    if paid > total_due:
        raise ValidationError(
            f"Bill for {format_period(bill)} already has payments of {format_money(paid)}, "
            f"which would exceed its new total of {format_money(total_due)}. "
            "Please delete payments first."
        )


def sync_customer_month(
    db: Session, scope: TenantScope, customer: Customer, month: datetime
) -> str | None:
    """Create or refresh the customer's Bill for the month containing ``month``.

    Returns ``created``, ``updated``, ``unchanged`` or None when the month has
    no billable activity and no bill. An existing bill whose deliveries are
    gone is brought down to a zero period charge. Raises ValidationError when
    the refreshed total would fall below the payments already recorded. The
    caller owns the transaction; the bill and its audit entry are flushed
    together so later months in the same session see them as the previous
    bill.
    """
    start, end = month_bounds(month)
    entries = billable_entries(db, scope, customer, start, end)
    bill = (
        scope.filter(db.query(Bill), Bill)
        .filter(Bill.customer_id == customer.id)
        .filter(Bill.period_start == start)
        .filter(Bill.period_end == end)
        .first()
    )
    if not entries and bill is None:
        return None

    period_charge = sum(entry.amount or 0 for entry in entries)
    cylinder_count = sum(entry.quantity or 0 for entry in entries)
    prior_balance = _prior_balance(db, scope, customer, start)

    if bill is not None:
        figures = (bill.prior_balance, bill.period_charge, bill.cylinder_count)
        if figures == (prior_balance, period_charge, cylinder_count):
            return UNCHANGED
        _ensure_covers_payments(db, bill, prior_balance + period_charge)
        bill.prior_balance = prior_balance
        bill.period_charge = period_charge
        bill.cylinder_count = cylinder_count
        record_for_bill(
            db,
            scope,
            PaymentEventType.bill_updated,
            bill,
            customer,
            amount=bill.total_due,
            details=(
                f"Bill updated from {len(entries)} cylinder delivery(ies) "
                f"totaling {cylinder_count} cylinder(s)."
            ),
        )
        db.flush()
        logger.info(
            "Updated bill %s for customer %s (%s)",
            bill.id,
            customer.customer_code,
            format_period(bill),
        )
        return UPDATED

    if period_charge <= 0 and cylinder_count <= 0:
        return None
    bill = Bill(
        tenant_id=scope.stamp(),
        customer_id=customer.id,
        period_start=start,
        period_end=end,
        prior_balance=prior_balance,
        period_charge=period_charge,
        cylinder_count=cylinder_count,
    )
    db.add(bill)
    db.flush()
    record_for_bill(
        db,
        scope,
        PaymentEventType.bill_generated,
        bill,
        customer,
        amount=bill.total_due,
        details=(
            f"Bill auto-generated from {len(entries)} cylinder delivery(ies) "
            f"totaling {cylinder_count} cylinder(s)."
        ),
    )
    db.flush()
    logger.info(
        "Generated bill %s for customer %s (%s)",
        bill.id,
        customer.customer_code,
        format_period(bill),
    )
    return CREATED


def _get_scoped(db: Session, scope: TenantScope, bill_id) -> Bill:
    bill = db.get(
        Bill,
        coerce_uuid(bill_id),
        options=[selectinload(Bill.payments), selectinload(Bill.customer)],
    )
    if not bill:
        raise NotFoundError("Bill")
    scope.ensure_owns(bill, "Bill")
    return bill


class Bills(ListResponseMixin):
    @staticmethod
    def sync(db: Session, scope: TenantScope, customer_id: str, month: datetime):
        customer = db.get(Customer, coerce_uuid(customer_id))
        if not customer:
            raise NotFoundError("Customer")
        scope.ensure_owns(customer, "Customer")
        outcome = sync_customer_month(db, scope, customer, month)
        db.commit()
        return outcome

    @staticmethod
    def get(db: Session, scope: TenantScope, bill_id: str):
        return _get_scoped(db, scope, bill_id)

    @staticmethod
    def list(
        db: Session,
        scope: TenantScope,
        customer_id: str | None,
        status: str | None,
        period: datetime | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = scope.filter(db.query(Bill), Bill).options(
            selectinload(Bill.payments), selectinload(Bill.customer), selectinload(Bill.invoice)
        )
        if customer_id:
            query = query.filter(Bill.customer_id == coerce_uuid(customer_id))
        if period is not None:
            start, _ = month_bounds(period)
            query = query.filter(Bill.period_start == start)
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "period_start": Bill.period_start,
                "created_at": Bill.created_at,
                "updated_at": Bill.updated_at,
            },
        )
        if status:
            # Status is derived from payments, so it is filtered after loading.
            wanted = validate_enum(status.upper(), BillStatus, "status")
            bills = [bill for bill in query.all() if bill.status == wanted]
            return bills[offset : offset + limit]
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def delete(db: Session, scope: TenantScope, bill_id: str):
        bill = _get_scoped(db, scope, bill_id)
        if bill.invoice is not None:
            raise ForbiddenError(
                "Cannot delete bill. This bill has an invoice generated. "
                "Please delete the invoice first."
            )
        customer = bill.customer
        record_for_bill(
            db,
            scope,
            PaymentEventType.bill_deleted,
            bill,
            customer,
            amount=bill.total_due,
            details=f"Bill deleted for {customer.name}",
        )
        db.delete(bill)
        db.commit()
        logger.info("Deleted bill %s for customer %s", bill.id, customer.customer_code)


def delete_all(db: Session, scope: TenantScope) -> tuple[int, int]:
    """Remove every invoice and bill of the tenant. Returns (bills, invoices)."""
    invoices = scope.filter(db.query(Invoice), Invoice).all()
    for invoice in invoices:
        record(
            db,
            scope,
            PaymentEventType.invoice_deleted,
            customer_name=invoice.customer_name,
            customer_code=invoice.customer_code,
            amount=invoice.total_due,
            details=f"Invoice {invoice.invoice_number} deleted",
        )
    scope.filter(db.query(Invoice), Invoice).delete(synchronize_session="fetch")
    bills_deleted = scope.filter(db.query(Bill), Bill).delete(synchronize_session="fetch")
    return bills_deleted, len(invoices)


def delete_all_payments(db: Session, scope: TenantScope) -> int:
    return scope.filter(db.query(Payment), Payment).delete(synchronize_session="fetch")
