"""Event Log: append-only audit entries for billing and payment events.

``record`` only adds the entry to the session; the caller's commit makes it
durable together with the change it describes.
"""

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.payment_log import PaymentEventType, PaymentLogEntry
from app.services.common import apply_ordering, apply_pagination, coerce_uuid, validate_enum
from app.services.response import ListResponseMixin
from app.services.tenancy import TenantScope


def record(
    db: Session,
    scope: TenantScope,
    event_type: PaymentEventType,
    *,
    customer_name: str,
    customer_code: int | None = None,
    bill=None,
    payment_id=None,
    amount: int | None = None,
    details: str | None = None,
) -> PaymentLogEntry:
    entry = PaymentLogEntry(
        tenant_id=scope.stamp(),
        event_type=event_type,
        bill_id=bill.id if bill is not None else None,
        payment_id=payment_id,
        customer_name=customer_name,
        customer_code=customer_code,
        amount=amount,
        details=details,
        bill_start_date=bill.period_start if bill is not None else None,
        bill_end_date=bill.period_end if bill is not None else None,
    )
    db.add(entry)
    return entry


def record_for_bill(
    db: Session,
    scope: TenantScope,
    event_type: PaymentEventType,
    bill,
    customer,
    **kwargs,
) -> PaymentLogEntry:
    return record(
        db,
        scope,
        event_type,
        customer_name=customer.name,
        customer_code=customer.customer_code,
        bill=bill,
        **kwargs,
    )


class PaymentLogs(ListResponseMixin):
    @staticmethod
    def list(
        db: Session,
        scope: TenantScope,
        customer_name: str | None,
        event_type: str | None,
        bill_id: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = scope.filter(db.query(PaymentLogEntry), PaymentLogEntry)
        if customer_name:
            query = query.filter(
                func.lower(PaymentLogEntry.customer_name) == customer_name.strip().lower()
            )
        if event_type:
            query = query.filter(
                PaymentLogEntry.event_type
                == validate_enum(event_type.upper(), PaymentEventType, "event_type")
            )
        if bill_id:
            query = query.filter(PaymentLogEntry.bill_id == coerce_uuid(bill_id))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "performed_at": PaymentLogEntry.performed_at,
                "customer_name": PaymentLogEntry.customer_name,
            },
        )
        return apply_pagination(query, limit, offset).all()
