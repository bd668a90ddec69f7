"""Common helper functions for billing services.

Month windows, money formatting and the two-stage customer resolver shared
by the aggregator, the payment ledger and the reconciliation jobs.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.models.billing import Payment
from app.models.customer import Customer
from app.services.common import as_utc, coerce_uuid
from app.services.tenancy import TenantScope

logger = logging.getLogger(__name__)

LABEL_SEPARATOR = " · "


def month_bounds(value: datetime) -> tuple[datetime, datetime]:
    """Return the first and last instant of the UTC calendar month of ``value``."""
    value = as_utc(value)
    start = datetime(value.year, value.month, 1, tzinfo=timezone.utc)
    if value.month == 12:
        next_start = datetime(value.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        next_start = datetime(value.year, value.month + 1, 1, tzinfo=timezone.utc)
    return start, next_start - timedelta(microseconds=1)


def format_money(amount: int) -> str:
    return f"{settings.currency_symbol} {amount:,}"


def format_period(bill) -> str:
    return (
        f"{as_utc(bill.period_start):%Y-%m-%d} to {as_utc(bill.period_end):%Y-%m-%d}"
    )


def paid_total(db: Session, bill_id) -> int:
    """Sum of payments recorded against a bill, read from the store."""
    total = (
        db.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.bill_id == bill_id)
        .scalar()
    )
    return int(total or 0)


def split_label(raw_name: str | None) -> tuple[int | None, str]:
    """Split a ``"<code> · <name>"`` display label into code and bare name.

    Plain names come back with no code.
    """
    name = (raw_name or "").strip()
    if LABEL_SEPARATOR in name:
        head, _, tail = name.partition(LABEL_SEPARATOR)
        if head.strip().isdigit():
            return int(head.strip()), tail.strip()
    return None, name


def name_matches(customer: Customer, raw_name: str | None) -> bool:
    code, name = split_label(raw_name)
    if not name or name.casefold() != customer.name.casefold():
        return False
    return code is None or code == customer.customer_code


def resolve_customer(
    db: Session,
    scope: TenantScope,
    customer_id=None,
    customer_name: str | None = None,
) -> Customer | None:
    """Find the customer an entry refers to: by id first, then by name.

    Returns None when neither reference resolves within the tenant.
    """
    if customer_id is not None:
        customer = db.get(Customer, coerce_uuid(customer_id))
        if customer is not None and scope.owns(customer):
            return customer
        return None
    code, name = split_label(customer_name)
    if not name:
        return None
    query = scope.filter(db.query(Customer), Customer).filter(
        func.lower(Customer.name) == name.lower()
    )
    if code is not None:
        query = query.filter(Customer.customer_code == code)
    customer = query.order_by(Customer.customer_code.asc()).first()
    if customer is not None:
        logger.info(
            "Resolved customer name %r to customer %s (code %s)",
            customer_name,
            customer.id,
            customer.customer_code,
        )
    return customer
