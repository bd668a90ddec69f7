"""Delivery Ledger: cylinder deliveries and returns.

Recording, editing or deleting a delivered entry re-runs the bill
aggregation for the affected customer and month in the same transaction.
A sync that would leave a bill's payments above its new total rejects the
ledger change; any other sync failure is logged and the ledger write
still commits.
"""

import logging
from datetime import timedelta

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.models.delivery import DeliveryEntry, DeliveryType
from app.schemas.delivery import DeliveryEntryCreate, DeliveryEntryUpdate
from app.services.billing._common import name_matches, resolve_customer, split_label
from app.services.billing.bills import sync_customer_month
from app.services.common import apply_ordering, apply_pagination, as_utc, coerce_uuid, validate_enum
from app.services.errors import NotFoundError, ValidationError
from app.services.response import ListResponseMixin
from app.services.tenancy import TenantScope

logger = logging.getLogger(__name__)


def _sync_month(db: Session, scope: TenantScope, customer: Customer | None, month, raw_name):
    if customer is None:
        logger.warning(
            "Skipping bill sync: delivery customer %r does not resolve to a customer",
            raw_name,
        )
        return None
    try:
        with db.begin_nested():
            return sync_customer_month(db, scope, customer, month)
    except ValidationError:
        raise
    except Exception:
        logger.exception(
            "Bill sync failed for customer %s after ledger change", customer.customer_code
        )
        return None


def _commit_with_sync(db: Session, scope: TenantScope, targets: list) -> None:
    """Flush the pending ledger change, re-sync each (customer, month) and commit."""
    db.flush()
    seen = set()
    try:
        for customer, month, raw_name in targets:
            key = (customer.id if customer else raw_name, as_utc(month).strftime("%Y-%m"))
            if key in seen:
                continue
            seen.add(key)
            _sync_month(db, scope, customer, month, raw_name)
    except ValidationError:
        db.rollback()
        raise
    db.commit()


def _resolve_for_entry(db: Session, scope: TenantScope, entry: DeliveryEntry) -> Customer | None:
    if entry.customer_id is not None:
        return db.get(Customer, entry.customer_id)
    return resolve_customer(db, scope, None, entry.customer_name)


def _entry_amount(delivery_type: DeliveryType, quantity: int, unit_price: int, amount) -> int:
    if delivery_type != DeliveryType.delivered:
        return 0
    if amount is None:
        return unit_price * quantity
    return amount


def _quantity_total(db: Session, scope: TenantScope, delivery_type, customer, raw_name) -> int:
    query = scope.filter(db.query(DeliveryEntry), DeliveryEntry).filter(
        DeliveryEntry.delivery_type == delivery_type
    )
    total = 0
    for entry in query.all():
        if customer is not None:
            mine = entry.customer_id == customer.id or (
                entry.customer_id is None and name_matches(customer, entry.customer_name)
            )
        else:
            mine = entry.customer_id is None and (
                split_label(entry.customer_name)[1].casefold()
                == split_label(raw_name)[1].casefold()
            )
        if mine:
            total += entry.quantity or 0
    return total


def _matching_returns(db: Session, scope: TenantScope, entry: DeliveryEntry):
    """Received entries recorded against a delivery: same day, label, price and customer."""
    day_start = as_utc(entry.delivery_date).replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1) - timedelta(microseconds=1)
    _, bare_name = split_label(entry.customer_name)
    names = {entry.customer_name, bare_name}
    query = scope.filter(db.query(DeliveryEntry), DeliveryEntry).filter(
        DeliveryEntry.delivery_type == DeliveryType.received,
        DeliveryEntry.delivery_date >= day_start,
        DeliveryEntry.delivery_date <= day_end,
        DeliveryEntry.unit_price == entry.unit_price,
    )
    if entry.cylinder_label is None:
        query = query.filter(DeliveryEntry.cylinder_label.is_(None))
    else:
        query = query.filter(DeliveryEntry.cylinder_label == entry.cylinder_label)
    by_name = DeliveryEntry.customer_name.in_(names)
    if entry.customer_id is not None:
        query = query.filter(
            or_(
                DeliveryEntry.customer_id == entry.customer_id,
                and_(DeliveryEntry.customer_id.is_(None), by_name),
            )
        )
    else:
        query = query.filter(by_name)
    return query.all()


class Deliveries(ListResponseMixin):
    @staticmethod
    def create(db: Session, scope: TenantScope, payload: DeliveryEntryCreate):
        customer = resolve_customer(db, scope, payload.customer_id, payload.customer_name)
        if payload.customer_id is not None and customer is None:
            raise NotFoundError("Customer")

        entry = DeliveryEntry(
            tenant_id=scope.stamp(),
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else payload.customer_name.strip(),
            delivery_type=payload.delivery_type,
            delivery_date=as_utc(payload.delivery_date),
            cylinder_label=payload.cylinder_label,
            quantity=payload.quantity,
            unit_price=payload.unit_price,
            amount=_entry_amount(
                payload.delivery_type, payload.quantity, payload.unit_price, payload.amount
            ),
            notes=payload.notes,
        )
        db.add(entry)
        targets = []
        if entry.delivery_type == DeliveryType.delivered:
            targets.append((customer, entry.delivery_date, entry.customer_name))
        _commit_with_sync(db, scope, targets)
        db.refresh(entry)
        logger.info(
            "Recorded %s entry %s qty=%s amount=%s",
            entry.delivery_type.value,
            entry.id,
            entry.quantity,
            entry.amount,
        )
        return entry

    @staticmethod
    def get(db: Session, scope: TenantScope, entry_id: str):
        entry = db.get(DeliveryEntry, coerce_uuid(entry_id))
        if not entry:
            raise NotFoundError("Delivery entry")
        scope.ensure_owns(entry, "Delivery entry")
        return entry

    @staticmethod
    def list(
        db: Session,
        scope: TenantScope,
        customer_id: str | None,
        delivery_type: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = scope.filter(db.query(DeliveryEntry), DeliveryEntry)
        if customer_id:
            query = query.filter(DeliveryEntry.customer_id == coerce_uuid(customer_id))
        if delivery_type:
            query = query.filter(
                DeliveryEntry.delivery_type
                == validate_enum(delivery_type.lower(), DeliveryType, "delivery_type")
            )
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {"delivery_date": DeliveryEntry.delivery_date, "created_at": DeliveryEntry.created_at},
        )
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def update(db: Session, scope: TenantScope, entry_id: str, payload: DeliveryEntryUpdate):
        entry = Deliveries.get(db, scope, entry_id)
        data = payload.model_dump(exclude_unset=True)
        previous_customer = _resolve_for_entry(db, scope, entry)
        previous_target = (previous_customer, entry.delivery_date, entry.customer_name)
        was_delivered = entry.delivery_type == DeliveryType.delivered

        if "customer_id" in data or "customer_name" in data:
            raw_name = data.get("customer_name") or entry.customer_name
            customer = resolve_customer(db, scope, data.get("customer_id"), raw_name)
            if data.get("customer_id") is not None and customer is None:
                raise NotFoundError("Customer")
            entry.customer_id = customer.id if customer else None
            entry.customer_name = customer.name if customer else raw_name.strip()
        else:
            customer = previous_customer

        for key in ("delivery_type", "quantity", "unit_price"):
            if data.get(key) is not None:
                setattr(entry, key, data[key])
        for key in ("cylinder_label", "notes"):
            if key in data:
                setattr(entry, key, data[key])
        if data.get("delivery_date") is not None:
            entry.delivery_date = as_utc(data["delivery_date"])
        entry.amount = _entry_amount(
            entry.delivery_type, entry.quantity, entry.unit_price, data.get("amount")
        )

        if entry.delivery_type == DeliveryType.received:
            db.flush()
            delivered = _quantity_total(
                db, scope, DeliveryType.delivered, customer, entry.customer_name
            )
            received = _quantity_total(
                db, scope, DeliveryType.received, customer, entry.customer_name
            )
            if received > delivered:
                quantity = entry.quantity
                db.rollback()
                raise ValidationError(
                    f"Cannot receive {quantity} cylinders. Total received ({received}) "
                    f"cannot exceed total delivered ({delivered})."
                )

        targets = []
        if was_delivered:
            targets.append(previous_target)
        if entry.delivery_type == DeliveryType.delivered:
            targets.append((customer, entry.delivery_date, entry.customer_name))
        _commit_with_sync(db, scope, targets)
        db.refresh(entry)
        logger.info("Updated delivery entry %s", entry.id)
        return entry

    @staticmethod
    def delete(db: Session, scope: TenantScope, entry_id: str):
        entry = Deliveries.get(db, scope, entry_id)
        targets = []
        returns = []
        if entry.delivery_type == DeliveryType.delivered:
            customer = _resolve_for_entry(db, scope, entry)
            targets.append((customer, entry.delivery_date, entry.customer_name))
            returns = _matching_returns(db, scope, entry)
        for returned in returns:
            db.delete(returned)
        db.delete(entry)
        _commit_with_sync(db, scope, targets)
        logger.info(
            "Deleted delivery entry %s with %s matching return(s)", entry_id, len(returns)
        )


deliveries = Deliveries()
