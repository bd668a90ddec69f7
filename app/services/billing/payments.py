"""Payment Ledger: apply payments against bills under the financial lock."""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.metrics import observe_payment
from app.models.billing import Bill, Payment
from app.models.payment_log import PaymentEventType
from app.schemas.billing import PaymentApply
from app.services.billing.payment_logs import record_for_bill
from app.services.billing._common import format_money
from app.services.common import apply_ordering, apply_pagination, as_utc, coerce_uuid
from app.services.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from app.services.response import ListResponseMixin
from app.services.tenancy import TenantScope

logger = logging.getLogger(__name__)


def _load_bill_for_update(db: Session, bill_id) -> Bill | None:
    return (
        db.query(Bill)
        .options(
            selectinload(Bill.payments),
            selectinload(Bill.customer),
            selectinload(Bill.invoice),
        )
        .filter(Bill.id == bill_id)
        .with_for_update(of=Bill)
        .populate_existing()
        .first()
    )


class Payments(ListResponseMixin):
    @staticmethod
    def apply(db: Session, scope: TenantScope, payload: PaymentApply) -> Payment:
        bill = _load_bill_for_update(db, payload.bill_id)
        if not bill:
            observe_payment("not_found")
            raise NotFoundError("Bill")
        scope.ensure_owns(bill, "Bill")
        if bill.invoice is not None:
            observe_payment("locked")
            raise ForbiddenError(
                "Cannot add payment. This bill has an invoice generated. "
                "Please delete the invoice first to modify payments."
            )

        previously_paid = bill.paid_amount
        remaining = bill.total_due - previously_paid
        if payload.amount > remaining:
            observe_payment("rejected")
            raise ValidationError(
                f"Payment amount ({format_money(payload.amount)}) cannot exceed "
                f"remaining amount ({format_money(max(remaining, 0))})."
            )

        payment = Payment(
            id=uuid.uuid4(),
            tenant_id=scope.stamp(),
            bill=bill,
            amount=payload.amount,
            paid_on=as_utc(payload.paid_on),
            method=payload.method,
            notes=payload.notes,
        )
        db.add(payment)
        # Bumps the bill's version so a concurrent writer fails its update.
        bill.updated_at = datetime.now(timezone.utc)

        new_paid = previously_paid + payload.amount
        new_remaining = bill.total_due - new_paid
        customer = bill.customer
        if new_remaining <= 0:
            event_type = PaymentEventType.payment_received
            details = f"Full payment received via {payload.method}."
            if payload.notes:
                details = f"{details} Notes: {payload.notes}"
        else:
            event_type = PaymentEventType.partial_payment
            details = (
                f"Partial payment of {format_money(payload.amount)} received via "
                f"{payload.method}. Remaining: {format_money(new_remaining)}."
            )
        record_for_bill(
            db,
            scope,
            event_type,
            bill,
            customer,
            payment_id=payment.id,
            amount=payload.amount,
            details=details,
        )
        try:
            db.commit()
        except StaleDataError as exc:
            db.rollback()
            observe_payment("conflict")
            raise ConflictError(
                "The bill was modified by another request. Please retry."
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            observe_payment("error")
            raise InternalError("Failed to record payment") from exc
        db.refresh(payment)
        observe_payment("applied")
        logger.info(
            "Payment %s of %s applied to bill %s (%s)",
            payment.id,
            payload.amount,
            bill.id,
            event_type.value,
        )
        return payment

    @staticmethod
    def get(db: Session, scope: TenantScope, payment_id: str):
        payment = db.get(Payment, coerce_uuid(payment_id))
        if not payment:
            raise NotFoundError("Payment")
        scope.ensure_owns(payment, "Payment")
        return payment

    @staticmethod
    def delete(db: Session, scope: TenantScope, payment_id: str) -> None:
        payment = Payments.get(db, scope, payment_id)
        bill = _load_bill_for_update(db, payment.bill_id)
        if bill.invoice is not None:
            raise ForbiddenError(
                "Cannot delete payment. This bill has an invoice generated. "
                "Please delete the invoice first."
            )
        amount = payment.amount
        # The event set has no deletion type for payments; the details say what happened.
        record_for_bill(
            db,
            scope,
            PaymentEventType.payment_received,
            bill,
            bill.customer,
            payment_id=payment.id,
            amount=amount,
            details=f"Payment of {format_money(amount)} deleted",
        )
        bill.payments.remove(payment)
        db.delete(payment)
        bill.updated_at = datetime.now(timezone.utc)
        try:
            db.commit()
        except StaleDataError as exc:
            db.rollback()
            raise ConflictError(
                "The bill was modified by another request. Please retry."
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise InternalError("Failed to delete payment") from exc
        logger.info("Payment %s of %s deleted from bill %s", payment_id, amount, bill.id)

    @staticmethod
    def list(
        db: Session,
        scope: TenantScope,
        bill_id: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = scope.filter(db.query(Payment), Payment)
        if bill_id:
            query = query.filter(Payment.bill_id == coerce_uuid(bill_id))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {"paid_on": Payment.paid_on, "created_at": Payment.created_at},
        )
        return apply_pagination(query, limit, offset).all()
