"""Invoice issuance. An invoice's existence is the financial lock on its bill."""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.models.billing import Bill, Invoice
from app.models.payment_log import PaymentEventType
from app.services import numbering
from app.services.billing.payment_logs import record, record_for_bill
from app.services.billing._common import format_period
from app.services.common import coerce_uuid, parse_uuid
from app.services.errors import NotFoundError, ValidationError
from app.services.tenancy import TenantScope

logger = logging.getLogger(__name__)


def _issue(db: Session, scope: TenantScope, bill: Bill, issued_by: str | None) -> Invoice:
    issued_at = datetime.now(timezone.utc)
    customer = bill.customer
    invoice = Invoice(
        tenant_id=scope.stamp(),
        bill=bill,
        customer_id=bill.customer_id,
        invoice_number=numbering.next_invoice_number(db, scope, issued_at),
        customer_name=customer.name,
        customer_code=customer.customer_code,
        period_start=bill.period_start,
        period_end=bill.period_end,
        total_due=bill.total_due,
        paid_amount=bill.paid_amount,
        remaining_amount=bill.remaining_amount,
        issued_by=issued_by,
        issued_at=issued_at,
    )
    db.add(invoice)
    # Bumps the bill's version so an in-flight payment on it fails with a conflict.
    bill.updated_at = issued_at
    db.flush()
    record_for_bill(
        db,
        scope,
        PaymentEventType.invoice_generated,
        bill,
        customer,
        amount=invoice.total_due,
        details=f"Invoice {invoice.invoice_number} generated for bill period {format_period(bill)}",
    )
    db.flush()
    return invoice


def _find(db: Session, scope: TenantScope, id_or_number: str) -> Invoice:
    query = db.query(Invoice)
    invoice_id = parse_uuid(id_or_number)
    if invoice_id is not None:
        query = query.filter(
            or_(Invoice.id == invoice_id, Invoice.invoice_number == id_or_number)
        )
    else:
        query = scope.filter(query, Invoice).filter(Invoice.invoice_number == id_or_number)
    invoice = query.first()
    if not invoice:
        raise NotFoundError("Invoice")
    scope.ensure_owns(invoice, "Invoice")
    return invoice


class Invoices:
    @staticmethod
    def generate(db: Session, scope: TenantScope, bill_ids: list, issued_by: str | None = None):
        unique_ids = list(dict.fromkeys(coerce_uuid(bill_id) for bill_id in bill_ids))
        bills = (
            scope.filter(db.query(Bill), Bill)
            .options(
                selectinload(Bill.payments),
                selectinload(Bill.customer),
                selectinload(Bill.invoice),
            )
            .filter(Bill.id.in_(unique_ids))
            .all()
        )
        if len(bills) != len(unique_ids):
            raise NotFoundError(detail="One or more bills not found")
        invoiced = [str(bill.id) for bill in bills if bill.invoice is not None]
        if invoiced:
            raise ValidationError(
                f"Invoices already exist for bills: {', '.join(invoiced)}"
            )

        by_id = {bill.id: bill for bill in bills}
        results = []
        for bill_id in unique_ids:
            bill = by_id[bill_id]
            try:
                with db.begin_nested():
                    invoice = _issue(db, scope, bill, issued_by)
                results.append(
                    {
                        "bill_id": bill.id,
                        "success": True,
                        "invoice_id": invoice.id,
                        "invoice_number": invoice.invoice_number,
                    }
                )
            except SQLAlchemyError as exc:
                logger.exception("Invoice generation failed for bill %s", bill.id)
                results.append({"bill_id": bill.id, "success": False, "error": str(exc)})
        db.commit()
        generated = sum(1 for result in results if result["success"])
        logger.info("Generated %s of %s invoices", generated, len(results))
        return {
            "success": generated > 0,
            "results": results,
            "message": f"Successfully generated {generated} of {len(results)} invoices",
        }

    @staticmethod
    def get(db: Session, scope: TenantScope, id_or_number: str):
        return _find(db, scope, id_or_number)

    @staticmethod
    def download(db: Session, scope: TenantScope, id_or_number: str):
        """Return the invoice snapshot; the download audit entry is best-effort."""
        invoice = _find(db, scope, id_or_number)
        try:
            with db.begin_nested():
                record(
                    db,
                    scope,
                    PaymentEventType.invoice_downloaded,
                    customer_name=invoice.customer_name,
                    customer_code=invoice.customer_code,
                    amount=invoice.total_due,
                    details=f"Invoice {invoice.invoice_number} downloaded",
                )
            db.commit()
        except SQLAlchemyError:
            logger.warning(
                "Failed to log download of invoice %s", invoice.invoice_number, exc_info=True
            )
        return invoice

    @staticmethod
    def delete(db: Session, scope: TenantScope, id_or_number: str):
        invoice = _find(db, scope, id_or_number)
        number = invoice.invoice_number
        bill = db.get(Bill, invoice.bill_id)
        if bill is not None:
            record_for_bill(
                db,
                scope,
                PaymentEventType.invoice_deleted,
                bill,
                bill.customer,
                amount=invoice.total_due,
                details=f"Invoice {number} deleted",
            )
        else:
            record(
                db,
                scope,
                PaymentEventType.invoice_deleted,
                customer_name=invoice.customer_name,
                customer_code=invoice.customer_code,
                amount=invoice.total_due,
                details=f"Invoice {number} deleted",
            )
        db.delete(invoice)
        db.commit()
        logger.info("Deleted invoice %s", number)
        return {"success": True, "message": f"Invoice {number} deleted successfully"}
