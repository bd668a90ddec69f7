import uuid
from datetime import datetime, timezone

import pytest

from app.models.billing import Bill, Invoice, Payment
from app.models.payment_log import PaymentEventType, PaymentLogEntry
from app.schemas.billing import PaymentApply
from app.services import billing as billing_service
from app.services.errors import ForbiddenError, NotFoundError, ValidationError
from app.services.tenancy import TenantScope
from tests.helpers import as_utc, utc


def _today() -> str:
    return f"{datetime.now(timezone.utc):%Y%m%d}"


def _events(db_session, event_type):
    return db_session.query(PaymentLogEntry).filter(PaymentLogEntry.event_type == event_type).all()


def test_generate_numbers_invoices_per_day(db_session, scope, make_customer, billed):
    first = billed(make_customer("Arham"), utc(2024, 1, 10), 1500)
    second = billed(make_customer("Bilal"), utc(2024, 1, 12), 800)

    result = billing_service.invoices.generate(db_session, scope, [first.id, second.id])

    assert result["success"] is True
    assert result["message"] == "Successfully generated 2 of 2 invoices"
    numbers = [item["invoice_number"] for item in result["results"]]
    assert numbers == [f"INV-{_today()}-00001", f"INV-{_today()}-00002"]
    logs = _events(db_session, PaymentEventType.invoice_generated)
    assert len(logs) == 2
    assert any(
        log.details == f"Invoice {numbers[0]} generated for bill period 2024-01-01 to 2024-01-31"
        for log in logs
    )


def test_invoice_snapshots_bill_figures(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    billing_service.payments.apply(
        db_session,
        scope,
        PaymentApply(bill_id=bill.id, amount=1200, paid_on=utc(2024, 1, 15), method="Cash"),
    )

    result = billing_service.invoices.generate(db_session, scope, [str(bill.id)])
    invoice = billing_service.invoices.get(db_session, scope, result["results"][0]["invoice_number"])

    assert invoice.customer_name == "Arham"
    assert invoice.customer_code == customer.customer_code
    assert invoice.total_due == 5000
    assert invoice.paid_amount == 1200
    assert invoice.remaining_amount == 3800
    assert as_utc(invoice.period_start) == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_generate_rejects_already_invoiced_bills(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    billing_service.invoices.generate(db_session, scope, [bill.id])

    with pytest.raises(ValidationError) as exc:
        billing_service.invoices.generate(db_session, scope, [bill.id])
    assert str(bill.id) in exc.value.detail
    assert db_session.query(Invoice).count() == 1


def test_generate_requires_every_bill_in_tenant(db_session, scope, customer, billed, other_tenant):
    bill = billed(customer, utc(2024, 1, 10), 5000)

    with pytest.raises(NotFoundError):
        billing_service.invoices.generate(db_session, scope, [bill.id, uuid.uuid4()])

    other_scope = TenantScope(tenant_id=other_tenant.id)
    with pytest.raises(NotFoundError):
        billing_service.invoices.generate(db_session, other_scope, [bill.id])
    assert db_session.query(Invoice).count() == 0


def test_delete_invoice_lifts_the_lock(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    result = billing_service.invoices.generate(db_session, scope, [bill.id])
    number = result["results"][0]["invoice_number"]

    response = billing_service.invoices.delete(db_session, scope, number)

    assert response == {"success": True, "message": f"Invoice {number} deleted successfully"}
    (log,) = _events(db_session, PaymentEventType.invoice_deleted)
    assert log.details == f"Invoice {number} deleted"
    payment = billing_service.payments.apply(
        db_session,
        scope,
        PaymentApply(bill_id=bill.id, amount=500, paid_on=utc(2024, 1, 20), method="Cash"),
    )
    assert payment.amount == 500


def test_invoice_lookup_by_id_and_number(db_session, scope, customer, billed, other_tenant):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    result = billing_service.invoices.generate(db_session, scope, [bill.id])
    invoice_id = result["results"][0]["invoice_id"]
    number = result["results"][0]["invoice_number"]

    assert billing_service.invoices.get(db_session, scope, str(invoice_id)).invoice_number == number
    assert billing_service.invoices.get(db_session, scope, number).id == invoice_id
    with pytest.raises(NotFoundError):
        billing_service.invoices.get(db_session, scope, "INV-19990101-00001")
    with pytest.raises(ForbiddenError):
        billing_service.invoices.get(
            db_session, TenantScope(tenant_id=other_tenant.id), str(invoice_id)
        )


def test_download_logs_event(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    result = billing_service.invoices.generate(db_session, scope, [bill.id])
    number = result["results"][0]["invoice_number"]

    invoice = billing_service.invoices.download(db_session, scope, number)

    assert invoice.invoice_number == number
    (log,) = _events(db_session, PaymentEventType.invoice_downloaded)
    assert log.customer_name == "Arham"


def test_bill_delete_is_blocked_by_invoice(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    billing_service.payments.apply(
        db_session,
        scope,
        PaymentApply(bill_id=bill.id, amount=1000, paid_on=utc(2024, 1, 15), method="Cash"),
    )
    result = billing_service.invoices.generate(db_session, scope, [bill.id])

    with pytest.raises(ForbiddenError):
        billing_service.bills.delete(db_session, scope, str(bill.id))

    billing_service.invoices.delete(db_session, scope, result["results"][0]["invoice_number"])
    billing_service.bills.delete(db_session, scope, str(bill.id))

    assert db_session.query(Bill).count() == 0
    assert db_session.query(Payment).count() == 0
    (log,) = _events(db_session, PaymentEventType.bill_deleted)
    assert log.details == "Bill deleted for Arham"
