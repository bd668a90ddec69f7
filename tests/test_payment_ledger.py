import importlib
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session

from app.models.billing import Bill, BillStatus, Payment
from app.models.payment_log import PaymentEventType, PaymentLogEntry
from app.schemas.billing import PaymentApply
from app.services import billing as billing_service
from app.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.services.tenancy import TenantScope
from tests.helpers import utc

payments_module = importlib.import_module("app.services.billing.payments")


def _pay(db_session, scope, bill, amount, method="Cash", notes=None):
    return billing_service.payments.apply(
        db_session,
        scope,
        PaymentApply(
            bill_id=bill.id, amount=amount, paid_on=utc(2024, 2, 5), method=method, notes=notes
        ),
    )


def _log_types(db_session, bill):
    rows = (
        db_session.query(PaymentLogEntry)
        .filter(PaymentLogEntry.bill_id == bill.id)
        .filter(PaymentLogEntry.payment_id.isnot(None))
        .all()
    )
    return sorted(row.event_type.value for row in rows), rows


def test_full_settlement(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)

    payment = _pay(db_session, scope, bill, 5000, notes="Paid at shop")
    db_session.refresh(bill)

    assert payment.amount == 5000
    assert bill.status == BillStatus.paid
    assert bill.remaining_amount == 0
    types, rows = _log_types(db_session, bill)
    assert types == ["PAYMENT_RECEIVED"]
    assert rows[0].payment_id == payment.id
    assert rows[0].details == "Full payment received via Cash. Notes: Paid at shop"


def test_partial_then_full(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)

    _pay(db_session, scope, bill, 2000, method="Bank transfer")
    db_session.refresh(bill)
    assert bill.status == BillStatus.partially_paid
    assert bill.remaining_amount == 3000
    partial = (
        db_session.query(PaymentLogEntry)
        .filter(PaymentLogEntry.event_type == PaymentEventType.partial_payment)
        .one()
    )
    assert partial.details == (
        "Partial payment of Rs 2,000 received via Bank transfer. Remaining: Rs 3,000."
    )

    _pay(db_session, scope, bill, 3000)
    db_session.refresh(bill)
    assert bill.status == BillStatus.paid
    types, _ = _log_types(db_session, bill)
    assert types == ["PARTIAL_PAYMENT", "PAYMENT_RECEIVED"]


def test_over_payment_is_rejected_with_remaining_amount(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    _pay(db_session, scope, bill, 4000)

    with pytest.raises(ValidationError) as exc:
        _pay(db_session, scope, bill, 2000)

    assert exc.value.status_code == 400
    assert "Rs 1,000" in exc.value.detail
    assert db_session.query(Payment).filter(Payment.bill_id == bill.id).count() == 1


def test_status_only_moves_forward(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 3000)
    seen = [bill.status]
    for amount in (1000, 1000, 1000):
        _pay(db_session, scope, bill, amount)
        db_session.refresh(bill)
        seen.append(bill.status)

    order = [BillStatus.not_paid, BillStatus.partially_paid, BillStatus.paid]
    ranks = [order.index(status) for status in seen]
    assert ranks == sorted(ranks)
    assert seen[0] == BillStatus.not_paid
    assert seen[-1] == BillStatus.paid
    assert bill.paid_amount <= bill.total_due


def test_fully_paid_bill_accepts_no_more_money(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 1000)
    _pay(db_session, scope, bill, 1000)

    with pytest.raises(ValidationError):
        _pay(db_session, scope, bill, 1)


def test_invoice_locks_payments(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    billing_service.invoices.generate(db_session, scope, [bill.id])

    for amount in (1, 5000, 999999):
        with pytest.raises(ForbiddenError) as exc:
            _pay(db_session, scope, bill, amount)
        assert "delete the invoice first" in exc.value.detail
    assert db_session.query(Payment).filter(Payment.bill_id == bill.id).count() == 0


def test_missing_bill_is_not_found(db_session, scope):
    import uuid

    with pytest.raises(NotFoundError):
        billing_service.payments.apply(
            db_session,
            scope,
            PaymentApply(bill_id=uuid.uuid4(), amount=10, paid_on=utc(2024, 1, 1), method="Cash"),
        )


def test_other_tenant_cannot_pay_bill(db_session, customer, billed, other_tenant):
    bill = billed(customer, utc(2024, 1, 10), 5000)

    with pytest.raises(ForbiddenError):
        _pay(db_session, TenantScope(tenant_id=other_tenant.id), bill, 100)


def test_concurrent_payment_becomes_conflict(db_session, scope, customer, billed, monkeypatch):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    bill_id = bill.id
    load_bill = payments_module._load_bill_for_update

    def _load_then_race(db, requested_id):
        loaded = load_bill(db, requested_id)
        # Release the reader's savepoint but keep the version it read.
        monkeypatch.setattr(db, "expire_on_commit", False)
        db.commit()
        rival = Session(bind=db.bind, autoflush=False, join_transaction_mode="create_savepoint")
        try:
            rival_bill = rival.get(Bill, bill_id)
            rival.add(
                Payment(
                    tenant_id=rival_bill.tenant_id,
                    bill_id=bill_id,
                    amount=3000,
                    paid_on=utc(2024, 2, 1),
                    method="Bank transfer",
                )
            )
            rival_bill.updated_at = datetime.now(timezone.utc)
            rival.commit()
        finally:
            rival.close()
        return loaded

    monkeypatch.setattr(payments_module, "_load_bill_for_update", _load_then_race)
    with pytest.raises(ConflictError) as exc:
        _pay(db_session, scope, bill, 4000)
    assert exc.value.status_code == 409
    monkeypatch.undo()

    amounts = [
        payment.amount
        for payment in db_session.query(Payment).filter(Payment.bill_id == bill_id).all()
    ]
    assert amounts == [3000]


def test_payment_bumps_bill_version(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    version = bill.version

    _pay(db_session, scope, bill, 500)
    db_session.refresh(bill)

    assert bill.version == version + 1


def test_list_payments_for_bill(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    _pay(db_session, scope, bill, 1000)
    _pay(db_session, scope, bill, 500)

    result = billing_service.payments.list_response(
        db_session, scope, str(bill.id), "created_at", "desc", 50, 0
    )
    assert result["count"] == 2
    assert sorted(payment.amount for payment in result["items"]) == [500, 1000]


def test_delete_payment_reopens_balance(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    payment = _pay(db_session, scope, bill, 5000)

    billing_service.payments.delete(db_session, scope, str(payment.id))

    db_session.refresh(bill)
    assert bill.paid_amount == 0
    assert bill.status == BillStatus.not_paid
    entry = (
        db_session.query(PaymentLogEntry)
        .filter(PaymentLogEntry.payment_id == payment.id)
        .filter(PaymentLogEntry.details == "Payment of Rs 5,000 deleted")
        .one()
    )
    assert entry.event_type == PaymentEventType.payment_received
    assert entry.customer_name == "Arham"


def test_delete_payment_is_blocked_by_invoice(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    payment = _pay(db_session, scope, bill, 2000)
    billing_service.invoices.generate(db_session, scope, [bill.id])

    with pytest.raises(ForbiddenError) as exc:
        billing_service.payments.delete(db_session, scope, str(payment.id))
    assert exc.value.detail == (
        "Cannot delete payment. This bill has an invoice generated. "
        "Please delete the invoice first."
    )
    assert db_session.query(Payment).filter(Payment.id == payment.id).count() == 1


def test_other_tenant_cannot_delete_payment(db_session, customer, billed, other_tenant, scope):
    bill = billed(customer, utc(2024, 1, 10), 5000)
    payment = _pay(db_session, scope, bill, 2000)

    with pytest.raises(ForbiddenError):
        billing_service.payments.delete(
            db_session, TenantScope(tenant_id=other_tenant.id), str(payment.id)
        )
