import importlib

from app.models.billing import Bill, Invoice, Payment
from app.models.payment_log import PaymentEventType, PaymentLogEntry
from app.schemas.billing import PaymentApply
from app.services import billing as billing_service
from app.services.tenancy import TenantScope
from tests.helpers import utc

reconciliation_module = importlib.import_module("app.services.billing.reconciliation")


def _bills(db_session, customer):
    return (
        db_session.query(Bill)
        .filter(Bill.customer_id == customer.id)
        .order_by(Bill.period_start.asc())
        .all()
    )


def _pay(db_session, scope, bill, amount):
    return billing_service.payments.apply(
        db_session,
        scope,
        PaymentApply(bill_id=bill.id, amount=amount, paid_on=utc(2024, 1, 25), method="Cash"),
    )


def test_resync_creates_then_updates(db_session, scope, make_customer, deliver):
    arham = make_customer("Arham")
    bilal = make_customer("Bilal")
    make_customer("Idle customer")
    deliver(arham, utc(2024, 1, 5), 1000)
    deliver(arham, utc(2024, 2, 5), 500)
    deliver(bilal, utc(2024, 2, 9), 700)

    first = billing_service.reconciliation.resync(db_session, scope)

    assert first["success"] is True
    assert first["stats"] == {
        "customers_processed": 3,
        "bills_created": 3,
        "bills_updated": 0,
        "errors": 0,
    }
    assert first["message"] == "Bill resync completed. Created: 3, Updated: 0"
    assert "errors" not in first

    second = billing_service.reconciliation.resync(db_session, scope)
    assert second["stats"]["bills_created"] == 0
    assert second["stats"]["bills_updated"] == 3
    assert len(_bills(db_session, arham)) == 2


def test_resync_carries_forward_unpaid_balance(db_session, scope, customer, deliver):
    deliver(customer, utc(2024, 1, 10), 1500)
    billing_service.reconciliation.resync(db_session, scope)
    (january,) = _bills(db_session, customer)
    _pay(db_session, scope, january, 1000)

    deliver(customer, utc(2024, 2, 10), 800)
    billing_service.reconciliation.resync(db_session, scope)

    january, february = _bills(db_session, customer)
    assert january.paid_amount == 1000
    assert february.prior_balance == 500
    assert february.period_charge == 800
    assert february.total_due == 1300


def test_resync_leaves_payments_and_invoices_alone(db_session, scope, customer, billed):
    bill = billed(customer, utc(2024, 1, 10), 2000)
    _pay(db_session, scope, bill, 2000)
    billing_service.invoices.generate(db_session, scope, [bill.id])

    billing_service.reconciliation.resync(db_session, scope)

    assert db_session.query(Payment).count() == 1
    assert db_session.query(Invoice).count() == 1


def test_regenerate_rebuilds_bills_in_chronological_order(
    db_session, scope, customer, billed, deliver
):
    january = billed(customer, utc(2024, 1, 10), 1000)
    _pay(db_session, scope, january, 600)
    billing_service.invoices.generate(db_session, scope, [january.id])
    deliver(customer, utc(2024, 3, 3), 200)
    deliver(customer, utc(2024, 2, 3), 500)

    result = billing_service.reconciliation.regenerate(db_session, scope)

    assert result["success"] is True
    assert result["stats"] == {
        "bills_deleted": 1,
        "payments_deleted": 1,
        "customers_processed": 1,
        "bills_created": 3,
        "errors": 0,
    }
    assert result["message"] == (
        "Bills regenerated successfully. Deleted: 1 bills and 1 payments, Created: 3 new bills"
    )
    assert db_session.query(Payment).count() == 0
    assert db_session.query(Invoice).count() == 0
    jan, feb, mar = _bills(db_session, customer)
    assert (jan.prior_balance, jan.total_due) == (0, 1000)
    assert (feb.prior_balance, feb.total_due) == (1000, 1500)
    assert (mar.prior_balance, mar.total_due) == (1500, 1700)
    deleted = (
        db_session.query(PaymentLogEntry)
        .filter(PaymentLogEntry.event_type == PaymentEventType.invoice_deleted)
        .count()
    )
    assert deleted == 1


def test_regenerate_isolates_failing_customer(db_session, scope, make_customer, deliver, monkeypatch):
    arham = make_customer("Arham")
    broken = make_customer("Broken")
    zain = make_customer("Zain")
    for customer in (arham, broken, zain):
        deliver(customer, utc(2024, 1, 10), 1000)

    original = reconciliation_module.sync_customer_month

    def _sync(db, scope, customer, month):
        if customer.id == broken.id:
            raise RuntimeError("ledger row is corrupt")
        return original(db, scope, customer, month)

    monkeypatch.setattr(reconciliation_module, "sync_customer_month", _sync)
    result = billing_service.reconciliation.regenerate(db_session, scope)

    assert result["success"] is True
    assert result["stats"]["customers_processed"] == 3
    assert result["stats"]["bills_created"] == 2
    assert result["stats"]["errors"] == 1
    assert result["errors"] == ["Error processing customer Broken (2): ledger row is corrupt"]
    assert len(_bills(db_session, arham)) == 1
    assert len(_bills(db_session, zain)) == 1
    assert _bills(db_session, broken) == []


def test_resync_isolates_failing_customer(db_session, scope, make_customer, deliver, monkeypatch):
    arham = make_customer("Arham")
    broken = make_customer("Broken")
    deliver(arham, utc(2024, 1, 10), 1000)
    deliver(broken, utc(2024, 1, 10), 1000)
    original = reconciliation_module.sync_customer_month

    def _sync(db, scope, customer, month):
        if customer.id == broken.id:
            raise RuntimeError("boom")
        return original(db, scope, customer, month)

    monkeypatch.setattr(reconciliation_module, "sync_customer_month", _sync)
    result = billing_service.reconciliation.resync(db_session, scope)

    assert result["stats"]["bills_created"] == 1
    assert result["errors"] == ["Error syncing customer Broken (2): boom"]


def test_reconciliation_is_tenant_scoped(
    db_session, scope, customer, make_customer, other_tenant, billed, deliver
):
    stranger = make_customer("Arham", owner=other_tenant)
    other_scope = TenantScope(tenant_id=other_tenant.id)
    billed(customer, utc(2024, 1, 10), 1000)
    deliver(stranger, utc(2024, 1, 11), 400)
    billing_service.reconciliation.resync(db_session, other_scope)

    result = billing_service.reconciliation.regenerate(db_session, scope)

    assert result["stats"]["bills_deleted"] == 1
    (other_bill,) = _bills(db_session, stranger)
    assert other_bill.period_charge == 400
    assert other_bill.tenant_id == other_tenant.id


def test_resync_reports_bill_that_would_drop_below_payments(
    db_session, scope, customer, deliver
):
    deliver(customer, utc(2024, 1, 5), 1000)
    extra = deliver(customer, utc(2024, 1, 6), 400)
    billing_service.reconciliation.resync(db_session, scope)
    (bill,) = _bills(db_session, customer)
    _pay(db_session, scope, bill, 1400)

    extra.amount = 0
    db_session.commit()
    result = billing_service.reconciliation.resync(db_session, scope)

    assert result["stats"]["errors"] == 1
    (error,) = result["errors"]
    assert error.startswith("Error syncing customer Arham (1): Bill for 2024-01-01 to 2024-01-31")
    assert "Rs 1,400" in error
    (bill,) = _bills(db_session, customer)
    db_session.refresh(bill)
    assert bill.period_charge == 1400
    assert bill.paid_amount <= bill.total_due


def test_resync_zeroes_bill_whose_deliveries_are_gone(db_session, scope, customer, deliver):
    entry = deliver(customer, utc(2024, 1, 5), 1000)
    billing_service.reconciliation.resync(db_session, scope)

    db_session.delete(entry)
    db_session.commit()
    billing_service.reconciliation.resync(db_session, scope)

    (bill,) = _bills(db_session, customer)
    db_session.refresh(bill)
    assert (bill.period_charge, bill.cylinder_count) == (0, 0)
