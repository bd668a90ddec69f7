"""Billing services package.

Bill aggregation, the payment ledger, invoices, reconciliation jobs and the
payment event log:
    from app.services import billing as billing_service
    billing_service.payments.apply(db, scope, payload)
"""

from app.services.billing.bills import Bills, sync_customer_month
from app.services.billing.invoices import Invoices
from app.services.billing.payment_logs import PaymentLogs
from app.services.billing.payments import Payments
from app.services.billing.reconciliation import Reconciliation

# Singleton instances for service access
bills = Bills()
payments = Payments()
invoices = Invoices()
payment_logs = PaymentLogs()
reconciliation = Reconciliation()

__all__ = [
    # Classes
    "Bills",
    "Payments",
    "Invoices",
    "PaymentLogs",
    "Reconciliation",
    # Singleton instances
    "bills",
    "payments",
    "invoices",
    "payment_logs",
    "reconciliation",
    "sync_customer_month",
]
