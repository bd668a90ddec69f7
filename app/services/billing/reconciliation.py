"""Reconciliation jobs: re-derive every bill of a tenant from the ledger.

Resync is an incremental upsert. Regenerate deletes all payments, invoices
and bills of the tenant and rebuilds the bills in chronological order; the
payment history it discards cannot be recovered.

Both jobs isolate each customer in a savepoint and commit after it, so one
customer's failure is reported in ``errors`` without stopping the run.
"""

import logging
import time

from sqlalchemy.orm import Session

from app.metrics import observe_job
from app.models.customer import Customer
from app.services.billing.bills import (
    CREATED,
    billable_months,
    delete_all,
    delete_all_payments,
    sync_customer_month,
)
from app.services.tenancy import TenantScope

logger = logging.getLogger(__name__)


def _customers(db: Session, scope: TenantScope) -> list[Customer]:
    return (
        scope.filter(db.query(Customer), Customer)
        .order_by(Customer.customer_code.asc())
        .all()
    )


def _sync_customer(db: Session, scope: TenantScope, customer: Customer) -> list[str]:
    outcomes = []
    with db.begin_nested():
        for month in billable_months(db, scope, customer):
            outcome = sync_customer_month(db, scope, customer, month)
            if outcome is not None:
                outcomes.append(outcome)
    db.commit()
    return outcomes


class Reconciliation:
    @staticmethod
    def resync(db: Session, scope: TenantScope) -> dict:
        start = time.monotonic()
        logger.info("Bill resync started for tenant %s", scope.tenant_id)
        status = "success"
        created = 0
        updated = 0
        errors: list[str] = []
        customers = _customers(db, scope)
        try:
            for customer in customers:
                label = f"{customer.name} ({customer.customer_code})"
                try:
                    outcomes = _sync_customer(db, scope, customer)
                except Exception as exc:
                    logger.exception("Bill resync failed for customer %s", label)
                    errors.append(f"Error syncing customer {label}: {exc}")
                    continue
                created += sum(1 for outcome in outcomes if outcome == CREATED)
                updated += sum(1 for outcome in outcomes if outcome != CREATED)
        except Exception:
            status = "error"
            raise
        finally:
            observe_job("bill_resync", status, time.monotonic() - start)

        logger.info(
            "Bill resync customers=%s created=%s updated=%s errors=%s",
            len(customers),
            created,
            updated,
            len(errors),
        )
        result = {
            "success": True,
            "message": f"Bill resync completed. Created: {created}, Updated: {updated}",
            "stats": {
                "customers_processed": len(customers),
                "bills_created": created,
                "bills_updated": updated,
                "errors": len(errors),
            },
        }
        if errors:
            result["errors"] = errors
        return result

    @staticmethod
    def regenerate(db: Session, scope: TenantScope) -> dict:
        start = time.monotonic()
        logger.info("Bill regenerate started for tenant %s", scope.tenant_id)
        status = "success"
        created = 0
        errors: list[str] = []
        try:
            payments_deleted = delete_all_payments(db, scope)
            db.commit()
            bills_deleted, invoices_deleted = delete_all(db, scope)
            db.commit()
            logger.warning(
                "Bill regenerate removed bills=%s payments=%s invoices=%s",
                bills_deleted,
                payments_deleted,
                invoices_deleted,
            )

            customers = _customers(db, scope)
            for customer in customers:
                label = f"{customer.name} ({customer.customer_code})"
                try:
                    outcomes = _sync_customer(db, scope, customer)
                except Exception as exc:
                    logger.exception("Bill regenerate failed for customer %s", label)
                    errors.append(f"Error processing customer {label}: {exc}")
                    continue
                created += sum(1 for outcome in outcomes if outcome == CREATED)
        except Exception:
            status = "error"
            raise
        finally:
            observe_job("bill_regenerate", status, time.monotonic() - start)

        logger.info(
            "Bill regenerate customers=%s created=%s errors=%s",
            len(customers),
            created,
            len(errors),
        )
        result = {
            "success": True,
            "message": (
                f"Bills regenerated successfully. Deleted: {bills_deleted} bills and "
                f"{payments_deleted} payments, Created: {created} new bills"
            ),
            "stats": {
                "bills_deleted": bills_deleted,
                "payments_deleted": payments_deleted,
                "customers_processed": len(customers),
                "bills_created": created,
                "errors": len(errors),
            },
        }
        if errors:
            result["errors"] = errors
        return result
