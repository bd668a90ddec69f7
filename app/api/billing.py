from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_scope
from app.db import get_db
from app.schemas.billing import (
    BillRead,
    InvoiceGenerateRequest,
    InvoiceGenerateResponse,
    InvoiceRead,
    PaymentApply,
    PaymentLogRead,
    PaymentRead,
    RegenerateResponse,
    ResyncResponse,
)
from app.schemas.common import ListResponse, SuccessMessage
from app.services import billing as billing_service
from app.services.tenancy import TenantScope

router = APIRouter()


# --- Bills ---


@router.get(
    "/bills/resync",
    response_model=ResyncResponse,
    response_model_exclude_none=True,
    tags=["bills"],
)
def resync_bills(
    db: Session = Depends(get_db), scope: TenantScope = Depends(get_tenant_scope)
):
    return billing_service.reconciliation.resync(db, scope)


@router.post(
    "/bills/regenerate",
    response_model=RegenerateResponse,
    response_model_exclude_none=True,
    tags=["bills"],
)
def regenerate_bills(
    db: Session = Depends(get_db), scope: TenantScope = Depends(get_tenant_scope)
):
    """Delete every payment, invoice and bill of the tenant and rebuild the bills.

    Irreversible: all payment history of the tenant is discarded.
    """
    return billing_service.reconciliation.regenerate(db, scope)


@router.get("/bills", response_model=ListResponse[BillRead], tags=["bills"])
def list_bills(
    customer_id: str | None = None,
    status: str | None = None,
    period: datetime | None = None,
    order_by: str = Query(default="period_start"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.bills.list_response(
        db, scope, customer_id, status, period, order_by, order_dir, limit, offset
    )


@router.get("/bills/{bill_id}", response_model=BillRead, tags=["bills"])
def get_bill(
    bill_id: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.bills.get(db, scope, bill_id)


@router.delete(
    "/bills/{bill_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["bills"]
)
def delete_bill(
    bill_id: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    billing_service.bills.delete(db, scope, bill_id)


# --- Payments ---


@router.post(
    "/payments",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
    tags=["payments"],
)
def apply_payment(
    payload: PaymentApply,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.payments.apply(db, scope, payload)


@router.get("/payments", response_model=ListResponse[PaymentRead], tags=["payments"])
def list_payments(
    bill_id: str | None = None,
    order_by: str = Query(default="paid_on"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.payments.list_response(
        db, scope, bill_id, order_by, order_dir, limit, offset
    )


@router.delete(
    "/payments/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["payments"],
)
def delete_payment(
    payment_id: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    billing_service.payments.delete(db, scope, payment_id)


# --- Invoices ---


@router.post(
    "/invoices/generate", response_model=InvoiceGenerateResponse, tags=["invoices"]
)
def generate_invoices(
    payload: InvoiceGenerateRequest,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.invoices.generate(db, scope, payload.bill_ids)


@router.get("/invoices/{invoice_ref}", response_model=InvoiceRead, tags=["invoices"])
def get_invoice(
    invoice_ref: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.invoices.get(db, scope, invoice_ref)


@router.get(
    "/invoices/{invoice_ref}/download", response_model=InvoiceRead, tags=["invoices"]
)
def download_invoice(
    invoice_ref: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.invoices.download(db, scope, invoice_ref)


@router.delete(
    "/invoices/{invoice_ref}", response_model=SuccessMessage, tags=["invoices"]
)
def delete_invoice(
    invoice_ref: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.invoices.delete(db, scope, invoice_ref)


# --- Payment logs ---


@router.get(
    "/payment-logs", response_model=ListResponse[PaymentLogRead], tags=["payment-logs"]
)
def list_payment_logs(
    customer_name: str | None = None,
    event_type: str | None = None,
    bill_id: str | None = None,
    order_by: str = Query(default="performed_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return billing_service.payment_logs.list_response(
        db, scope, customer_name, event_type, bill_id, order_by, order_dir, limit, offset
    )
