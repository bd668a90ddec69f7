from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_scope
from app.db import get_db
from app.schemas.customer import CustomerCreate, CustomerRead
from app.schemas.common import ListResponse
from app.schemas.delivery import DeliveryEntryCreate, DeliveryEntryRead, DeliveryEntryUpdate
from app.schemas.tenant import TenantCreate, TenantRead
from app.services import tenancy as tenancy_service
from app.services.customers import customers as customers_service
from app.services.deliveries import deliveries as deliveries_service
from app.services.tenancy import TenantScope

router = APIRouter()


@router.post(
    "/tenants",
    response_model=TenantRead,
    status_code=status.HTTP_201_CREATED,
    tags=["tenants"],
)
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db)):
    return tenancy_service.create_tenant(db, payload)


# --- Customers ---


@router.post(
    "/customers",
    response_model=CustomerRead,
    status_code=status.HTTP_201_CREATED,
    tags=["customers"],
)
def create_customer(
    payload: CustomerCreate,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return customers_service.create(db, scope, payload)


@router.get("/customers", response_model=ListResponse[CustomerRead], tags=["customers"])
def list_customers(
    search: str | None = None,
    order_by: str = Query(default="customer_code"),
    order_dir: str = Query(default="asc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return customers_service.list_response(
        db, scope, search, order_by, order_dir, limit, offset
    )


@router.get("/customers/{customer_id}", response_model=CustomerRead, tags=["customers"])
def get_customer(
    customer_id: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return customers_service.get(db, scope, customer_id)


# --- Delivery ledger ---


@router.post(
    "/deliveries",
    response_model=DeliveryEntryRead,
    status_code=status.HTTP_201_CREATED,
    tags=["deliveries"],
)
def create_delivery(
    payload: DeliveryEntryCreate,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return deliveries_service.create(db, scope, payload)


@router.get(
    "/deliveries", response_model=ListResponse[DeliveryEntryRead], tags=["deliveries"]
)
def list_deliveries(
    customer_id: str | None = None,
    delivery_type: str | None = None,
    order_by: str = Query(default="delivery_date"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return deliveries_service.list_response(
        db, scope, customer_id, delivery_type, order_by, order_dir, limit, offset
    )


@router.patch("/deliveries/{entry_id}", response_model=DeliveryEntryRead, tags=["deliveries"])
def update_delivery(
    entry_id: str,
    payload: DeliveryEntryUpdate,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    return deliveries_service.update(db, scope, entry_id, payload)


@router.delete(
    "/deliveries/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["deliveries"],
)
def delete_delivery(
    entry_id: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
):
    deliveries_service.delete(db, scope, entry_id)
