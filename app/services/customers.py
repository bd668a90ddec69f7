"""Customer registration and lookup."""

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.schemas.customer import CustomerCreate
from app.services.common import apply_ordering, apply_pagination, coerce_uuid
from app.services.errors import ConflictError, NotFoundError
from app.services.response import ListResponseMixin
from app.services.tenancy import TenantScope

logger = logging.getLogger(__name__)


def _next_customer_code(db: Session, scope: TenantScope) -> int:
    current = scope.filter(
        db.query(func.max(Customer.customer_code)), Customer
    ).scalar()
    return (current or 0) + 1


class Customers(ListResponseMixin):
    @staticmethod
    def create(db: Session, scope: TenantScope, payload: CustomerCreate):
        customer = Customer(
            tenant_id=scope.stamp(),
            customer_code=_next_customer_code(db, scope),
            **payload.model_dump(),
        )
        db.add(customer)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("Customer code already taken, please retry") from exc
        db.refresh(customer)
        logger.info("Registered customer %s (code %s)", customer.id, customer.customer_code)
        return customer

    @staticmethod
    def get(db: Session, scope: TenantScope, customer_id: str):
        customer = db.get(Customer, coerce_uuid(customer_id))
        if not customer:
            raise NotFoundError("Customer")
        scope.ensure_owns(customer, "Customer")
        return customer

    @staticmethod
    def list(
        db: Session,
        scope: TenantScope,
        search: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = scope.filter(db.query(Customer), Customer)
        if search:
            query = query.filter(Customer.name.ilike(f"%{search.strip()}%"))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "customer_code": Customer.customer_code,
                "name": Customer.name,
                "created_at": Customer.created_at,
            },
        )
        return apply_pagination(query, limit, offset).all()


customers = Customers()
