"""Tenant scope threaded through every billing call.

There is no ambient "current tenant": API dependencies build a TenantScope
from the request and services receive it as an argument.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.models.tenant import Tenant
from app.services.common import parse_uuid
from app.services.errors import ForbiddenError


@dataclass(frozen=True)
class TenantScope:
    tenant_id: uuid.UUID

    def filter(self, query, model):
        return query.filter(model.tenant_id == self.tenant_id)

    def stamp(self) -> uuid.UUID:
        return self.tenant_id

    def owns(self, entity) -> bool:
        return entity is not None and entity.tenant_id == self.tenant_id

    def ensure_owns(self, entity, label: str) -> None:
        if not self.owns(entity):
            raise ForbiddenError(f"You do not have access to this {label.lower()}.")


def resolve_scope(db: Session, raw_tenant_id: str | None) -> TenantScope:
    """Turn a raw tenant identifier into a validated scope."""
    tenant_id = parse_uuid(raw_tenant_id.strip()) if raw_tenant_id else None
    if tenant_id is None:
        raise ForbiddenError("A valid tenant scope is required")
    tenant = db.get(Tenant, tenant_id)
    if not tenant or not tenant.is_active:
        raise ForbiddenError("Unknown or inactive tenant")
    return TenantScope(tenant_id=tenant.id)


def create_tenant(db: Session, payload) -> Tenant:
    tenant = Tenant(**payload.model_dump())
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant
