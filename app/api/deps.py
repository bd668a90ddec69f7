from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.services.tenancy import TenantScope, resolve_scope


def get_tenant_scope(request: Request, db: Session = Depends(get_db)) -> TenantScope:
    """Resolve the caller's tenant from the tenant header.

    Every billing route depends on this; a missing, malformed or unknown
    tenant is rejected with 403.
    """
    return resolve_scope(db, request.headers.get(settings.tenant_header))


__all__ = ["get_db", "get_tenant_scope"]
