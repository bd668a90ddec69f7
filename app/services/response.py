"""Paged list envelope returned by the collection endpoints."""

from app.services.tenancy import TenantScope


def list_response(items: list, limit: int, offset: int) -> dict:
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


class ListResponseMixin:
    """Wraps a service's tenant-scoped ``list`` in the ``ListResponse`` envelope.

    ``list`` must take ``(db, scope, *filters, order_by, order_dir, limit,
    offset)`` with limit and offset last.
    """

    @classmethod
    def list_response(cls, db, scope: TenantScope, *args):
        if len(args) < 2:
            raise ValueError("limit and offset are required for list responses")
        *filters, limit, offset = args
        items = cls.list(db, scope, *filters, limit, offset)
        return list_response(items, limit, offset)
