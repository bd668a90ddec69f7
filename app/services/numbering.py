from datetime import datetime

from sqlalchemy.orm import Session

from app.config import settings
from app.models.sequence import DocumentSequence
from app.services.common import as_utc
from app.services.tenancy import TenantScope

INVOICE_NUMBER_PADDING = 5


def _format_number(prefix: str | None, padding: int | None, value: int) -> str:
    prefix_value = prefix or ""
    pad = max(int(padding or 0), 0)
    if pad > 0:
        return f"{prefix_value}{value:0{pad}d}"
    return f"{prefix_value}{value}"


def _next_sequence_value(db: Session, scope: TenantScope, key: str, start_value: int) -> int:
    sequence = (
        scope.filter(db.query(DocumentSequence), DocumentSequence)
        .filter(DocumentSequence.key == key)
        .with_for_update()
        .first()
    )
    if not sequence:
        sequence = DocumentSequence(tenant_id=scope.stamp(), key=key, next_value=start_value)
        db.add(sequence)
        db.flush()
    value = sequence.next_value
    sequence.next_value = value + 1
    db.flush()
    return value


def next_invoice_number(db: Session, scope: TenantScope, issued_at: datetime) -> str:
    """``<prefix>-YYYYMMDD-NNNNN``, counted per tenant per issuance day."""
    day = f"{as_utc(issued_at):%Y%m%d}"
    value = _next_sequence_value(db, scope, f"invoice:{day}", 1)
    return _format_number(
        f"{settings.invoice_number_prefix}-{day}-", INVOICE_NUMBER_PADDING, value
    )
