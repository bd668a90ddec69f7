from datetime import datetime, timezone


def utc(year: int, month: int, day: int, hour: int = 12) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def as_utc(value):
    """SQLite hands datetimes back naive; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def tenant_headers(tenant) -> dict:
    return {"X-Tenant-ID": str(tenant.id)}
