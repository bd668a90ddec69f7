"""Common helper functions for service layer.

This module provides reusable utilities for:
- UUID handling
- Query ordering and pagination
- Enum validation
- Datetime normalization
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from app.services.errors import ValidationError


def coerce_uuid(value):
    """Convert value to UUID, returning None if value is None.

    Raises:
        ValidationError: 400 if value is not a valid UUID
    """
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid identifier: {value}") from exc


def parse_uuid(value) -> uuid.UUID | None:
    """Like coerce_uuid, but returns None for anything that is not a UUID."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def apply_ordering(query, order_by: str, order_dir: str, allowed_columns: dict):
    """Apply ordering to a query with validation.

    Args:
        query: SQLAlchemy query object
        order_by: Column name to order by
        order_dir: Direction ('asc' or 'desc')
        allowed_columns: Dict mapping column names to SQLAlchemy columns

    Returns:
        Query with ordering applied

    Raises:
        ValidationError: 400 if order_by is not in allowed_columns
    """
    if order_by not in allowed_columns:
        raise ValidationError(
            f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}"
        )
    column = allowed_columns[order_by]
    if order_dir == "desc":
        return query.order_by(column.desc())
    return query.order_by(column.asc())


def apply_pagination(query, limit: int, offset: int):
    """Apply pagination to a query."""
    return query.limit(limit).offset(offset)


def validate_enum(value, enum_cls, label: str):
    """Validate and convert a value to an enum member.

    Accepts either the member value or the member name.

    Raises:
        ValidationError: 400 if value is not a valid enum member
    """
    if value is None:
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        member = enum_cls.__members__.get(str(value).lower())
        if member is None:
            raise ValidationError(f"Invalid {label}") from None
        return member


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite hands them back without tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
