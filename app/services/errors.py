"""Service-layer error taxonomy.

Each class is an ``HTTPException`` so services raise them directly and the
API layer needs no translation; ``code`` ends up in the JSON error body.
"""

from fastapi import HTTPException


class ServiceError(HTTPException):
    status_code = 500
    code = "internal_error"

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail or "Request failed")

    def __str__(self) -> str:
        return str(self.detail)


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"


class ForbiddenError(ServiceError):
    status_code = 403
    code = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"

    def __init__(self, label: str | None = None, detail: str | None = None):
        super().__init__(detail or (f"{label} not found" if label else "Not found"))


class ConflictError(ServiceError):
    status_code = 409
    code = "conflict"


class InternalError(ServiceError):
    status_code = 500
    code = "internal_error"
