from __future__ import annotations

from fastapi import HTTPException, status

from invoicing.business.errors import (
    BillingError,
    BillingValidationError,
    NotFoundError,
)


def to_http_exception(exc: BillingError) -> HTTPException:
    if isinstance(exc, BillingValidationError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_409_CONFLICT
    return HTTPException(status_code=status_code, detail=exc.to_dict())
