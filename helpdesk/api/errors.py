from __future__ import annotations

from fastapi import HTTPException, status

from helpdesk.core.results import ErrorKind, ServiceResult

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.BACKEND: status.HTTP_502_BAD_GATEWAY,
}


def raise_for_result(result: ServiceResult) -> None:
    """Translate a failed service result into an ``HTTPException``."""

    if result.ok:
        return
    kind = result.kind or ErrorKind.BACKEND
    detail: str | dict = result.error or "Request failed"
    if result.field_errors:
        detail = {"message": detail, "fields": result.field_errors}
    raise HTTPException(status_code=_STATUS_BY_KIND[kind], detail=detail)
