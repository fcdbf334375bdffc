"""Tagged result values returned by every service operation."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    BACKEND = "backend"


@dataclass(slots=True)
class ServiceResult(Generic[T]):
    """Outcome of a service call.

    ``ok`` is the discriminator. Failures still carry ``data`` so callers can
    keep rendering a fallback (an empty list, or the last cached collection).
    """

    ok: bool
    data: T | None = None
    count: int | None = None
    error: str | None = None
    kind: ErrorKind | None = None
    code: str | None = None
    message: str | None = None
    field_errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def success(
        cls,
        data: T | None = None,
        *,
        count: int | None = None,
        message: str | None = None,
    ) -> "ServiceResult[T]":
        return cls(ok=True, data=data, count=count, message=message)

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        kind: ErrorKind = ErrorKind.BACKEND,
        data: Any = None,
        count: int | None = None,
        code: str | None = None,
        field_errors: dict[str, str] | None = None,
    ) -> "ServiceResult[T]":
        return cls(
            ok=False,
            data=data,
            count=count,
            error=error,
            kind=kind,
            code=code,
            field_errors=dict(field_errors or {}),
        )

    @property
    def is_not_found(self) -> bool:
        return not self.ok and self.kind is ErrorKind.NOT_FOUND
