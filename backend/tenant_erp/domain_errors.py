"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message

    @property
    def kind(self) -> str:
        return type(self).__name__


class _KindError(DomainError):
    """Error kind with a fixed HTTP status hint."""

    status: ClassVar[int] = 500

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(code=code, http_status=self.status, message=message, details=details)


class BadRequest(_KindError):
    status = 400


class Unauthorized(_KindError):
    status = 401


class Forbidden(_KindError):
    status = 403


class NotFound(_KindError):
    status = 404


class Conflict(_KindError):
    status = 409


class TooManyRequests(_KindError):
    status = 429
