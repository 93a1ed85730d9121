"""Error taxonomy shared by every service.

Each concrete error carries a fixed ``kind`` so the API layer can map it to a
response exhaustively, plus an optional ``reason`` naming the sub-kind
(``owner_missing``, ``last_admin`` ...) that tests and clients can match on.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"


class ServiceError(Exception):
    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason

    @property
    def code(self) -> str:
        return self.reason or self.kind.value


class InvalidInputError(ServiceError):
    kind = ErrorKind.INVALID_INPUT


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(ServiceError):
    kind = ErrorKind.CONFLICT


class ForbiddenError(ServiceError):
    kind = ErrorKind.FORBIDDEN


class UnauthorizedError(ServiceError):
    kind = ErrorKind.UNAUTHORIZED


class InternalError(ServiceError):
    kind = ErrorKind.INTERNAL
