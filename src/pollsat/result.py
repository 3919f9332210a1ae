"""Tagged results for calls that cross into the backend.

Callers display ``Err.message`` and branch on ``Err.kind``; they never
inspect exception internals.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, TypeVar

from pollsat.exceptions import (
    AuthError,
    DoubleBatchingDetectedError,
    LedgerSubmissionUnknownError,
    NetworkTransientError,
    PollsatError,
    SigningError,
    StorageUnavailableError,
)

T = TypeVar("T")


class ErrorKind(enum.StrEnum):
    STORAGE_UNAVAILABLE = "storage_unavailable"
    SIGNING = "signing"
    AUTH = "auth"
    NETWORK_TRANSIENT = "network_transient"
    LEDGER_SUBMISSION_UNKNOWN = "ledger_submission_unknown"
    DOUBLE_BATCHING = "double_batching"
    BACKEND = "backend"


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Ok[T] | Err

_KIND_BY_EXCEPTION: tuple[tuple[type[PollsatError], ErrorKind], ...] = (
    (StorageUnavailableError, ErrorKind.STORAGE_UNAVAILABLE),
    (SigningError, ErrorKind.SIGNING),
    (AuthError, ErrorKind.AUTH),
    (NetworkTransientError, ErrorKind.NETWORK_TRANSIENT),
    (LedgerSubmissionUnknownError, ErrorKind.LEDGER_SUBMISSION_UNKNOWN),
    (DoubleBatchingDetectedError, ErrorKind.DOUBLE_BATCHING),
)


def err_from_exception(exc: PollsatError) -> Err:
    """Map a pollsat exception to its :class:`Err` tag."""
    for exc_type, kind in _KIND_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return Err(kind=kind, message=str(exc))
    return Err(kind=ErrorKind.BACKEND, message=str(exc))
