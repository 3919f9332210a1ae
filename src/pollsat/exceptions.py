"""Custom exception hierarchy for pollsat."""

from __future__ import annotations


class PollsatError(Exception):
    """Base exception for all pollsat errors."""


class PollsatConfigError(PollsatError):
    """Invalid or missing configuration."""


class PollsatCryptoError(PollsatError):
    """Key decoding, signing or hashing failure."""


class SigningError(PollsatCryptoError):
    """A message could not be signed.

    Fatal for the current operation: an unsigned or malformed vote must
    never be submitted.
    """


class StorageUnavailableError(PollsatError):
    """Secure storage could not be read or written.

    Never retried silently; surfaced to the caller immediately.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class InvalidTransitionError(PollsatError):
    """A lifecycle or status transition that the state machine forbids."""


class AuthError(PollsatError):
    """Device registration with the backend failed."""


class PollsatTransportError(PollsatError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        method: str = "",
    ) -> None:
        self.status_code = status_code
        self.method = method
        super().__init__(message)


class NetworkTransientError(PollsatTransportError):
    """Connection failure, timeout or rate limiting.

    Retried internally with bounded backoff; raised once the retry budget
    is exhausted.
    """


class LedgerRpcError(PollsatError):
    """The ledger RPC endpoint answered with a JSON-RPC error object."""

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        method: str = "",
    ) -> None:
        self.code = code
        self.method = method
        super().__init__(message)


class LedgerSubmissionUnknownError(PollsatError):
    """A transaction was sent but its outcome could not be determined.

    The ledger state for ``tx_id`` must be checked before any retry; the
    submission must never be blindly repeated.
    """

    def __init__(self, message: str, *, tx_id: str, merkle_root: str = "") -> None:
        self.tx_id = tx_id
        self.merkle_root = merkle_root
        super().__init__(message)


class DoubleBatchingDetectedError(PollsatError):
    """A vote was about to be included in more than one Merkle tree.

    Indicates a concurrency-control failure in batch selection. Aggregation
    must halt.
    """

    def __init__(self, message: str, *, vote_ids: tuple[str, ...] = ()) -> None:
        self.vote_ids = vote_ids
        super().__init__(message)
