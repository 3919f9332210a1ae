"""Ledger anchoring models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import Field

from pollsat.models._base import PollsatBaseModel, TransitionEnum


class AnchorStatus(TransitionEnum):
    """Finality of an anchoring transaction.

    Moves only forward: ``pending → confirmed`` or ``pending → failed``.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


AnchorStatus._TRANSITIONS = {
    "pending": frozenset({"confirmed", "failed"}),
    "confirmed": frozenset(),
    "failed": frozenset(),
}


class AnchorRecord(PollsatBaseModel):
    """A Merkle root submitted to the ledger.

    ``recent_blockhash`` is the blockhash the transaction was signed
    against; once the ledger reports it expired, a transaction it has never
    seen can no longer land.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    merkle_root: str
    ledger_tx_signature: str
    recent_blockhash: str | None = None
    status: AnchorStatus = AnchorStatus.PENDING
    poll_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def with_status(self, target: AnchorStatus) -> AnchorRecord:
        """Return a copy in *target* status.

        Re-applying the current status is a no-op; anything else must be a
        legal forward transition.
        """
        if target is self.status:
            return self
        return self.model_copy(update={"status": self.status.transition_to(target)})


class TransactionLookup(PollsatBaseModel):
    """Read-only view of a ledger transaction.

    ``found=False`` is the normal "not found" result; lookups never raise
    for an unknown id.
    """

    tx_id: str
    found: bool
    slot: int | None = None
    block_time: int | None = None
    error: Any = None
    memos: tuple[str, ...] = ()

    @property
    def memo(self) -> str | None:
        return self.memos[0] if self.memos else None

    @property
    def succeeded(self) -> bool:
        return self.found and self.error is None
