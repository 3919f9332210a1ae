"""Vote records and the vote lifecycle."""

from __future__ import annotations

import uuid

from pydantic import Field

from pollsat.models._base import PollsatBaseModel, TransitionEnum


class VoteStatus(TransitionEnum):
    """Vote lifecycle.

    ``created → signed → submitted → batched → anchored → verified``;
    ``failed`` is reachable from ``submitted``, ``batched`` and ``anchored``.
    ``verified`` and ``failed`` are terminal.  ``batched → submitted``
    returns a vote whose anchoring transaction failed to the unbatched pool.
    """

    CREATED = "created"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    BATCHED = "batched"
    ANCHORED = "anchored"
    VERIFIED = "verified"
    FAILED = "failed"


VoteStatus._TRANSITIONS = {
    "created": frozenset({"signed"}),
    "signed": frozenset({"submitted"}),
    "submitted": frozenset({"batched", "failed"}),
    "batched": frozenset({"anchored", "submitted", "failed"}),
    "anchored": frozenset({"verified", "failed"}),
    "verified": frozenset(),
    "failed": frozenset(),
}


class SignedVote(PollsatBaseModel):
    """Output of :meth:`VoteSigner.sign`."""

    signature: str
    vote_hash: str
    timestamp: int


class VoteRecord(PollsatBaseModel):
    """A cast vote.

    ``vote_hash`` is a pure function of ``(voter_id, poll_id, option_id,
    timestamp)``.  ``merkle_root_id`` is set once, when the vote joins a
    batch; the record is otherwise never mutated.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    voter_id: str
    poll_id: str
    option_id: str
    timestamp: int
    vote_hash: str
    signature: str
    merkle_root_id: str | None = None
    status: VoteStatus = VoteStatus.SIGNED

    @property
    def is_batched(self) -> bool:
        return self.merkle_root_id is not None

    def advance(self, target: VoteStatus) -> VoteRecord:
        """Return a copy in *target* status; raises on a forbidden transition."""
        return self.model_copy(update={"status": self.status.transition_to(target)})
