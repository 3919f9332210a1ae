"""Persistence collaborator contract and an in-memory implementation.

Production deployments back :class:`Persistence` with their database.
What the core needs from it is an atomic select-and-mark of unbatched
votes (row-level locking or a single designated aggregator) so that no vote
can end up under two Merkle roots.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from pollsat.exceptions import DoubleBatchingDetectedError
from pollsat.models.anchor import AnchorRecord, AnchorStatus
from pollsat.models.vote import VoteRecord, VoteStatus

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Claim:
    """Votes reserved for one aggregation pass."""

    claim_id: str
    votes: tuple[VoteRecord, ...] = field(default_factory=tuple)

    @property
    def vote_ids(self) -> tuple[str, ...]:
        return tuple(vote.id for vote in self.votes)

    @property
    def vote_hashes(self) -> tuple[str, ...]:
        return tuple(vote.vote_hash for vote in self.votes)


class Persistence(Protocol):
    """Structural interface for the vote/anchor store."""

    async def insert_vote(self, vote: VoteRecord) -> VoteRecord: ...

    async def get_vote(self, vote_id: str) -> VoteRecord | None: ...

    async def claim_unbatched(self, poll_id: str | None = None) -> Claim: ...

    async def release_claim(self, claim_id: str) -> None: ...

    async def assign_merkle_root(self, claim_id: str, vote_ids: Sequence[str], anchor_id: str) -> None: ...

    async def insert_anchor(self, anchor: AnchorRecord) -> AnchorRecord: ...

    async def get_anchor(self, anchor_id: str) -> AnchorRecord | None: ...

    async def find_anchor_by_root(self, merkle_root: str) -> AnchorRecord | None: ...

    async def update_anchor_status(self, anchor_id: str, status: AnchorStatus) -> AnchorRecord: ...

    async def pending_anchors(self) -> list[AnchorRecord]: ...

    async def batch_hashes(self, anchor_id: str) -> list[str]: ...

    async def mark_verified(self, vote_id: str) -> VoteRecord | None: ...


class MemoryPersistence:
    """Single-process store guarded by one :class:`asyncio.Lock`.

    Votes keep insertion order, which is also the leaf order of a batch.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._votes: dict[str, VoteRecord] = {}
        self._anchors: dict[str, AnchorRecord] = {}
        self._claims: dict[str, tuple[str, ...]] = {}
        self._claimed: dict[str, str] = {}
        self._batches: dict[str, tuple[str, ...]] = {}
        self._leaves: dict[str, tuple[str, ...]] = {}

    async def insert_vote(self, vote: VoteRecord) -> VoteRecord:
        async with self._lock:
            if vote.id in self._votes:
                raise ValueError(f"vote {vote.id} already exists")
            stored = vote.advance(VoteStatus.SUBMITTED) if vote.status is VoteStatus.SIGNED else vote
            self._votes[stored.id] = stored
            return stored

    async def get_vote(self, vote_id: str) -> VoteRecord | None:
        return self._votes.get(vote_id)

    async def claim_unbatched(self, poll_id: str | None = None) -> Claim:
        async with self._lock:
            claim_id = uuid.uuid4().hex
            selected = [
                vote
                for vote in self._votes.values()
                if vote.merkle_root_id is None
                and vote.id not in self._claimed
                and vote.status is VoteStatus.SUBMITTED
                and (poll_id is None or vote.poll_id == poll_id)
            ]
            if selected:
                self._claims[claim_id] = tuple(vote.id for vote in selected)
                for vote in selected:
                    self._claimed[vote.id] = claim_id
            return Claim(claim_id=claim_id, votes=tuple(selected))

    async def release_claim(self, claim_id: str) -> None:
        async with self._lock:
            for vote_id in self._claims.pop(claim_id, ()):
                if self._claimed.get(vote_id) == claim_id:
                    del self._claimed[vote_id]

    async def assign_merkle_root(self, claim_id: str, vote_ids: Sequence[str], anchor_id: str) -> None:
        """Attach claimed votes to *anchor_id*.

        Votes join as ``batched``, or ``anchored`` when the anchor is
        already confirmed.
        """
        async with self._lock:
            anchor = self._anchors.get(anchor_id)
            if anchor is None:
                raise KeyError(f"unknown anchor {anchor_id}")
            claimed = set(self._claims.get(claim_id, ()))
            offenders = tuple(
                vote_id
                for vote_id in vote_ids
                if vote_id not in claimed or self._votes[vote_id].merkle_root_id is not None
            )
            if offenders:
                raise DoubleBatchingDetectedError(
                    f"votes already batched or not claimed by {claim_id}: {', '.join(offenders)}",
                    vote_ids=offenders,
                )
            for vote_id in vote_ids:
                vote = self._votes[vote_id]
                vote = vote.model_copy(
                    update={"merkle_root_id": anchor_id, "status": vote.status.transition_to(VoteStatus.BATCHED)}
                )
                if anchor.status is AnchorStatus.CONFIRMED:
                    vote = vote.advance(VoteStatus.ANCHORED)
                self._votes[vote_id] = vote
                self._claimed.pop(vote_id, None)
            self._claims.pop(claim_id, None)
            self._batches[anchor_id] = self._batches.get(anchor_id, ()) + tuple(vote_ids)
            # Leaf order is fixed by the first batch committed under this root.
            self._leaves.setdefault(anchor_id, tuple(self._votes[vote_id].vote_hash for vote_id in vote_ids))

    async def insert_anchor(self, anchor: AnchorRecord) -> AnchorRecord:
        async with self._lock:
            if anchor.id in self._anchors:
                raise ValueError(f"anchor {anchor.id} already exists")
            self._anchors[anchor.id] = anchor
            return anchor

    async def get_anchor(self, anchor_id: str) -> AnchorRecord | None:
        return self._anchors.get(anchor_id)

    async def find_anchor_by_root(self, merkle_root: str) -> AnchorRecord | None:
        """Most useful anchor for *merkle_root*: confirmed first, then pending."""
        candidates = [a for a in self._anchors.values() if a.merkle_root == merkle_root]
        for status in (AnchorStatus.CONFIRMED, AnchorStatus.PENDING, AnchorStatus.FAILED):
            for anchor in candidates:
                if anchor.status is status:
                    return anchor
        return None

    async def update_anchor_status(self, anchor_id: str, status: AnchorStatus) -> AnchorRecord:
        async with self._lock:
            anchor = self._anchors.get(anchor_id)
            if anchor is None:
                raise KeyError(f"unknown anchor {anchor_id}")
            updated = anchor.with_status(status)
            self._anchors[anchor_id] = updated
            if updated.status is not anchor.status:
                self._advance_batch(anchor_id, updated.status)
            return updated

    def _advance_batch(self, anchor_id: str, status: AnchorStatus) -> None:
        if status is AnchorStatus.FAILED:
            self._requeue_batch(anchor_id)
            return
        for vote_id in self._batches.get(anchor_id, ()):
            vote = self._votes[vote_id]
            if vote.status.can_transition_to(VoteStatus.ANCHORED):
                self._votes[vote_id] = vote.advance(VoteStatus.ANCHORED)

    def _requeue_batch(self, anchor_id: str) -> None:
        # The root never reached the ledger: its votes go back to the unbatched pool.
        requeued = 0
        for vote_id in self._batches.pop(anchor_id, ()):
            vote = self._votes[vote_id]
            if vote.merkle_root_id != anchor_id or vote.status is not VoteStatus.BATCHED:
                continue
            self._votes[vote_id] = vote.model_copy(
                update={"merkle_root_id": None, "status": vote.status.transition_to(VoteStatus.SUBMITTED)}
            )
            requeued += 1
        _logger.warning("Anchor %s failed; %d votes returned to the unbatched pool", anchor_id, requeued)

    async def pending_anchors(self) -> list[AnchorRecord]:
        """Anchors still awaiting finality, oldest first."""
        return [anchor for anchor in self._anchors.values() if anchor.status is AnchorStatus.PENDING]

    async def mark_verified(self, vote_id: str) -> VoteRecord | None:
        async with self._lock:
            vote = self._votes.get(vote_id)
            if vote is None or not vote.status.can_transition_to(VoteStatus.VERIFIED):
                return vote
            self._votes[vote_id] = vote.advance(VoteStatus.VERIFIED)
            return self._votes[vote_id]

    async def batch_hashes(self, anchor_id: str) -> list[str]:
        """Leaf sequence of the tree anchored as *anchor_id*, in tree order."""
        return list(self._leaves.get(anchor_id, ()))
