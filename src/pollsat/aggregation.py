"""Batch commit: unbatched votes → Merkle root → ledger anchor."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import Counter
from dataclasses import dataclass

from pollsat.exceptions import DoubleBatchingDetectedError, LedgerSubmissionUnknownError, PollsatError
from pollsat.ledger import LedgerAnchor
from pollsat.merkle import MerkleAggregator
from pollsat.models.anchor import AnchorRecord, AnchorStatus
from pollsat.persistence import Claim, Persistence

_logger = logging.getLogger(__name__)


class BatchOutcomeStatus(enum.StrEnum):
    EMPTY = "empty"
    COMMITTED = "committed"
    REUSED = "reused"
    SUBMISSION_UNKNOWN = "submission_unknown"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    status: BatchOutcomeStatus
    merkle_root: str | None = None
    ledger_tx_signature: str | None = None
    anchor_id: str | None = None
    anchor_status: AnchorStatus | None = None
    vote_ids: tuple[str, ...] = ()
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (
            BatchOutcomeStatus.COMMITTED,
            BatchOutcomeStatus.REUSED,
            BatchOutcomeStatus.SUBMISSION_UNKNOWN,
        )


def _check_claim(claim: Claim) -> None:
    duplicates = tuple(vote_id for vote_id, count in Counter(claim.vote_ids).items() if count > 1)
    already = tuple(vote.id for vote in claim.votes if vote.merkle_root_id is not None)
    offenders = duplicates + already
    if offenders:
        raise DoubleBatchingDetectedError(
            f"claim {claim.claim_id} contains votes that are already batched: {', '.join(offenders)}",
            vote_ids=offenders,
        )
    repeated_hashes = [h for h, count in Counter(claim.vote_hashes).items() if count > 1]
    if repeated_hashes:
        _logger.warning("Claim %s contains %d repeated vote hashes", claim.claim_id, len(repeated_hashes))


class BatchCommitter:
    """The single designated aggregator for a persistence store.

    Runs are serialised by a lock; batch selection itself is the store's
    atomic :meth:`Persistence.claim_unbatched`.
    """

    def __init__(self, persistence: Persistence, anchor: LedgerAnchor) -> None:
        self._persistence = persistence
        self._anchor = anchor
        self._lock = asyncio.Lock()

    async def reconcile(self) -> list[AnchorRecord]:
        """Settle pending anchors against the ledger; returns the ones that changed.

        A pending anchor whose transaction failed, or never landed before its
        blockhash expired, becomes ``FAILED`` and its votes return to the
        unbatched pool.  Ledger errors leave the anchor pending.
        """
        settled = []
        for anchor in await self._persistence.pending_anchors():
            try:
                status = await self._anchor.check(anchor.ledger_tx_signature, anchor.recent_blockhash)
            except PollsatError as exc:
                _logger.debug("Could not settle anchor %s: %s", anchor.id, exc)
                continue
            if status is not AnchorStatus.PENDING:
                settled.append(await self._persistence.update_anchor_status(anchor.id, status))
        return settled

    async def commit(
        self,
        poll_id: str | None = None,
        *,
        confirm: bool = False,
        confirm_timeout: float | None = None,
    ) -> BatchOutcome:
        """Aggregate every unbatched vote (optionally of one poll) and anchor the root.

        Every pass starts with :meth:`reconcile`.  A failed anchoring attempt
        releases the claim so the votes are picked up by the next pass.  An
        ambiguous submission is recorded as a pending anchor with its known
        transaction id and blockhash; a later pass or verification settles
        it without resubmitting.

        Raises
        ------
        DoubleBatchingDetectedError
            A vote was about to join a second tree.  Aggregation halts.
        """
        async with self._lock:
            await self.reconcile()
            claim = await self._persistence.claim_unbatched(poll_id)
            if not claim.votes:
                return BatchOutcome(status=BatchOutcomeStatus.EMPTY)

            try:
                _check_claim(claim)
            except DoubleBatchingDetectedError:
                _logger.error("Double batching detected in claim %s; halting aggregation", claim.claim_id)
                await self._persistence.release_claim(claim.claim_id)
                raise

            aggregator = MerkleAggregator()
            aggregator.build(claim.vote_hashes)
            root = aggregator.root()
            _logger.debug("Built Merkle root %s over %d votes", root, len(claim.votes))

            status = BatchOutcomeStatus.COMMITTED
            anchor = await self._persistence.find_anchor_by_root(root)
            if anchor is not None and anchor.status is not AnchorStatus.FAILED:
                status = BatchOutcomeStatus.REUSED
            else:
                try:
                    tx_id = await self._anchor.submit(root)
                except LedgerSubmissionUnknownError as exc:
                    _logger.warning("Anchoring of %s has unknown outcome (tx %s)", root, exc.tx_id)
                    tx_id = exc.tx_id
                    status = BatchOutcomeStatus.SUBMISSION_UNKNOWN
                except PollsatError as exc:
                    _logger.warning("Anchoring of %s failed; votes stay unbatched: %s", root, exc)
                    await self._persistence.release_claim(claim.claim_id)
                    return BatchOutcome(
                        status=BatchOutcomeStatus.FAILED,
                        merkle_root=root,
                        vote_ids=claim.vote_ids,
                        error=str(exc),
                    )
                anchor = await self._persistence.insert_anchor(
                    AnchorRecord(
                        merkle_root=root,
                        ledger_tx_signature=tx_id,
                        recent_blockhash=self._anchor.submission_blockhash(root),
                        poll_id=poll_id,
                    )
                )

            try:
                await self._persistence.assign_merkle_root(claim.claim_id, claim.vote_ids, anchor.id)
            except DoubleBatchingDetectedError:
                _logger.error("Double batching detected while assigning root %s; halting aggregation", root)
                await self._persistence.release_claim(claim.claim_id)
                raise

            if confirm and anchor.status is AnchorStatus.PENDING:
                final = await self._anchor.confirm(anchor.ledger_tx_signature, timeout=confirm_timeout)
                if final is not AnchorStatus.PENDING:
                    anchor = await self._persistence.update_anchor_status(anchor.id, final)

            return BatchOutcome(
                status=status,
                merkle_root=root,
                ledger_tx_signature=anchor.ledger_tx_signature,
                anchor_id=anchor.id,
                anchor_status=anchor.status,
                vote_ids=claim.vote_ids,
            )
