"""End-to-end vote verification.

Every outcome is a :class:`VerificationResult`; nothing here raises for a
negative answer, so callers can display the result directly.
"""

from __future__ import annotations

import logging

from pollsat.exceptions import PollsatError
from pollsat.ledger import LedgerAnchor
from pollsat.merkle import MerkleTree, verify_proof
from pollsat.models.anchor import AnchorRecord, AnchorStatus
from pollsat.models.verification import VerificationEvidence, VerificationReason, VerificationResult
from pollsat.models.vote import VoteRecord
from pollsat.persistence import Persistence
from pollsat.votes import verify_vote_signature

_logger = logging.getLogger(__name__)


class VerificationService:
    """Answers "was vote V legitimately cast and permanently recorded?"."""

    def __init__(
        self,
        persistence: Persistence,
        ledger: LedgerAnchor,
        *,
        confirm_timeout: float | None = None,
    ) -> None:
        self._persistence = persistence
        self._ledger = ledger
        self._confirm_timeout = confirm_timeout

    async def verify_vote_id(self, vote_id: str, *, public_key: str | None = None) -> VerificationResult:
        record = await self._persistence.get_vote(vote_id)
        if record is None:
            return VerificationResult.failure(VerificationReason.NOT_FOUND)
        return await self.verify_vote(record, public_key=public_key)

    async def verify_vote(self, record: VoteRecord, *, public_key: str | None = None) -> VerificationResult:
        """Check signature (when *public_key* is given), batching, inclusion and finality.

        Order of checks:

        1. the device signature matches *public_key*, else ``SIGNATURE_INVALID``;
        2. the record belongs to an anchor, else ``NOT_BATCHED``;
        3. its hash is a leaf of the anchored tree and the proof folds to the
           anchored root, else ``MERKLE_MISMATCH``;
        4. the anchoring transaction carries the root's memo (else
           ``MERKLE_MISMATCH``) and is final and successful, else
           ``LEDGER_UNCONFIRMED``.
        """
        if public_key is not None and not verify_vote_signature(record, public_key):
            return VerificationResult.failure(VerificationReason.SIGNATURE_INVALID)

        if record.merkle_root_id is None:
            return VerificationResult.failure(VerificationReason.NOT_BATCHED)
        anchor = await self._persistence.get_anchor(record.merkle_root_id)
        if anchor is None:
            return VerificationResult.failure(VerificationReason.NOT_BATCHED)

        evidence = VerificationEvidence(
            merkle_root=anchor.merkle_root,
            ledger_tx_signature=anchor.ledger_tx_signature,
        )

        if not await self._is_included(record, anchor):
            return VerificationResult.failure(VerificationReason.MERKLE_MISMATCH, evidence)

        status = await self._ledger_status(anchor)
        if status is None:
            return VerificationResult.failure(VerificationReason.MERKLE_MISMATCH, evidence)
        if status is not anchor.status and anchor.status is AnchorStatus.PENDING:
            await self._persistence.update_anchor_status(anchor.id, status)
        if status is not AnchorStatus.CONFIRMED:
            return VerificationResult.failure(VerificationReason.LEDGER_UNCONFIRMED, evidence)

        await self._persistence.mark_verified(record.id)
        return VerificationResult.success(evidence)

    async def _is_included(self, record: VoteRecord, anchor: AnchorRecord) -> bool:
        hashes = await self._persistence.batch_hashes(anchor.id)
        if not hashes:
            return False
        tree = MerkleTree(hashes)
        proof = tree.proof(record.vote_hash)
        if proof is None:
            return False
        return verify_proof(proof, record.vote_hash, anchor.merkle_root)

    async def _ledger_status(self, anchor: AnchorRecord) -> AnchorStatus | None:
        """Finality of the anchor's transaction.

        ``None`` means the transaction exists but does not carry the memo
        for the anchored root.  Lookup failures count as not confirmed.
        """
        if anchor.status is AnchorStatus.FAILED:
            return AnchorStatus.FAILED
        tx_id = anchor.ledger_tx_signature
        try:
            lookup = await self._ledger.fetch_transaction(tx_id)
            if not lookup.found:
                status = await self._ledger.confirm(tx_id, timeout=self._confirm_timeout)
                if status is AnchorStatus.PENDING:
                    # Expired before landing counts as failed; anything else waits for the memo check.
                    expired = await self._ledger.check(tx_id, anchor.recent_blockhash)
                    return AnchorStatus.FAILED if expired is AnchorStatus.FAILED else AnchorStatus.PENDING
                lookup = await self._ledger.fetch_transaction(tx_id)
                if not lookup.found:
                    return AnchorStatus.PENDING
            if not self._ledger.anchors_root(lookup, anchor.merkle_root):
                _logger.warning("Transaction %s does not anchor root %s", tx_id, anchor.merkle_root)
                return None
            return AnchorStatus.CONFIRMED if lookup.error is None else AnchorStatus.FAILED
        except PollsatError as exc:
            _logger.debug("Ledger lookup for %s failed: %s", tx_id, exc)
            return AnchorStatus.PENDING
