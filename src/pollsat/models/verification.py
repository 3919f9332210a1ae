"""Structured, non-throwing verification results."""

from __future__ import annotations

import enum

from pollsat.models._base import PollsatBaseModel


class VerificationReason(enum.StrEnum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    NOT_BATCHED = "not_batched"
    SIGNATURE_INVALID = "signature_invalid"
    MERKLE_MISMATCH = "merkle_mismatch"
    LEDGER_UNCONFIRMED = "ledger_unconfirmed"


_MESSAGES: dict[VerificationReason, str] = {
    VerificationReason.VERIFIED: "Vote successfully verified on the ledger",
    VerificationReason.NOT_FOUND: "Vote not found",
    VerificationReason.NOT_BATCHED: "Vote has not been added to a Merkle tree yet",
    VerificationReason.SIGNATURE_INVALID: "Vote signature does not match the voter key",
    VerificationReason.MERKLE_MISMATCH: "Vote is not included in the anchored Merkle root",
    VerificationReason.LEDGER_UNCONFIRMED: "Anchoring transaction is not confirmed on the ledger",
}


class VerificationEvidence(PollsatBaseModel):
    merkle_root: str
    ledger_tx_signature: str


class VerificationResult(PollsatBaseModel):
    """Answer to "was this vote cast and permanently recorded?"."""

    verified: bool
    reason: VerificationReason
    message: str
    evidence: VerificationEvidence | None = None

    @classmethod
    def failure(cls, reason: VerificationReason, evidence: VerificationEvidence | None = None) -> VerificationResult:
        return cls(verified=False, reason=reason, message=_MESSAGES[reason], evidence=evidence)

    @classmethod
    def success(cls, evidence: VerificationEvidence) -> VerificationResult:
        return cls(
            verified=True,
            reason=VerificationReason.VERIFIED,
            message=_MESSAGES[VerificationReason.VERIFIED],
            evidence=evidence,
        )
