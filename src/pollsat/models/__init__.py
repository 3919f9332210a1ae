"""Data models for pollsat records."""

from pollsat.models._base import PollsatBaseModel, TransitionEnum, now_ms
from pollsat.models.anchor import AnchorRecord, AnchorStatus, TransactionLookup
from pollsat.models.auth import DeviceAuthState, DeviceSignature, SessionCredential
from pollsat.models.keys import DeviceKeyPair, KeyPairResult
from pollsat.models.merkle import MerkleProof, ProofSide, ProofStep, fold_proof_path
from pollsat.models.verification import VerificationEvidence, VerificationReason, VerificationResult
from pollsat.models.vote import SignedVote, VoteRecord, VoteStatus

__all__ = [
    "AnchorRecord",
    "AnchorStatus",
    "DeviceAuthState",
    "DeviceKeyPair",
    "DeviceSignature",
    "KeyPairResult",
    "MerkleProof",
    "PollsatBaseModel",
    "ProofSide",
    "ProofStep",
    "SessionCredential",
    "SignedVote",
    "TransactionLookup",
    "TransitionEnum",
    "VerificationEvidence",
    "VerificationReason",
    "VerificationResult",
    "VoteRecord",
    "VoteStatus",
    "fold_proof_path",
    "now_ms",
]
