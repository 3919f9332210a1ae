"""pollsat - Verifiable anonymous poll votes anchored on a public ledger."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pollsat")
except PackageNotFoundError:
    __version__ = "0+local"
from pollsat.aggregation import BatchCommitter, BatchOutcome, BatchOutcomeStatus
from pollsat.auth import Authenticator, VoterRegistrar
from pollsat.client import PollsatClient
from pollsat.config import PollsatConfig
from pollsat.custodian import KeyCustodian
from pollsat.exceptions import (
    AuthError,
    DoubleBatchingDetectedError,
    InvalidTransitionError,
    LedgerRpcError,
    LedgerSubmissionUnknownError,
    NetworkTransientError,
    PollsatConfigError,
    PollsatCryptoError,
    PollsatError,
    PollsatTransportError,
    SigningError,
    StorageUnavailableError,
)
from pollsat.keystore import FileKeyStore, KeyStore, MemoryKeyStore
from pollsat.ledger import LedgerAnchor
from pollsat.merkle import MerkleAggregator, MerkleTree, verify_proof
from pollsat.models import (
    AnchorRecord,
    AnchorStatus,
    DeviceKeyPair,
    DeviceSignature,
    KeyPairResult,
    MerkleProof,
    ProofSide,
    ProofStep,
    SessionCredential,
    SignedVote,
    TransactionLookup,
    VerificationReason,
    VerificationResult,
    VoteRecord,
    VoteStatus,
)
from pollsat.persistence import MemoryPersistence, Persistence
from pollsat.result import Err, ErrorKind, Ok
from pollsat.verification import VerificationService
from pollsat.votes import LocalVoteCache, VoteSigner, compute_vote_hash

__all__ = [
    "__version__",
    "AnchorRecord",
    "AnchorStatus",
    "AuthError",
    "Authenticator",
    "BatchCommitter",
    "BatchOutcome",
    "BatchOutcomeStatus",
    "DeviceKeyPair",
    "DeviceSignature",
    "DoubleBatchingDetectedError",
    "Err",
    "ErrorKind",
    "FileKeyStore",
    "InvalidTransitionError",
    "KeyCustodian",
    "KeyPairResult",
    "KeyStore",
    "LedgerAnchor",
    "LedgerRpcError",
    "LedgerSubmissionUnknownError",
    "LocalVoteCache",
    "MemoryKeyStore",
    "MemoryPersistence",
    "MerkleAggregator",
    "MerkleProof",
    "MerkleTree",
    "NetworkTransientError",
    "Ok",
    "Persistence",
    "PollsatClient",
    "PollsatConfig",
    "PollsatConfigError",
    "PollsatCryptoError",
    "PollsatError",
    "PollsatTransportError",
    "ProofSide",
    "ProofStep",
    "SessionCredential",
    "SignedVote",
    "SigningError",
    "StorageUnavailableError",
    "TransactionLookup",
    "VerificationReason",
    "VerificationResult",
    "VerificationService",
    "VoteRecord",
    "VoteSigner",
    "VoteStatus",
    "VoterRegistrar",
    "compute_vote_hash",
    "verify_proof",
]
