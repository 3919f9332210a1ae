"""High-level async client wiring the pollsat core together."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from pollsat._constants import MERKLE_ROOT_KEY
from pollsat._ledger.rpc import JsonRpcTransport, RpcTransport
from pollsat.aggregation import BatchCommitter, BatchOutcome
from pollsat.auth import Authenticator, VoterRegistrar
from pollsat.config import PollsatConfig
from pollsat.custodian import KeyCustodian
from pollsat.exceptions import PollsatError
from pollsat.keystore import FileKeyStore, KeyStore, MemoryKeyStore
from pollsat.ledger import LedgerAnchor
from pollsat.models.auth import DeviceAuthState
from pollsat.models.verification import VerificationResult
from pollsat.models.vote import VoteRecord
from pollsat.persistence import Persistence
from pollsat.result import Err, Ok, err_from_exception
from pollsat.verification import VerificationService
from pollsat.votes import LocalVoteCache, VoteSigner

_logger = logging.getLogger(__name__)


class PollsatClient:
    """Async client for device identity, vote signing, anchoring and verification.

    Usage::

        async with PollsatClient(config, persistence) as client:
            await client.initialize("device-1", registrar)
            result = await client.cast_vote("poll-1", "option-a", "voter-1")
    """

    def __init__(
        self,
        config: PollsatConfig,
        persistence: Persistence,
        *,
        store: KeyStore | None = None,
        session: aiohttp.ClientSession | None = None,
        transport: RpcTransport | None = None,
    ) -> None:
        self._config = config
        self._persistence = persistence
        self._external_session = session is not None
        self._http_session = session
        self._external_transport = transport
        self._external_store = store is not None
        if store is None:
            store = FileKeyStore(config.key_store_path) if config.key_store_path else MemoryKeyStore()
        self._store: KeyStore = store

        self.custodian = KeyCustodian(self._store)
        self.authenticator = Authenticator(
            self.custodian,
            self._store,
            device_id_iterations=config.device_id_iterations,
        )
        self.signer = VoteSigner(self.custodian)
        self.local_votes = LocalVoteCache(self._store)
        self._ledger: LedgerAnchor | None = None
        self._committer: BatchCommitter | None = None
        self._verifier: VerificationService | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> PollsatClient:
        transport = self._external_transport
        if transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = JsonRpcTransport(self._config, self._http_session)
        self._ledger = LedgerAnchor(self._config, transport, self.custodian, self._store)
        self._committer = BatchCommitter(self._persistence, self._ledger)
        self._verifier = VerificationService(self._persistence, self._ledger)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_store:
            await self._store.close()
        self._ledger = None
        self._committer = None
        self._verifier = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_ledger(self) -> LedgerAnchor:
        if self._ledger is None:
            raise PollsatError("Client not initialized. Use 'async with PollsatClient(...) as client:'")
        return self._ledger

    @property
    def ledger(self) -> LedgerAnchor:
        return self._require_ledger()

    @property
    def committer(self) -> BatchCommitter:
        self._require_ledger()
        assert self._committer is not None  # noqa: S101
        return self._committer

    @property
    def verifier(self) -> VerificationService:
        self._require_ledger()
        assert self._verifier is not None  # noqa: S101
        return self._verifier

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def initialize(self, device_id: str, registrar: VoterRegistrar) -> Ok[DeviceAuthState] | Err:
        """Create (or reuse) the device identity and register it with the backend."""
        return await self.authenticator.initialize(device_id, registrar)

    async def cast_vote(self, poll_id: str, option_id: str, voter_id: str) -> Ok[VoteRecord] | Err:
        """Sign a vote, hand it to persistence and keep a local copy.

        Signing and storage failures are returned as ``Err``; an unsigned
        vote is never persisted.
        """
        try:
            record = await self.signer.build_record(poll_id, option_id, voter_id)
        except PollsatError as exc:
            _logger.warning("Vote signing failed: %s", exc)
            return err_from_exception(exc)

        try:
            stored = await self._persistence.insert_vote(record)
            await self.local_votes.append(stored)
        except PollsatError as exc:
            _logger.warning("Vote submission failed: %s", exc)
            return err_from_exception(exc)
        return Ok(stored)

    async def commit_batch(self, poll_id: str | None = None, *, confirm: bool = False) -> BatchOutcome:
        return await self.committer.commit(poll_id, confirm=confirm)

    async def verify_vote(self, vote_id: str) -> VerificationResult:
        return await self.verifier.verify_vote_id(vote_id)

    async def get_merkle_root(self) -> str | None:
        """Last Merkle root this device anchored."""
        return await self._store.get(MERKLE_ROOT_KEY)

    async def get_local_votes(self) -> list[VoteRecord]:
        return await self.local_votes.list_votes()
