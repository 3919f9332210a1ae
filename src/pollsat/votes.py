"""Vote hashing, signing and the local pending-vote cache."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable

from pydantic import TypeAdapter, ValidationError

from pollsat._constants import LOCAL_VOTE_CACHE_KEY
from pollsat._crypto import MessageSigner
from pollsat._crypto.hashing import sha256_hex
from pollsat._crypto.signing import build_canonical_message, verify_detached
from pollsat.exceptions import PollsatCryptoError, SigningError, StorageUnavailableError
from pollsat.keystore import KeyStore
from pollsat.models._base import now_ms
from pollsat.models.vote import SignedVote, VoteRecord, VoteStatus

_logger = logging.getLogger(__name__)

_VOTE_LIST = TypeAdapter(list[VoteRecord])


def canonical_vote_message(voter_id: str, poll_id: str, option_id: str, timestamp: int) -> str:
    """``voterId:pollId:optionId:timestamp``; the string both hashed and signed.

    Raises :class:`SigningError` for empty identifiers, identifiers containing
    ``:`` and non-positive timestamps.
    """
    if isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp <= 0:
        raise SigningError(f"vote timestamp must be a positive integer, got {timestamp!r}")
    return build_canonical_message(voter_id, poll_id, option_id, timestamp)


def compute_vote_hash(voter_id: str, poll_id: str, option_id: str, timestamp: int) -> str:
    """Deterministic SHA-256 hex digest of the canonical vote tuple."""
    return sha256_hex(canonical_vote_message(voter_id, poll_id, option_id, timestamp))


def verify_vote_signature(record: VoteRecord, public_key: str) -> bool:
    """Check that *record* was signed by *public_key* and its hash matches its fields."""
    try:
        message = canonical_vote_message(record.voter_id, record.poll_id, record.option_id, record.timestamp)
    except SigningError:
        return False
    if sha256_hex(message) != record.vote_hash:
        return False
    return verify_detached(message, record.signature, public_key)


class VoteSigner:
    """Binds ``{voter, poll, option, time}`` to the device key.

    Does not persist anything; the caller stores the result.
    """

    def __init__(self, signer: MessageSigner, *, clock: Callable[[], int] = now_ms) -> None:
        self._signer = signer
        self._clock = clock

    async def sign(
        self,
        poll_id: str,
        option_id: str,
        voter_id: str,
        *,
        timestamp: int | None = None,
    ) -> SignedVote:
        """Hash and sign a vote.

        Parameters
        ----------
        poll_id, option_id, voter_id : str
            Vote coordinates.
        timestamp : int, optional
            Epoch milliseconds.  Captured from the clock when omitted.

        Raises
        ------
        SigningError
            Invalid coordinates or timestamp, missing device key, or a
            signing failure.
        """
        ts = self._clock() if timestamp is None else timestamp
        message = canonical_vote_message(voter_id, poll_id, option_id, ts)
        vote_hash = sha256_hex(message)
        try:
            signature = await self._signer.sign(message)
        except SigningError:
            raise
        except PollsatCryptoError as exc:
            raise SigningError(f"Failed to sign vote: {exc}") from exc
        _logger.debug("Signed vote poll=%s option=%s hash=%s", poll_id, option_id, vote_hash)
        return SignedVote(signature=signature, vote_hash=vote_hash, timestamp=ts)

    async def build_record(
        self,
        poll_id: str,
        option_id: str,
        voter_id: str,
        *,
        timestamp: int | None = None,
    ) -> VoteRecord:
        """Sign a vote and wrap it in a :class:`VoteRecord` in ``signed`` status."""
        signed = await self.sign(poll_id, option_id, voter_id, timestamp=timestamp)
        return VoteRecord(
            voter_id=voter_id,
            poll_id=poll_id,
            option_id=option_id,
            timestamp=signed.timestamp,
            vote_hash=signed.vote_hash,
            signature=signed.signature,
            status=VoteStatus.SIGNED,
        )


class LocalVoteCache:
    """Ordered list of vote records kept on the device until synced."""

    def __init__(self, store: KeyStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def _read(self) -> list[VoteRecord]:
        blob = await self._store.get(LOCAL_VOTE_CACHE_KEY)
        if not blob:
            return []
        try:
            return _VOTE_LIST.validate_json(blob)
        except ValidationError as exc:
            raise StorageUnavailableError("local vote cache is unreadable", key=LOCAL_VOTE_CACHE_KEY) from exc

    async def _write(self, votes: list[VoteRecord]) -> None:
        payload = [vote.model_dump(mode="json", by_alias=True) for vote in votes]
        await self._store.set(LOCAL_VOTE_CACHE_KEY, json.dumps(payload, separators=(",", ":")))

    async def list_votes(self) -> list[VoteRecord]:
        return await self._read()

    async def append(self, vote: VoteRecord) -> None:
        async with self._lock:
            votes = await self._read()
            votes.append(vote)
            await self._write(votes)

    async def remove(self, vote_ids: Iterable[str]) -> int:
        """Drop synced votes; returns how many were removed."""
        targets = set(vote_ids)
        async with self._lock:
            votes = await self._read()
            kept = [vote for vote in votes if vote.id not in targets]
            removed = len(votes) - len(kept)
            if removed:
                await self._write(kept)
            return removed
