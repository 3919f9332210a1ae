"""Anchoring Merkle roots on the ledger through a memo instruction."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pollsat._constants import LEDGER_TX_KEY, MERKLE_ROOT_KEY
from pollsat._crypto import MessageSigner
from pollsat._crypto.signing import SIGNATURE_LENGTH, b58decode
from pollsat._ledger.rpc import RpcTransport
from pollsat._ledger.transaction import SignedTransaction, build_memo_message
from pollsat.config import PollsatConfig
from pollsat.exceptions import (
    LedgerRpcError,
    LedgerSubmissionUnknownError,
    PollsatCryptoError,
    PollsatError,
    PollsatTransportError,
    SigningError,
)
from pollsat.keystore import KeyStore
from pollsat.models.anchor import AnchorStatus, TransactionLookup

_logger = logging.getLogger(__name__)

#: JSON-RPC "invalid params"; returned for malformed transaction ids.
_INVALID_PARAMS = -32602


@dataclass(frozen=True, slots=True)
class _Submission:
    tx_id: str
    recent_blockhash: str


def _is_valid_tx_id(tx_id: str) -> bool:
    try:
        return len(b58decode(tx_id)) == SIGNATURE_LENGTH
    except PollsatCryptoError:
        return False


def _extract_memos(result: dict[str, Any], memo_program_id: str) -> tuple[str, ...]:
    """Memo texts of every memo instruction in a ``getTransaction`` (json encoding) result."""
    transaction = result.get("transaction")
    if not isinstance(transaction, dict):
        return ()
    message = transaction.get("message")
    if not isinstance(message, dict):
        return ()
    keys = message.get("accountKeys") or []
    memos = []
    for instruction in message.get("instructions") or []:
        if not isinstance(instruction, dict):
            continue
        index = instruction.get("programIdIndex")
        if not isinstance(index, int) or index >= len(keys) or keys[index] != memo_program_id:
            continue
        try:
            memos.append(b58decode(str(instruction.get("data", ""))).decode("utf-8"))
        except (PollsatCryptoError, UnicodeDecodeError):
            continue
    return tuple(memos)


class LedgerAnchor:
    """Submits Merkle roots to the ledger and reports their finality.

    Submissions are remembered per root: submitting a root whose earlier
    transaction is confirmed, or may still land, returns the earlier
    transaction id instead of anchoring the root twice.
    """

    def __init__(
        self,
        config: PollsatConfig,
        transport: RpcTransport,
        signer: MessageSigner,
        store: KeyStore | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._transport = transport
        self._signer = signer
        self._store = store
        self._sleep = sleep
        self._submissions: dict[str, _Submission] = {}
        self._submit_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def memo_for_root(self, root: str) -> str:
        return f"{self._config.memo_prefix}{root}"

    async def build_memo_transaction(self, memo: str) -> SignedTransaction:
        """Fetch a recent blockhash and sign a memo transaction with the device key."""
        latest = await self._transport.call("getLatestBlockhash", [{"commitment": "finalized"}])
        try:
            blockhash = str(latest["value"]["blockhash"])
        except (KeyError, TypeError) as exc:
            raise PollsatTransportError(
                "getLatestBlockhash returned no blockhash",
                method="getLatestBlockhash",
            ) from exc

        try:
            message = build_memo_message(
                fee_payer=b58decode(await self._signer.public_key()),
                memo_program=b58decode(self._config.memo_program_id),
                recent_blockhash=b58decode(blockhash),
                memo=memo.encode("utf-8"),
            )
            signature = await self._signer.sign_raw(message)
            return SignedTransaction(message=message, signature=signature, recent_blockhash=blockhash)
        except SigningError:
            raise
        except PollsatCryptoError as exc:
            raise SigningError(f"Failed to build memo transaction: {exc}") from exc

    def submission_blockhash(self, root: str) -> str | None:
        """Blockhash of the latest submission for *root* made by this anchor."""
        submission = self._submissions.get(root)
        return submission.recent_blockhash if submission is not None else None

    async def is_blockhash_valid(self, blockhash: str) -> bool:
        result = await self._transport.call("isBlockhashValid", [blockhash, {"commitment": "processed"}])
        return bool(result.get("value")) if isinstance(result, dict) else False

    async def _prior_submission_is_live(self, submission: _Submission) -> bool:
        """Whether an earlier transaction for the same root is confirmed or may still land."""
        status = await self.get_signature_status(submission.tx_id)
        if status is AnchorStatus.FAILED:
            return False
        if status is not None:
            return True
        # Unknown to the ledger: it can still land until its blockhash expires.
        return await self.is_blockhash_valid(submission.recent_blockhash)

    async def submit_memo(self, memo: str, *, key: str | None = None) -> str:
        """Sign and send a memo transaction; returns the transaction id.

        *key* identifies the logical record (the Merkle root for
        :meth:`submit`); a live earlier submission under the same key is
        returned instead of sending again.

        Raises
        ------
        LedgerSubmissionUnknownError
            The transaction was sent but its fate is unknown.  Re-check with
            :meth:`confirm` before retrying.
        LedgerRpcError
            The node rejected the transaction.
        """
        dedupe_key = key if key is not None else memo
        async with self._submit_lock:
            prior = self._submissions.get(dedupe_key)
            if prior is not None:
                try:
                    live = await self._prior_submission_is_live(prior)
                except PollsatError as exc:
                    raise LedgerSubmissionUnknownError(
                        f"cannot determine state of earlier submission {prior.tx_id}: {exc}",
                        tx_id=prior.tx_id,
                        merkle_root=dedupe_key,
                    ) from exc
                if live:
                    _logger.debug("Reusing live submission %s for %s", prior.tx_id, dedupe_key)
                    return prior.tx_id
                _logger.debug("Earlier submission %s for %s is dead; resubmitting", prior.tx_id, dedupe_key)

            tx = await self.build_memo_transaction(memo)
            tx_id = tx.tx_id
            self._submissions[dedupe_key] = _Submission(tx_id=tx_id, recent_blockhash=tx.recent_blockhash)

            try:
                await self._transport.call(
                    "sendTransaction",
                    [tx.to_base64(), {"encoding": "base64", "preflightCommitment": "confirmed"}],
                    retry=False,
                )
            except LedgerRpcError:
                # A definite rejection: nothing landed.
                del self._submissions[dedupe_key]
                raise
            except PollsatTransportError as exc:
                await self._resolve_ambiguous_send(tx_id, dedupe_key, exc)

            _logger.debug("Submitted memo transaction %s", tx_id)
            return tx_id

    async def _resolve_ambiguous_send(self, tx_id: str, key: str, cause: Exception) -> None:
        """After a failed send, decide whether the transaction reached the ledger."""
        _logger.warning("sendTransaction outcome unknown for %s: %s", tx_id, cause)
        try:
            status = await self.get_signature_status(tx_id)
        except PollsatError as exc:
            raise LedgerSubmissionUnknownError(
                f"submission {tx_id} outcome unknown and status check failed: {exc}",
                tx_id=tx_id,
                merkle_root=key,
            ) from cause
        if status is None:
            raise LedgerSubmissionUnknownError(
                f"submission {tx_id} outcome unknown",
                tx_id=tx_id,
                merkle_root=key,
            ) from cause
        if status is AnchorStatus.FAILED:
            del self._submissions[key]
            raise LedgerRpcError(f"transaction {tx_id} failed on the ledger", method="sendTransaction") from cause

    async def submit(self, root: str) -> str:
        """Anchor a Merkle root; returns the ledger transaction id.

        The latest root and transaction id are recorded in the key store.
        """
        tx_id = await self.submit_memo(self.memo_for_root(root), key=root)
        if self._store is not None:
            await self._store.set(MERKLE_ROOT_KEY, root)
            await self._store.set(LEDGER_TX_KEY, tx_id)
        return tx_id

    # ------------------------------------------------------------------
    # Finality
    # ------------------------------------------------------------------

    def _meets_commitment(self, level: str | None) -> bool:
        order = ("processed", "confirmed", "finalized")
        if level not in order:
            return False
        return order.index(level) >= order.index(self._config.commitment)

    async def get_signature_status(self, tx_id: str) -> AnchorStatus | None:
        """Current status of *tx_id*, or ``None`` when the ledger has never seen it."""
        if not _is_valid_tx_id(tx_id):
            return None
        result = await self._transport.call(
            "getSignatureStatuses",
            [[tx_id], {"searchTransactionHistory": True}],
        )
        values = result.get("value") if isinstance(result, dict) else None
        entry = values[0] if isinstance(values, list) and values else None
        if not isinstance(entry, dict):
            return None
        if entry.get("err") is not None:
            return AnchorStatus.FAILED
        if self._meets_commitment(entry.get("confirmationStatus")):
            return AnchorStatus.CONFIRMED
        return AnchorStatus.PENDING

    async def confirm(
        self,
        tx_id: str,
        *,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> AnchorStatus:
        """Poll until *tx_id* is final, failed, or *timeout* elapses.

        Never blocks past *timeout* (default ``config.confirm_timeout``);
        returns ``PENDING`` if finality was not observed in time.  Transient
        network errors during polling are logged and polling continues.
        """
        effective_timeout = self._config.confirm_timeout if timeout is None else timeout
        interval = self._config.confirm_poll_interval if poll_interval is None else poll_interval
        try:
            async with asyncio.timeout(effective_timeout):
                while True:
                    try:
                        status = await self.get_signature_status(tx_id)
                    except PollsatTransportError as exc:
                        _logger.debug("Status poll for %s failed: %s", tx_id, exc)
                        status = None
                    if status in (AnchorStatus.CONFIRMED, AnchorStatus.FAILED):
                        return status
                    await self._sleep(interval)
        except TimeoutError:
            _logger.debug("Confirmation of %s timed out after %.1fs", tx_id, effective_timeout)
        return AnchorStatus.PENDING

    async def check(self, tx_id: str, recent_blockhash: str | None = None) -> AnchorStatus:
        """Single status lookup that also recognises dead transactions.

        A transaction the ledger has never seen is ``FAILED`` once
        *recent_blockhash* has expired; without a blockhash it stays
        ``PENDING``.  Status is re-read after the expiry check so a
        transaction landing in between is not misreported.
        """
        status = await self.get_signature_status(tx_id)
        if status is not None or recent_blockhash is None:
            return status or AnchorStatus.PENDING
        if await self.is_blockhash_valid(recent_blockhash):
            return AnchorStatus.PENDING
        status = await self.get_signature_status(tx_id)
        if status is None:
            _logger.warning("Transaction %s never landed and its blockhash expired", tx_id)
            return AnchorStatus.FAILED
        return status

    async def fetch_transaction(self, tx_id: str) -> TransactionLookup:
        """Read-only lookup; ``found=False`` when the ledger has no record."""
        if not _is_valid_tx_id(tx_id):
            return TransactionLookup(tx_id=tx_id, found=False)
        commitment = "confirmed" if self._config.commitment == "processed" else self._config.commitment
        try:
            result = await self._transport.call(
                "getTransaction",
                [tx_id, {"encoding": "json", "commitment": commitment, "maxSupportedTransactionVersion": 0}],
            )
        except LedgerRpcError as exc:
            if exc.code == _INVALID_PARAMS:
                return TransactionLookup(tx_id=tx_id, found=False)
            raise
        if not isinstance(result, dict):
            return TransactionLookup(tx_id=tx_id, found=False)
        meta = result.get("meta") if isinstance(result.get("meta"), dict) else {}
        return TransactionLookup(
            tx_id=tx_id,
            found=True,
            slot=result.get("slot"),
            block_time=result.get("blockTime"),
            error=meta.get("err"),
            memos=_extract_memos(result, self._config.memo_program_id),
        )

    def anchors_root(self, lookup: TransactionLookup, root: str) -> bool:
        """Whether *lookup* carries the memo anchoring *root*."""
        return lookup.found and self.memo_for_root(root) in lookup.memos

    async def is_confirmed(self, tx_id: str) -> bool:
        """Whether the ledger holds *tx_id* and reports it as successful."""
        lookup = await self.fetch_transaction(tx_id)
        return lookup.succeeded
