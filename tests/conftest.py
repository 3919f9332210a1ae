from __future__ import annotations

import base64
from typing import Any

import pytest
import pytest_asyncio

from pollsat._constants import MEMO_PROGRAM_ID
from pollsat._crypto.signing import b58encode
from pollsat._ledger.transaction import decode_compact_u16
from pollsat.config import PollsatConfig
from pollsat.custodian import KeyCustodian
from pollsat.keystore import MemoryKeyStore
from pollsat.ledger import LedgerAnchor

BLOCKHASH = b58encode(bytes([9]) * 32)

FINALIZED: dict[str, Any] = {"slot": 10, "confirmations": None, "err": None, "confirmationStatus": "finalized"}


def _memo_from_message(message: bytes) -> tuple[str, bytes]:
    """Return ``(fee_payer, memo)`` from a compiled single-memo message."""
    payer = b58encode(message[4:36])
    offset = 3 + 1 + 64 + 32 + 1 + 1
    _, offset = decode_compact_u16(message, offset)
    offset += 1
    length, offset = decode_compact_u16(message, offset)
    return payer, message[offset : offset + length]


class FakeLedgerRpc:
    """In-memory JSON-RPC node that records calls and lands sent transactions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []
        self.sent: list[str] = []
        self.statuses: dict[str, dict[str, Any] | None] = {}
        self.transactions: dict[str, dict[str, Any]] = {}
        self.status_after_send: dict[str, Any] | None = FINALIZED
        self.send_error: Exception | None = None
        self.land_on_error = False
        self.blockhash_valid = True
        self.errors: dict[str, Exception] = {}

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def _land(self, wire: bytes) -> str:
        tx_id = b58encode(wire[1:65])
        payer, memo = _memo_from_message(wire[65:])
        self.sent.append(tx_id)
        self.statuses[tx_id] = self.status_after_send
        if self.status_after_send is None:
            return tx_id
        err = self.status_after_send.get("err")
        self.transactions[tx_id] = {
            "slot": 10,
            "blockTime": 1_700_000_000,
            "meta": {"err": err},
            "transaction": {
                "signatures": [tx_id],
                "message": {
                    "accountKeys": [payer, MEMO_PROGRAM_ID],
                    "instructions": [{"programIdIndex": 1, "accounts": [0], "data": b58encode(memo)}],
                },
            },
        }
        return tx_id

    async def call(self, method: str, params: list[Any], *, retry: bool = True) -> Any:
        self.calls.append((method, retry))
        if method in self.errors:
            raise self.errors[method]
        if method == "getLatestBlockhash":
            return {"context": {"slot": 10}, "value": {"blockhash": BLOCKHASH, "lastValidBlockHeight": 300}}
        if method == "sendTransaction":
            wire = base64.b64decode(params[0])
            if self.send_error is not None:
                if self.land_on_error:
                    self._land(wire)
                raise self.send_error
            return self._land(wire)
        if method == "getSignatureStatuses":
            return {"context": {"slot": 10}, "value": [self.statuses.get(params[0][0])]}
        if method == "isBlockhashValid":
            return {"context": {"slot": 10}, "value": self.blockhash_valid}
        if method == "getTransaction":
            return self.transactions.get(params[0])
        raise AssertionError(f"unexpected RPC method {method}")


@pytest.fixture
def config() -> PollsatConfig:
    return PollsatConfig(confirm_timeout=0.2, confirm_poll_interval=0.01)


@pytest.fixture
def fake_rpc() -> FakeLedgerRpc:
    return FakeLedgerRpc()


@pytest.fixture
def key_store() -> MemoryKeyStore:
    return MemoryKeyStore()


@pytest_asyncio.fixture
async def anchor(config: PollsatConfig, fake_rpc: FakeLedgerRpc, key_store: MemoryKeyStore) -> LedgerAnchor:
    custodian = KeyCustodian(key_store)
    await custodian.get_or_create_key_pair()
    return LedgerAnchor(config, fake_rpc, custodian, key_store)
