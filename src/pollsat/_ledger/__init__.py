"""Ledger wire format and RPC transport."""

from pollsat._ledger.rpc import JsonRpcTransport, RpcTransport
from pollsat._ledger.transaction import (
    MAX_TRANSACTION_SIZE,
    SignedTransaction,
    build_memo_message,
    decode_compact_u16,
    encode_compact_u16,
)

__all__ = [
    "JsonRpcTransport",
    "MAX_TRANSACTION_SIZE",
    "RpcTransport",
    "SignedTransaction",
    "build_memo_message",
    "decode_compact_u16",
    "encode_compact_u16",
]
