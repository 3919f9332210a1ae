"""Legacy ledger transaction wire format, restricted to one memo instruction.

Layout of a serialised transaction::

    compact-u16 signature count | 64-byte signatures | message

and of the message::

    header (3 x u8) | compact-u16 key count | 32-byte keys
    | 32-byte recent blockhash
    | compact-u16 instruction count | instructions

Each instruction is ``u8 program index | compact-u16 n | n x u8 account
indices | compact-u16 m | m data bytes``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass

from pollsat._crypto.signing import PUBLIC_KEY_LENGTH, SIGNATURE_LENGTH, b58encode
from pollsat.exceptions import PollsatCryptoError

#: Transactions larger than one network packet are rejected by validators.
MAX_TRANSACTION_SIZE = 1232
BLOCKHASH_LENGTH = 32


def encode_compact_u16(value: int) -> bytes:
    """Variable-length encoding: 7 bits per byte, high bit = "more follows"."""
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"compact-u16 out of range: {value}")
    out = bytearray()
    remaining = value
    while True:
        byte = remaining & 0x7F
        remaining >>= 7
        if remaining:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_compact_u16(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a compact-u16 at *offset*; returns ``(value, next_offset)``."""
    value = 0
    for shift_index in range(3):
        if offset >= len(data):
            raise ValueError("truncated compact-u16")
        byte = data[offset]
        offset += 1
        value |= (byte & 0x7F) << (7 * shift_index)
        if not byte & 0x80:
            return value, offset
    raise ValueError("compact-u16 longer than 3 bytes")


def _check_len(name: str, value: bytes, expected: int) -> None:
    if len(value) != expected:
        raise PollsatCryptoError(f"{name} must be {expected} bytes (got {len(value)})")


def build_memo_message(
    *,
    fee_payer: bytes,
    memo_program: bytes,
    recent_blockhash: bytes,
    memo: bytes,
) -> bytes:
    """Compile a message with a single memo instruction signed by *fee_payer*.

    Accounts: ``[fee_payer (signer, writable), memo_program (readonly)]``.
    """
    _check_len("fee payer", fee_payer, PUBLIC_KEY_LENGTH)
    _check_len("memo program", memo_program, PUBLIC_KEY_LENGTH)
    _check_len("recent blockhash", recent_blockhash, BLOCKHASH_LENGTH)

    header = bytes((1, 0, 1))
    keys = encode_compact_u16(2) + fee_payer + memo_program
    instruction = bytes((1,)) + encode_compact_u16(1) + bytes((0,)) + encode_compact_u16(len(memo)) + memo
    instructions = encode_compact_u16(1) + instruction
    return header + keys + recent_blockhash + instructions


@dataclass(frozen=True, slots=True)
class SignedTransaction:
    """A message together with its fee-payer signature."""

    message: bytes
    signature: bytes
    recent_blockhash: str

    def __post_init__(self) -> None:
        _check_len("signature", self.signature, SIGNATURE_LENGTH)

    @property
    def tx_id(self) -> str:
        """The ledger identifies a transaction by its first signature."""
        return b58encode(self.signature)

    def serialize(self) -> bytes:
        wire = encode_compact_u16(1) + self.signature + self.message
        if len(wire) > MAX_TRANSACTION_SIZE:
            raise PollsatCryptoError(f"transaction is {len(wire)} bytes; limit is {MAX_TRANSACTION_SIZE}")
        return wire

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")
