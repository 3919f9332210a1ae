"""Cryptographic primitives for device identity, votes and Merkle nodes."""

from __future__ import annotations

from typing import Protocol

from pollsat._crypto.hashing import hash_device_id, hash_pair, is_hash_form, normalize_leaf, sha256_hex
from pollsat._crypto.signing import (
    b58decode,
    b58encode,
    build_canonical_message,
    generate_secret_key,
    public_key_from_secret,
    sign_detached,
    verify_detached,
)


class MessageSigner(Protocol):
    """Anything that can produce a base58 detached signature for a message.

    Implemented by :class:`pollsat.custodian.KeyCustodian`; the secret key
    stays inside the implementation.
    """

    async def sign(self, message: str | bytes) -> str: ...

    async def sign_raw(self, message: str | bytes) -> bytes: ...

    async def public_key(self) -> str: ...


__all__ = [
    "MessageSigner",
    "b58decode",
    "b58encode",
    "build_canonical_message",
    "generate_secret_key",
    "hash_device_id",
    "hash_pair",
    "is_hash_form",
    "normalize_leaf",
    "public_key_from_secret",
    "sha256_hex",
    "sign_detached",
    "verify_detached",
]
