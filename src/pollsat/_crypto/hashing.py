"""Hash functions for vote hashes, Merkle nodes and device pseudonyms."""

from __future__ import annotations

import hashlib
import string

from pollsat._constants import HASH_HEX_LENGTH

_HEX_DIGITS = frozenset(string.hexdigits)


def sha256_hex(value: str | bytes) -> str:
    """Compute SHA-256 of a UTF-8 string (or raw bytes), returning lowercase hex.

    Parameters
    ----------
    value : str or bytes
        The data to hash.

    Returns
    -------
    str
        64-character lowercase hex digest.
    """
    data = value.encode("utf-8") if isinstance(value, str) else value
    return hashlib.sha256(data).hexdigest()


def is_hash_form(value: str) -> bool:
    """Whether *value* already looks like a SHA-256 hex digest."""
    return len(value) == HASH_HEX_LENGTH and all(ch in _HEX_DIGITS for ch in value)


def normalize_leaf(value: str) -> str:
    """Return *value* in hash form, hashing anything that is not one already.

    Hex digests are lowercased so that the same digest in different case
    maps to the same leaf.
    """
    if is_hash_form(value):
        return value.lower()
    return sha256_hex(value)


def hash_pair(left: str, right: str) -> str:
    """Parent node of two hex nodes: ``SHA256(left || right)`` over the hex text."""
    return sha256_hex(left + right)


def hash_device_id(device_id: str, salt: str, iterations: int = 1000) -> str:
    """Pseudonymise a device identifier with PBKDF2-HMAC-SHA256.

    Parameters
    ----------
    device_id : str
        Raw device identifier.
    salt : str
        Per-registration nonce.
    iterations : int
        PBKDF2 iteration count.

    Returns
    -------
    str
        64-character lowercase hex (32-byte derived key).
    """
    derived = hashlib.pbkdf2_hmac(
        "sha256",
        device_id.encode("utf-8"),
        salt.encode("utf-8"),
        iterations,
        dklen=32,
    )
    return derived.hex()
