"""Ed25519 detached signatures and canonical message strings.

Keys use the ledger's conventions: a 64-byte secret (32-byte seed followed
by the 32-byte public key) and base58 text for public keys and signatures.
"""

from __future__ import annotations

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from pollsat._constants import CANONICAL_SEPARATOR
from pollsat.exceptions import PollsatCryptoError, SigningError

SEED_LENGTH = 32
PUBLIC_KEY_LENGTH = 32
SECRET_KEY_LENGTH = SEED_LENGTH + PUBLIC_KEY_LENGTH
SIGNATURE_LENGTH = 64


def build_canonical_message(*parts: str | int) -> str:
    """Join message parts with ``:``.

    Parts must not contain the separator themselves, otherwise two distinct
    tuples could serialise to the same string.

    Raises :class:`SigningError` for an empty part or one containing ``:``.
    """
    rendered: list[str] = []
    for part in parts:
        text = str(part)
        if not text:
            raise SigningError("canonical message parts must be non-empty")
        if CANONICAL_SEPARATOR in text:
            raise SigningError(f"canonical message part must not contain {CANONICAL_SEPARATOR!r}: {text!r}")
        rendered.append(text)
    return CANONICAL_SEPARATOR.join(rendered)


def b58encode(data: bytes) -> str:
    return base58.b58encode(data).decode("ascii")


def b58decode(text: str) -> bytes:
    """Decode base58 text, raising :class:`PollsatCryptoError` on bad input."""
    try:
        return base58.b58decode(text)
    except ValueError as exc:
        raise PollsatCryptoError(f"invalid base58 value: {text[:16]!r}") from exc


def generate_secret_key() -> bytes:
    """Generate a fresh 64-byte Ed25519 secret key (seed || public key)."""
    private = Ed25519PrivateKey.generate()
    return private.private_bytes_raw() + private.public_key().public_bytes_raw()


def _load_private(secret_key: bytes) -> Ed25519PrivateKey:
    if len(secret_key) != SECRET_KEY_LENGTH:
        raise PollsatCryptoError(f"secret key must be {SECRET_KEY_LENGTH} bytes (got {len(secret_key)})")
    private = Ed25519PrivateKey.from_private_bytes(secret_key[:SEED_LENGTH])
    if private.public_key().public_bytes_raw() != secret_key[SEED_LENGTH:]:
        raise PollsatCryptoError("secret key public half does not match its seed")
    return private


def public_key_from_secret(secret_key: bytes) -> bytes:
    """Return the raw 32-byte public key embedded in *secret_key* (validated)."""
    return _load_private(secret_key).public_key().public_bytes_raw()


def sign_detached(message: str | bytes, secret_key: bytes) -> bytes:
    """Sign *message* and return the raw 64-byte signature.

    Raises :class:`SigningError` if the key is malformed.
    """
    data = message.encode("utf-8") if isinstance(message, str) else message
    try:
        private = _load_private(secret_key)
    except (PollsatCryptoError, ValueError) as exc:
        raise SigningError(f"cannot sign with malformed secret key: {exc}") from exc
    return private.sign(data)


def verify_detached(message: str | bytes, signature: str, public_key: str) -> bool:
    """Verify a base58 detached signature against a base58 public key.

    Pure and total: malformed signatures, keys or messages yield ``False``.
    """
    try:
        data = message.encode("utf-8") if isinstance(message, str) else bytes(message)
        sig_bytes = b58decode(signature)
        key_bytes = b58decode(public_key)
        if len(sig_bytes) != SIGNATURE_LENGTH or len(key_bytes) != PUBLIC_KEY_LENGTH:
            return False
        Ed25519PublicKey.from_public_bytes(key_bytes).verify(sig_bytes, data)
    except (InvalidSignature, PollsatCryptoError, ValueError, TypeError, AttributeError):
        return False
    return True
