"""Device key custody.

The custodian is the only owner of the device secret key.  Callers hand it
data to sign; the key itself is never returned, logged or transmitted.
"""

from __future__ import annotations

import asyncio
import json
import logging

from pydantic import SecretBytes

from pollsat._constants import DEVICE_KEYPAIR_KEY
from pollsat._crypto.signing import (
    b58decode,
    b58encode,
    generate_secret_key,
    public_key_from_secret,
    sign_detached,
)
from pollsat.exceptions import PollsatCryptoError, SigningError, StorageUnavailableError
from pollsat.keystore import KeyStore
from pollsat.models.keys import DeviceKeyPair, KeyPairResult

_logger = logging.getLogger(__name__)


def _encode_key_pair(secret_key: bytes) -> str:
    public = public_key_from_secret(secret_key)
    return json.dumps(
        {"secretKey": b58encode(secret_key), "publicKey": b58encode(public)},
        separators=(",", ":"),
    )


def _decode_key_pair(blob: str) -> DeviceKeyPair:
    """Parse a stored key pair blob.

    A blob that exists but cannot be decoded is a storage failure, not an
    invitation to generate a replacement identity.
    """
    try:
        data = json.loads(blob)
        secret = b58decode(data["secretKey"])
        public = b58encode(public_key_from_secret(secret))
    except (json.JSONDecodeError, KeyError, TypeError, PollsatCryptoError, ValueError) as exc:
        raise StorageUnavailableError("stored device key pair is unreadable", key=DEVICE_KEYPAIR_KEY) from exc
    if data.get("publicKey") != public:
        raise StorageUnavailableError("stored device public key does not match its secret", key=DEVICE_KEYPAIR_KEY)
    return DeviceKeyPair(secret_key=SecretBytes(secret), public_key=public)


class KeyCustodian:
    """Generates the device key pair once and signs on its behalf.

    Usage::

        custodian = KeyCustodian(store)
        result = await custodian.get_or_create_key_pair()
        signature = await custodian.sign("device-1:1700000000000")
    """

    def __init__(self, store: KeyStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self._key_pair: DeviceKeyPair | None = None

    async def _load(self) -> DeviceKeyPair | None:
        blob = await self._store.get(DEVICE_KEYPAIR_KEY)
        if blob is None:
            return None
        return _decode_key_pair(blob)

    async def get_or_create_key_pair(self) -> KeyPairResult:
        """Return the stored key pair, generating and persisting one on first use.

        Generation is a critical section: the in-process lock serialises
        concurrent first-run calls and the store-level compare-and-set keeps
        two custodians sharing one store from creating distinct identities.

        Raises
        ------
        StorageUnavailableError
            Secure storage cannot be read or written, or holds an unreadable
            key pair.
        """
        if self._key_pair is not None:
            return KeyPairResult(key_pair=self._key_pair, existing=True)

        async with self._lock:
            if self._key_pair is not None:
                return KeyPairResult(key_pair=self._key_pair, existing=True)

            stored = await self._load()
            if stored is not None:
                self._key_pair = stored
                return KeyPairResult(key_pair=stored, existing=True)

            secret = generate_secret_key()
            blob = _encode_key_pair(secret)
            if not await self._store.compare_and_set(DEVICE_KEYPAIR_KEY, None, blob):
                # Another writer won the race; adopt its key.
                winner = await self._load()
                if winner is None:
                    raise StorageUnavailableError(
                        "device key pair vanished during generation",
                        key=DEVICE_KEYPAIR_KEY,
                    )
                self._key_pair = winner
                return KeyPairResult(key_pair=winner, existing=True)

            self._key_pair = _decode_key_pair(blob)
            _logger.debug("Generated device key pair public_key=%s", self._key_pair.public_key)
            return KeyPairResult(key_pair=self._key_pair, existing=False)

    async def get_key_pair(self) -> DeviceKeyPair | None:
        """Return the stored key pair without generating one."""
        if self._key_pair is None:
            self._key_pair = await self._load()
        return self._key_pair

    async def _require_key_pair(self) -> DeviceKeyPair:
        key_pair = await self.get_key_pair()
        if key_pair is None:
            raise SigningError("No device key pair found; call get_or_create_key_pair() first")
        return key_pair

    async def public_key(self) -> str:
        return (await self._require_key_pair()).public_key

    async def sign_raw(self, message: str | bytes) -> bytes:
        """Detached Ed25519 signature over *message* as raw bytes."""
        key_pair = await self._require_key_pair()
        return sign_detached(message, key_pair.secret_key.get_secret_value())

    async def sign(self, message: str | bytes) -> str:
        """Detached Ed25519 signature over *message*, base58 encoded."""
        return b58encode(await self.sign_raw(message))
