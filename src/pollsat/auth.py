"""Device identity challenges and anonymous registration."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from typing import Protocol

from pydantic import ValidationError

from pollsat._constants import ACCESS_TOKEN_KEY, DEVICE_AUTH_KEY
from pollsat._crypto.hashing import hash_device_id
from pollsat._crypto.signing import build_canonical_message, verify_detached
from pollsat.custodian import KeyCustodian
from pollsat.exceptions import AuthError, StorageUnavailableError
from pollsat.keystore import KeyStore
from pollsat.models._base import now_ms
from pollsat.models.auth import DeviceAuthState, DeviceSignature, SessionCredential
from pollsat.result import Err, ErrorKind, Ok

_logger = logging.getLogger(__name__)


class VoterRegistrar(Protocol):
    """Backend collaborator that binds a public key to an anonymous session.

    Raises :class:`AuthError` when registration is refused or fails.
    """

    async def register(self, public_key: str) -> SessionCredential: ...


def generate_nonce() -> str:
    """16 random bytes as lowercase hex."""
    return secrets.token_hex(16)


class Authenticator:
    """Signs and verifies device-identity challenges."""

    def __init__(
        self,
        custodian: KeyCustodian,
        store: KeyStore,
        *,
        clock: Callable[[], int] = now_ms,
        device_id_iterations: int = 1000,
    ) -> None:
        self._custodian = custodian
        self._store = store
        self._clock = clock
        self._device_id_iterations = device_id_iterations

    async def create_device_signature(self, device_id: str) -> DeviceSignature:
        """Sign ``deviceId:timestamp`` with the device key (created on first use)."""
        key_result = await self._custodian.get_or_create_key_pair()
        timestamp = self._clock()
        message = build_canonical_message(device_id, timestamp)
        signature = await self._custodian.sign(message)
        return DeviceSignature(
            device_id=device_id,
            timestamp=timestamp,
            signature=signature,
            public_key=key_result.public_key,
        )

    @staticmethod
    def verify(signature: str, message: str | bytes, public_key: str) -> bool:
        """Pure signature check; malformed input yields ``False``."""
        return verify_detached(message, signature, public_key)

    def verify_device_signature(self, device_signature: DeviceSignature) -> bool:
        return self.verify(device_signature.signature, device_signature.message, device_signature.public_key)

    def pseudonymize_device_id(self, device_id: str, nonce: str | None = None) -> tuple[str, str]:
        """Return ``(hashed_device_id, nonce)`` for privacy-preserving registration rows."""
        salt = nonce if nonce is not None else generate_nonce()
        return hash_device_id(device_id, salt, self._device_id_iterations), salt

    async def get_device_auth(self) -> DeviceSignature | None:
        """Return the stored device-auth blob, or ``None`` if the device never registered."""
        blob = await self._store.get(DEVICE_AUTH_KEY)
        if blob is None:
            return None
        try:
            return DeviceSignature.model_validate_json(blob)
        except ValidationError as exc:
            raise StorageUnavailableError("stored device auth blob is unreadable", key=DEVICE_AUTH_KEY) from exc

    async def initialize(
        self,
        device_id: str,
        registrar: VoterRegistrar,
    ) -> Ok[DeviceAuthState] | Err:
        """Ensure the device has keys and a signed identity, then register it.

        Storage and signing failures propagate as exceptions; a refused
        registration is returned as ``Err(ErrorKind.AUTH, ...)``.
        """
        signature = await self.get_device_auth()
        existing = signature is not None
        if signature is None:
            signature = await self.create_device_signature(device_id)
            await self._store.set(DEVICE_AUTH_KEY, signature.model_dump_json(by_alias=True))

        try:
            credential = await registrar.register(signature.public_key)
        except AuthError as exc:
            _logger.warning("Device registration failed: %s", exc)
            return Err(kind=ErrorKind.AUTH, message=str(exc))

        await self._store.set(ACCESS_TOKEN_KEY, credential.access_token.get_secret_value())
        _logger.debug("Device registered public_key=%s existing=%s", signature.public_key, existing)
        return Ok(DeviceAuthState(signature=signature, existing=existing, credential=credential))
