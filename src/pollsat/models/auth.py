"""Device authentication models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, SecretStr

from pollsat.models._base import PollsatBaseModel


class DeviceSignature(PollsatBaseModel):
    """Proof of possession of the device key at a point in time.

    Serialised with camelCase keys (``deviceId``, ``publicKey``) as the
    device-auth blob kept in secure storage.
    """

    device_id: str
    timestamp: int
    signature: str
    public_key: str

    @property
    def message(self) -> str:
        """The canonical ``deviceId:timestamp`` string that was signed."""
        return f"{self.device_id}:{self.timestamp}"


class SessionCredential(BaseModel):
    """Opaque anonymous session issued by the backend for a public key."""

    model_config = ConfigDict(frozen=True)

    access_token: SecretStr
    voter_id: str | None = None


class DeviceAuthState(BaseModel):
    """Result of a successful :meth:`Authenticator.initialize`."""

    model_config = ConfigDict(frozen=True)

    signature: DeviceSignature
    existing: bool
    credential: SessionCredential

    @property
    def public_key(self) -> str:
        return self.signature.public_key
