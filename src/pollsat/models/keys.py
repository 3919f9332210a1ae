"""Device key pair models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, SecretBytes


class DeviceKeyPair(BaseModel):
    """Asymmetric key pair bound to one installation.

    Parameters
    ----------
    secret_key : SecretBytes
        64-byte Ed25519 secret (seed followed by public key).  Wrapped so
        that ``repr``/``str``/serialisation never reveal it.
    public_key : str
        Base58 public key; doubles as the pseudonymous voter identity.
    """

    model_config = ConfigDict(frozen=True)

    secret_key: SecretBytes
    public_key: str


class KeyPairResult(BaseModel):
    """Outcome of :meth:`KeyCustodian.get_or_create_key_pair`."""

    model_config = ConfigDict(frozen=True)

    key_pair: DeviceKeyPair
    existing: bool

    @property
    def public_key(self) -> str:
        return self.key_pair.public_key
