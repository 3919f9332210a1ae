from __future__ import annotations

import pytest
from pydantic import SecretStr

from pollsat._constants import ACCESS_TOKEN_KEY, DEVICE_AUTH_KEY
from pollsat._crypto.signing import b58decode, b58encode
from pollsat.auth import Authenticator, generate_nonce
from pollsat.custodian import KeyCustodian
from pollsat.exceptions import AuthError, StorageUnavailableError
from pollsat.keystore import MemoryKeyStore
from pollsat.models.auth import DeviceSignature, SessionCredential
from pollsat.result import Err, ErrorKind, Ok


class _FakeRegistrar:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []

    async def register(self, public_key: str) -> SessionCredential:
        self.calls.append(public_key)
        if self.fail:
            raise AuthError("registration refused")
        return SessionCredential(access_token=SecretStr("token-123"), voter_id="voter-1")


def _make_authenticator(store: MemoryKeyStore | None = None) -> tuple[Authenticator, MemoryKeyStore]:
    store = store if store is not None else MemoryKeyStore()
    return Authenticator(KeyCustodian(store), store, clock=lambda: 1_700_000_000_000), store


def _flip_last_char(text: str) -> str:
    raw = bytearray(b58decode(text))
    raw[-1] ^= 0x01
    return b58encode(bytes(raw))


@pytest.mark.asyncio
async def test_device_signature_round_trip() -> None:
    auth, _ = _make_authenticator()

    ds = await auth.create_device_signature("device-1")

    assert ds.message == "device-1:1700000000000"
    assert auth.verify_device_signature(ds)
    assert Authenticator.verify(ds.signature, ds.message, ds.public_key)


@pytest.mark.asyncio
async def test_verify_rejects_tampering() -> None:
    auth, _ = _make_authenticator()
    ds = await auth.create_device_signature("device-1")
    other, _ = _make_authenticator()
    other_ds = await other.create_device_signature("device-1")

    assert not Authenticator.verify(ds.signature, "device-1:1700000000001", ds.public_key)
    assert not Authenticator.verify(_flip_last_char(ds.signature), ds.message, ds.public_key)
    assert not Authenticator.verify(ds.signature, ds.message, other_ds.public_key)


@pytest.mark.parametrize(
    ("signature", "public_key"),
    [
        ("", ""),
        ("not-base58-0OIl", "8qbHbw2BbbTHBW1sbeqakYXVKRQM8Ne7pLK7m6CVfeR"),
        ("3yZe7d", "3yZe7d"),
    ],
)
def test_verify_is_total_on_malformed_input(signature: str, public_key: str) -> None:
    assert Authenticator.verify(signature, "device-1:1", public_key) is False


@pytest.mark.asyncio
async def test_initialize_creates_then_reuses_identity() -> None:
    auth, store = _make_authenticator()
    registrar = _FakeRegistrar()

    first = await auth.initialize("device-1", registrar)
    second = await auth.initialize("device-1", registrar)

    assert isinstance(first, Ok) and isinstance(second, Ok)
    assert first.value.existing is False
    assert second.value.existing is True
    assert first.value.public_key == second.value.public_key
    assert registrar.calls == [first.value.public_key, first.value.public_key]
    assert await store.get(ACCESS_TOKEN_KEY) == "token-123"

    stored = DeviceSignature.model_validate_json(await store.get(DEVICE_AUTH_KEY) or "")
    assert stored == first.value.signature


@pytest.mark.asyncio
async def test_initialize_blob_uses_camel_case_keys() -> None:
    auth, store = _make_authenticator()
    await auth.initialize("device-1", _FakeRegistrar())

    blob = await store.get(DEVICE_AUTH_KEY) or ""
    assert '"deviceId":"device-1"' in blob
    assert '"publicKey"' in blob


@pytest.mark.asyncio
async def test_initialize_returns_auth_err_when_registration_fails() -> None:
    auth, store = _make_authenticator()

    result = await auth.initialize("device-1", _FakeRegistrar(fail=True))

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.AUTH
    assert "refused" in result.message
    assert await store.get(ACCESS_TOKEN_KEY) is None


@pytest.mark.asyncio
async def test_corrupt_device_auth_blob_raises() -> None:
    auth, _ = _make_authenticator(MemoryKeyStore({DEVICE_AUTH_KEY: "{}"}))

    with pytest.raises(StorageUnavailableError):
        await auth.get_device_auth()


def test_pseudonymize_device_id_is_salted() -> None:
    auth, _ = _make_authenticator()

    hashed, nonce = auth.pseudonymize_device_id("device-1", "00" * 16)
    again, _ = auth.pseudonymize_device_id("device-1", "00" * 16)
    other, other_nonce = auth.pseudonymize_device_id("device-1")

    assert hashed == again
    assert len(hashed) == 64
    assert nonce == "00" * 16
    assert other != hashed
    assert other_nonce != nonce


def test_generate_nonce_is_sixteen_bytes_hex() -> None:
    nonce = generate_nonce()
    assert len(nonce) == 32
    int(nonce, 16)
