from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from pydantic import SecretStr

from pollsat.client import PollsatClient
from pollsat.config import PollsatConfig
from pollsat.exceptions import PollsatError, StorageUnavailableError
from pollsat.keystore import MemoryKeyStore
from pollsat.models.auth import SessionCredential
from pollsat.models.verification import VerificationReason
from pollsat.persistence import MemoryPersistence
from pollsat.result import Err, ErrorKind, Ok

if TYPE_CHECKING:
    from conftest import FakeLedgerRpc


class _Registrar:
    async def register(self, public_key: str) -> SessionCredential:
        return SessionCredential(access_token=SecretStr("tok"), voter_id=public_key[:8])


class _ClosedStore(MemoryKeyStore):
    async def set(self, key: str, value: str) -> None:
        raise StorageUnavailableError("keychain locked", key=key)


@pytest.mark.asyncio
async def test_cast_commit_and_verify_end_to_end(config: PollsatConfig, fake_rpc: FakeLedgerRpc) -> None:
    persistence = MemoryPersistence()

    async with PollsatClient(config, persistence, transport=fake_rpc) as client:
        init = await client.initialize("device-1", _Registrar())
        assert isinstance(init, Ok)

        cast = await client.cast_vote("poll-1", "option-a", "voter-1")
        assert isinstance(cast, Ok)
        assert [v.id for v in await client.get_local_votes()] == [cast.value.id]

        outcome = await client.commit_batch("poll-1")
        assert outcome.success
        assert await client.get_merkle_root() == outcome.merkle_root

        result = await client.verify_vote(cast.value.id)
        assert result.verified is True
        assert result.reason is VerificationReason.VERIFIED


@pytest.mark.asyncio
async def test_cast_vote_before_initialize_returns_signing_err(config: PollsatConfig, fake_rpc: FakeLedgerRpc) -> None:
    persistence = MemoryPersistence()

    async with PollsatClient(config, persistence, transport=fake_rpc) as client:
        result = await client.cast_vote("poll-1", "option-a", "voter-1")

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.SIGNING
    assert not result.ok


@pytest.mark.asyncio
async def test_initialize_surfaces_storage_failure(config: PollsatConfig, fake_rpc: FakeLedgerRpc) -> None:
    async with PollsatClient(config, MemoryPersistence(), store=_ClosedStore(), transport=fake_rpc) as client:
        with pytest.raises(StorageUnavailableError):
            await client.initialize("device-1", _Registrar())


@pytest.mark.asyncio
async def test_ledger_operations_require_context_manager(config: PollsatConfig) -> None:
    client = PollsatClient(config, MemoryPersistence())

    with pytest.raises(PollsatError):
        await client.commit_batch()


@pytest.mark.asyncio
async def test_identity_survives_restart_with_file_store(tmp_path: Path, fake_rpc: FakeLedgerRpc) -> None:
    config = PollsatConfig(key_store_path=str(tmp_path / "keys.json"))

    async with PollsatClient(config, MemoryPersistence(), transport=fake_rpc) as client:
        first = await client.initialize("device-1", _Registrar())
    async with PollsatClient(config, MemoryPersistence(), transport=fake_rpc) as client:
        second = await client.initialize("device-1", _Registrar())

    assert isinstance(first, Ok) and isinstance(second, Ok)
    assert first.value.existing is False
    assert second.value.existing is True
    assert first.value.public_key == second.value.public_key
