from __future__ import annotations

import asyncio
import json
import os
import stat
from pathlib import Path

import pytest

from pollsat.exceptions import StorageUnavailableError
from pollsat.keystore import FileKeyStore, MemoryKeyStore


@pytest.mark.asyncio
async def test_memory_store_compare_and_set() -> None:
    store = MemoryKeyStore()

    assert await store.compare_and_set("k", None, "first") is True
    assert await store.compare_and_set("k", None, "second") is False
    assert await store.get("k") == "first"
    assert await store.compare_and_set("k", "first", "second") is True
    assert await store.get("k") == "second"

    await store.delete("k")
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_memory_store_refuses_access_after_close() -> None:
    store = MemoryKeyStore({"k": "v"})
    await store.close()

    with pytest.raises(StorageUnavailableError):
        await store.get("k")


@pytest.mark.asyncio
async def test_file_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "keys" / "store.json"
    store = FileKeyStore(path)
    await store.set("device-keypair", "blob")

    reopened = FileKeyStore(path)
    assert await reopened.get("device-keypair") == "blob"
    assert json.loads(path.read_text()) == {"device-keypair": "blob"}
    if os.name == "posix":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


@pytest.mark.asyncio
async def test_file_store_compare_and_set(tmp_path: Path) -> None:
    store = FileKeyStore(tmp_path / "store.json")

    assert await store.compare_and_set("k", None, "a") is True
    assert await store.compare_and_set("k", None, "b") is False
    assert await store.get("k") == "a"


@pytest.mark.asyncio
async def test_file_store_compare_and_set_is_atomic_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    stores = [FileKeyStore(path) for _ in range(5)]

    results = await asyncio.gather(*(store.compare_and_set("k", None, f"v{i}") for i, store in enumerate(stores)))

    assert results.count(True) == 1
    winner = f"v{results.index(True)}"
    assert await FileKeyStore(path).get("k") == winner


@pytest.mark.asyncio
async def test_file_store_missing_file_reads_as_empty(tmp_path: Path) -> None:
    store = FileKeyStore(tmp_path / "absent.json")
    assert await store.get("anything") is None


@pytest.mark.asyncio
async def test_file_store_corrupt_json_raises(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json")
    store = FileKeyStore(path)

    with pytest.raises(StorageUnavailableError):
        await store.get("k")
