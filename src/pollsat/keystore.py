"""Secure key-value storage for device secrets and local state.

Every component receives a :class:`KeyStore` at construction instead of
reaching for process-wide storage.  Values are opaque strings.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
import weakref
from pathlib import Path
from typing import Protocol

from pollsat.exceptions import StorageUnavailableError

_logger = logging.getLogger(__name__)


class KeyStore(Protocol):
    """Structural interface for secure storage.

    Implementations must make :meth:`compare_and_set` atomic with respect
    to every other call on the same store.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool: ...

    async def close(self) -> None: ...


class MemoryKeyStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()
        self._closed = False

    def _check_open(self, key: str) -> None:
        if self._closed:
            raise StorageUnavailableError("key store is closed", key=key)

    async def get(self, key: str) -> str | None:
        self._check_open(key)
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check_open(key)
        async with self._lock:
            self._data[key] = value

    async def delete(self, key: str) -> None:
        self._check_open(key)
        async with self._lock:
            self._data.pop(key, None)

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        self._check_open(key)
        async with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            return True

    async def close(self) -> None:
        self._closed = True


#: One lock per resolved key-store path, per event loop.
_FILE_LOCKS: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[Path, asyncio.Lock]] = (
    weakref.WeakKeyDictionary()
)


def _path_lock(path: Path) -> asyncio.Lock:
    locks = _FILE_LOCKS.setdefault(asyncio.get_running_loop(), {})
    if path not in locks:
        locks[path] = asyncio.Lock()
    return locks[path]


class FileKeyStore:
    """JSON document on disk, rewritten atomically on every change.

    Blocking file I/O runs in a worker thread via :func:`asyncio.to_thread`.
    The file is created with ``0o600`` permissions.

    All instances opened on the same path in one process share a lock, so
    :meth:`compare_and_set` is atomic across them.  A key-store file is owned
    by a single process; there is no cross-process locking.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock_path = self._path.resolve()

    @property
    def _lock(self) -> asyncio.Lock:
        return _path_lock(self._lock_path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_sync(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StorageUnavailableError(f"cannot read key store {self._path}: {exc}") from exc
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageUnavailableError(f"key store {self._path} is corrupt") from exc
        if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
            raise StorageUnavailableError(f"key store {self._path} has an unexpected layout")
        return data

    def _write_sync(self, data: dict[str, str]) -> None:
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".pollsat-", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, separators=(",", ":"), sort_keys=True)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, self._path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise StorageUnavailableError(f"cannot write key store {self._path}: {exc}") from exc

    async def _read(self) -> dict[str, str]:
        return await asyncio.to_thread(self._read_sync)

    async def _write(self, data: dict[str, str]) -> None:
        await asyncio.to_thread(self._write_sync, data)
        _logger.debug("Key store %s written (%d keys)", self._path, len(data))

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await self._read()
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._read()
            data[key] = value
            await self._write(data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._read()
            if data.pop(key, None) is not None:
                await self._write(data)

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        async with self._lock:
            data = await self._read()
            if data.get(key) != expected:
                return False
            data[key] = value
            await self._write(data)
            return True

    async def close(self) -> None:
        return None
