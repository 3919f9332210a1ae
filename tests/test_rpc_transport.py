from __future__ import annotations

import json
from typing import Any

import aiohttp
import pytest

from pollsat._ledger.rpc import JsonRpcTransport
from pollsat.config import PollsatConfig
from pollsat.exceptions import LedgerRpcError, NetworkTransientError, PollsatTransportError


class _FakeResponse:
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None


class _FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses: _FakeResponse | Exception) -> None:
        self._responses = list(responses)
        self.payloads: list[dict[str, Any]] = []

    def post(self, url: str, *, data: str, headers: dict[str, str], timeout: Any) -> _FakeResponse:
        self.payloads.append(json.loads(data))
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _ok(result: Any) -> _FakeResponse:
    return _FakeResponse(200, json.dumps({"jsonrpc": "2.0", "id": 1, "result": result}))


def _rpc_error(code: int, message: str = "boom") -> _FakeResponse:
    return _FakeResponse(200, json.dumps({"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": message}}))


def _transport(session: _FakeSession, sleeps: list[float], **config: Any) -> JsonRpcTransport:
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    cfg = PollsatConfig(retry_backoff=0.5, retry_backoff_max=8.0, **config)
    return JsonRpcTransport(cfg, session, sleep=_sleep)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_call_returns_result_and_sends_json_rpc_envelope() -> None:
    session = _FakeSession(_ok({"value": {"blockhash": "abc"}}))
    sleeps: list[float] = []

    result = await _transport(session, sleeps).call("getLatestBlockhash", [{"commitment": "finalized"}])

    assert result == {"value": {"blockhash": "abc"}}
    assert session.payloads[0]["jsonrpc"] == "2.0"
    assert session.payloads[0]["method"] == "getLatestBlockhash"
    assert sleeps == []


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_backoff() -> None:
    session = _FakeSession(
        _FakeResponse(429, "slow down"),
        aiohttp.ClientConnectionError("reset"),
        _rpc_error(-32005, "node is behind"),
        _ok(42),
    )
    sleeps: list[float] = []

    result = await _transport(session, sleeps, max_retries=3).call("getSlot", [])

    assert result == 42
    assert sleeps == [0.5, 1.0, 2.0]


@pytest.mark.asyncio
async def test_retry_budget_exhaustion_surfaces_transient_error() -> None:
    session = _FakeSession(_FakeResponse(503, ""), _FakeResponse(503, ""))
    sleeps: list[float] = []

    with pytest.raises(NetworkTransientError) as exc_info:
        await _transport(session, sleeps, max_retries=1).call("getSlot", [])

    assert exc_info.value.status_code == 503
    assert sleeps == [0.5]


@pytest.mark.asyncio
async def test_retry_false_sends_exactly_once() -> None:
    session = _FakeSession(TimeoutError())
    sleeps: list[float] = []

    with pytest.raises(NetworkTransientError):
        await _transport(session, sleeps).call("sendTransaction", ["AQ=="], retry=False)

    assert len(session.payloads) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_non_transient_failures_are_not_retried() -> None:
    sleeps: list[float] = []

    with pytest.raises(LedgerRpcError) as exc_info:
        await _transport(_FakeSession(_rpc_error(-32002, "preflight failed")), sleeps).call("sendTransaction", [])
    assert exc_info.value.code == -32002

    with pytest.raises(PollsatTransportError):
        await _transport(_FakeSession(_FakeResponse(403, "forbidden")), sleeps).call("getSlot", [])

    with pytest.raises(PollsatTransportError):
        await _transport(_FakeSession(_FakeResponse(200, "<html>")), sleeps).call("getSlot", [])

    assert sleeps == []
