"""JSON-RPC 2.0 transport for the ledger endpoint."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import aiohttp

from pollsat._constants import TRANSIENT_HTTP_STATUS, TRANSIENT_RPC_CODES, USER_AGENT
from pollsat._redact import redact_for_log
from pollsat.config import PollsatConfig
from pollsat.exceptions import LedgerRpcError, NetworkTransientError, PollsatTransportError

_logger = logging.getLogger(__name__)


class RpcTransport(Protocol):
    """Structural transport interface used by :class:`pollsat.ledger.LedgerAnchor`.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`JsonRpcTransport`) concrete.
    """

    async def call(self, method: str, params: list[Any], *, retry: bool = True) -> Any: ...


class JsonRpcTransport:
    """HTTP transport with bounded exponential backoff for transient failures.

    Connection errors, request timeouts, HTTP 429/5xx and node-busy JSON-RPC
    codes are retried up to ``config.max_retries`` times when *retry* is
    true.  Other failures surface immediately.
    """

    def __init__(
        self,
        config: PollsatConfig,
        http_session: aiohttp.ClientSession,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._http = http_session
        self._sleep = sleep
        self._ids = itertools.count(1)

    async def _post_once(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        headers = {"content-type": "application/json", "user-agent": USER_AGENT}
        timeout = aiohttp.ClientTimeout(total=self._config.rpc_timeout)

        _logger.debug("RPC %s params=%s", method, redact_for_log(params, max_string=96))

        try:
            async with self._http.post(
                self._config.rpc_url,
                data=json.dumps(payload, separators=(",", ":")),
                headers=headers,
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                if resp.status in TRANSIENT_HTTP_STATUS:
                    raise NetworkTransientError(
                        f"HTTP {resp.status} from {method}: {text[:200]}",
                        status_code=resp.status,
                        method=method,
                    )
                if resp.status != 200:
                    raise PollsatTransportError(
                        f"HTTP {resp.status} from {method}: {text[:200]}",
                        status_code=resp.status,
                        method=method,
                    )
        except PollsatTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise NetworkTransientError(f"Request {method} failed: {exc!r}", method=method) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PollsatTransportError(f"Invalid JSON from {method}: {text[:200]}", method=method) from exc

        if not isinstance(body, dict):
            raise PollsatTransportError(f"Unexpected JSON-RPC body from {method}", method=method)

        error = body.get("error")
        if error is not None:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            if code in TRANSIENT_RPC_CODES:
                raise NetworkTransientError(f"{method} busy: code={code} message={message}", method=method)
            raise LedgerRpcError(f"{method} failed: code={code} message={message}", code=code, method=method)

        if "result" not in body:
            raise PollsatTransportError(f"Missing 'result' field from {method}", method=method)
        return body["result"]

    async def call(self, method: str, params: list[Any], *, retry: bool = True) -> Any:
        """Invoke *method* and return the JSON-RPC ``result``.

        Raises
        ------
        NetworkTransientError
            Transient failure persisted past the retry budget (or *retry* is
            false).
        LedgerRpcError
            The node answered with a non-transient JSON-RPC error.
        PollsatTransportError
            Any other HTTP-level failure.
        """
        attempts = 1 + (self._config.max_retries if retry else 0)
        for attempt in range(1, attempts + 1):
            try:
                return await self._post_once(method, params)
            except NetworkTransientError as exc:
                if attempt >= attempts:
                    raise
                delay = self._config.backoff_delay(attempt)
                _logger.warning(
                    "Transient failure on %s (attempt %d/%d), retrying in %.2fs: %s",
                    method,
                    attempt,
                    attempts,
                    delay,
                    exc,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover
