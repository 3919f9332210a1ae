"""Client configuration for pollsat."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pollsat._constants import COMMITMENT_LEVELS, MEMO_PREFIX, MEMO_PROGRAM_ID, RPC_URL
from pollsat.exceptions import PollsatConfigError


@dataclasses.dataclass(frozen=True)
class PollsatConfig:
    """Client configuration.

    Parameters
    ----------
    rpc_url : str
        Ledger JSON-RPC endpoint. Defaults to Solana devnet.
    memo_program_id : str
        Base58 address of the memo program that carries anchored roots.
    memo_prefix : str
        Prefix written in front of the Merkle root inside the memo.
    commitment : str
        Confirmation level treated as final (``processed``, ``confirmed``
        or ``finalized``).
    rpc_timeout : float
        Seconds allowed for a single RPC request.
    max_retries : int
        Retries for transient network errors (connection failure, HTTP 429,
        5xx).  ``0`` disables retrying.
    retry_backoff : float
        Base backoff in seconds; doubled after every failed attempt.
    retry_backoff_max : float
        Upper bound for a single backoff sleep.
    confirm_timeout : float
        Default seconds :meth:`LedgerAnchor.confirm` polls before reporting
        ``pending``.
    confirm_poll_interval : float
        Seconds between two signature status polls.
    key_store_path : str or None
        JSON file backing the device key store.  ``None`` keeps keys in
        memory only.
    device_id_iterations : int
        PBKDF2 iterations used to pseudonymise device identifiers.
    """

    rpc_url: str = RPC_URL
    memo_program_id: str = MEMO_PROGRAM_ID
    memo_prefix: str = MEMO_PREFIX
    commitment: str = "finalized"
    rpc_timeout: float = 10.0
    max_retries: int = 3
    retry_backoff: float = 0.5
    retry_backoff_max: float = 8.0
    confirm_timeout: float = 30.0
    confirm_poll_interval: float = 1.0
    key_store_path: str | None = None
    device_id_iterations: int = 1000

    def __post_init__(self) -> None:
        if not self.rpc_url:
            raise PollsatConfigError("rpc_url must be set")
        if self.commitment not in COMMITMENT_LEVELS:
            raise PollsatConfigError(f"commitment must be one of {COMMITMENT_LEVELS}, got {self.commitment!r}")
        if self.max_retries < 0:
            raise PollsatConfigError("max_retries must be >= 0")
        for name in ("rpc_timeout", "confirm_timeout", "confirm_poll_interval"):
            if getattr(self, name) <= 0:
                raise PollsatConfigError(f"{name} must be positive")
        if self.retry_backoff < 0 or self.retry_backoff_max < 0:
            raise PollsatConfigError("retry backoff must be >= 0")
        if self.device_id_iterations < 1:
            raise PollsatConfigError("device_id_iterations must be >= 1")

    def backoff_delay(self, attempt: int) -> float:
        """Sleep before retry number *attempt* (1-based)."""
        return min(self.retry_backoff * (2 ** (attempt - 1)), self.retry_backoff_max)

    @classmethod
    def from_env(cls, **overrides: Any) -> PollsatConfig:
        """Create configuration from environment variables.

        Reads optional ``POLLSAT_*`` variables.  Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        PollsatConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "POLLSAT_RPC_URL": "rpc_url",
            "POLLSAT_MEMO_PROGRAM_ID": "memo_program_id",
            "POLLSAT_MEMO_PREFIX": "memo_prefix",
            "POLLSAT_COMMITMENT": "commitment",
            "POLLSAT_KEY_STORE_PATH": "key_store_path",
        }
        _ENV_FLOAT_MAP = {
            "POLLSAT_RPC_TIMEOUT": "rpc_timeout",
            "POLLSAT_RETRY_BACKOFF": "retry_backoff",
            "POLLSAT_RETRY_BACKOFF_MAX": "retry_backoff_max",
            "POLLSAT_CONFIRM_TIMEOUT": "confirm_timeout",
            "POLLSAT_CONFIRM_POLL_INTERVAL": "confirm_poll_interval",
        }
        _ENV_INT_MAP = {
            "POLLSAT_MAX_RETRIES": "max_retries",
            "POLLSAT_DEVICE_ID_ITERATIONS": "device_id_iterations",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        for env_key, field_name in {**_ENV_FLOAT_MAP, **_ENV_INT_MAP}.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            convert = int if env_key in _ENV_INT_MAP else float
            try:
                config_kwargs[field_name] = convert(val)
            except ValueError as exc:
                raise PollsatConfigError(f"{env_key} is not a valid number: {val!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
