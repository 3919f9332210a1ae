from __future__ import annotations

import pytest

from pollsat.config import PollsatConfig
from pollsat.exceptions import PollsatConfigError


def test_defaults_point_at_devnet() -> None:
    config = PollsatConfig()
    assert config.rpc_url == "https://api.devnet.solana.com"
    assert config.memo_prefix == "POLLSAT_MERKLE_ROOT:"
    assert config.commitment == "finalized"
    assert config.key_store_path is None


def test_from_env_reads_variables_and_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLLSAT_RPC_URL", "http://localhost:8899")
    monkeypatch.setenv("POLLSAT_COMMITMENT", "confirmed")
    monkeypatch.setenv("POLLSAT_MAX_RETRIES", "5")
    monkeypatch.setenv("POLLSAT_CONFIRM_TIMEOUT", "2.5")

    config = PollsatConfig.from_env(max_retries=1)

    assert config.rpc_url == "http://localhost:8899"
    assert config.commitment == "confirmed"
    assert config.confirm_timeout == 2.5
    assert config.max_retries == 1


def test_from_env_rejects_non_numeric_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLLSAT_RPC_TIMEOUT", "soon")
    with pytest.raises(PollsatConfigError, match="POLLSAT_RPC_TIMEOUT"):
        PollsatConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"commitment": "eventually"},
        {"max_retries": -1},
        {"rpc_timeout": 0},
        {"confirm_poll_interval": -1.0},
        {"device_id_iterations": 0},
        {"rpc_url": ""},
    ],
)
def test_invalid_values_raise(kwargs: dict[str, object]) -> None:
    with pytest.raises(PollsatConfigError):
        PollsatConfig(**kwargs)  # type: ignore[arg-type]


def test_backoff_doubles_and_is_capped() -> None:
    config = PollsatConfig(retry_backoff=0.5, retry_backoff_max=3.0)
    assert [config.backoff_delay(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]
