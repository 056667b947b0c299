from __future__ import annotations

import pytest

from studiosync.config import SyncConfig
from studiosync.exceptions import SyncConfigError


def test_defaults() -> None:
    config = SyncConfig()
    assert config.base_url == "http://localhost:8080/api"
    assert config.optimistic_concurrency is False
    assert config.beacon_max_bytes == 64 * 1024


def test_base_url_trailing_slash_is_stripped() -> None:
    assert SyncConfig(base_url="https://studio.test/api/").base_url == "https://studio.test/api"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_url": "  "},
        {"request_timeout": 0},
        {"shutdown_timeout": -1},
        {"beacon_max_bytes": 0},
    ],
)
def test_invalid_values_are_rejected(kwargs: dict[str, object]) -> None:
    with pytest.raises(SyncConfigError):
        SyncConfig(**kwargs)  # type: ignore[arg-type]


def test_from_env_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STUDIOSYNC_BASE_URL", "https://studio.test/api")
    monkeypatch.setenv("STUDIOSYNC_REQUEST_TIMEOUT", "12.5")
    monkeypatch.setenv("STUDIOSYNC_BEACON_MAX_BYTES", "2048")
    monkeypatch.setenv("STUDIOSYNC_OPTIMISTIC_CONCURRENCY", "yes")

    config = SyncConfig.from_env()

    assert config.base_url == "https://studio.test/api"
    assert config.request_timeout == 12.5
    assert config.beacon_max_bytes == 2048
    assert config.optimistic_concurrency is True
    assert config.api_trace_enabled is False


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STUDIOSYNC_REQUEST_TIMEOUT", "12.5")
    monkeypatch.setenv("STUDIOSYNC_API_TRACE_ENABLED", "1")

    config = SyncConfig.from_env(request_timeout=3.0, api_trace_enabled=False)

    assert config.request_timeout == 3.0
    assert config.api_trace_enabled is False


def test_from_env_rejects_non_numeric_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STUDIOSYNC_SHUTDOWN_TIMEOUT", "soon")

    with pytest.raises(SyncConfigError, match="STUDIOSYNC_SHUTDOWN_TIMEOUT"):
        SyncConfig.from_env()
