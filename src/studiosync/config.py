"""Client configuration for studiosync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from studiosync._constants import DEFAULT_BASE_URL, DEFAULT_BEACON_MAX_BYTES
from studiosync.exceptions import SyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Sync layer configuration.

    Parameters
    ----------
    base_url : str
        API base URL, including the ``/api`` prefix used by the studio
        backend.  Trailing slashes are stripped.
    request_timeout : float
        Total timeout in seconds for a single load/save request.  The
        sync core enforces no timeout of its own.
    shutdown_timeout : float
        Seconds :meth:`Studio.aclose` waits for in-flight saves to settle
        before falling back to the teardown flush.
    beacon_timeout : float
        Upper bound in seconds for a single best-effort teardown delivery.
    beacon_max_bytes : int
        Largest serialized snapshot handed to the teardown transport.
        Larger snapshots are not sent.
    optimistic_concurrency : bool
        Send ``If-Match`` with the last seen ``ETag`` on save and report a
        conflict on HTTP 412 instead of silently overwriting.
    api_trace_enabled : bool
        Log redacted request and response bodies at DEBUG level.
    """

    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 30.0
    shutdown_timeout: float = 5.0
    beacon_timeout: float = 3.0
    beacon_max_bytes: int = DEFAULT_BEACON_MAX_BYTES
    optimistic_concurrency: bool = False
    api_trace_enabled: bool = False

    def __post_init__(self) -> None:
        if not self.base_url.strip():
            raise SyncConfigError("base_url must be non-empty")
        object.__setattr__(self, "base_url", self.base_url.strip().rstrip("/"))
        if self.request_timeout <= 0:
            raise SyncConfigError("request_timeout must be positive")
        if self.shutdown_timeout < 0:
            raise SyncConfigError("shutdown_timeout must not be negative")
        if self.beacon_max_bytes <= 0:
            raise SyncConfigError("beacon_max_bytes must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from ``STUDIOSYNC_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        base_url = env.get("STUDIOSYNC_BASE_URL")
        if base_url is not None:
            config_kwargs["base_url"] = base_url

        _FLOAT_ENV_MAP = {
            "STUDIOSYNC_REQUEST_TIMEOUT": "request_timeout",
            "STUDIOSYNC_SHUTDOWN_TIMEOUT": "shutdown_timeout",
            "STUDIOSYNC_BEACON_TIMEOUT": "beacon_timeout",
        }
        for env_key, field_name in _FLOAT_ENV_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = float(val)
                except ValueError as exc:
                    raise SyncConfigError(f"{env_key} must be a number, got {val!r}") from exc

        max_bytes = env.get("STUDIOSYNC_BEACON_MAX_BYTES")
        if max_bytes is not None and "beacon_max_bytes" not in overrides:
            try:
                config_kwargs["beacon_max_bytes"] = int(max_bytes)
            except ValueError as exc:
                raise SyncConfigError(f"STUDIOSYNC_BEACON_MAX_BYTES must be an integer, got {max_bytes!r}") from exc

        if "optimistic_concurrency" not in overrides:
            config_kwargs["optimistic_concurrency"] = _env_bool(
                env.get("STUDIOSYNC_OPTIMISTIC_CONCURRENCY"),
                False,
            )

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("STUDIOSYNC_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
