"""Custom exception hierarchy for studiosync."""

from __future__ import annotations


class StudioSyncError(Exception):
    """Base exception for all studiosync errors."""


class SyncConfigError(StudioSyncError):
    """Invalid or missing configuration."""


class SyncTransportError(StudioSyncError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class HydrationError(StudioSyncError):
    """Loading a collection from the remote store failed.

    Raised to the caller of :meth:`EntityStore.hydrate`.  The local cache is
    left exactly as it was before the call.
    """

    def __init__(self, message: str, *, kind: str = "") -> None:
        self.kind = kind
        super().__init__(message)


class PersistError(StudioSyncError):
    """A background save of a collection snapshot failed.

    Never raised to callers of ``write()``; the drain loop records it in a
    :class:`SaveResult` and logs it.  The next write carries the full
    collection again, which repairs the gap.
    """

    def __init__(self, message: str, *, kind: str = "") -> None:
        self.kind = kind
        super().__init__(message)


class SyncConflictError(PersistError):
    """The remote collection changed since it was last loaded (HTTP 412).

    Only raised when optimistic concurrency is enabled in the config.
    """


class FlushError(StudioSyncError):
    """Best-effort teardown delivery could not be queued."""

    def __init__(self, message: str, *, kind: str = "") -> None:
        self.kind = kind
        super().__init__(message)
