"""Best-effort delivery of unsent snapshots at teardown.

When the process is about to end, any snapshot still sitting in a
coalescer's pending slot (requested, but not yet taken by the drain loop) is
serialised and handed to a :class:`BeaconSender`.  Nothing is awaited and
nothing can be confirmed; a write made just before teardown can still be
lost.  Failures are logged at DEBUG and otherwise ignored.
"""

from __future__ import annotations

import json
import logging
from typing import Generic

from studiosync.exceptions import FlushError
from studiosync.kinds import EntityT
from studiosync.sync.coalescer import WriteCoalescer
from studiosync.sync.teardown import BeaconSender, TeardownHook

_logger = logging.getLogger(__name__)


class UnloadFlusher(Generic[EntityT]):
    """Teardown flush for one collection kind."""

    def __init__(
        self,
        coalescer: WriteCoalescer[EntityT],
        sender: BeaconSender,
        *,
        url: str,
        max_bytes: int,
        logger: logging.Logger | None = None,
    ) -> None:
        self._coalescer = coalescer
        self._sender = sender
        self._url = url
        self._max_bytes = max_bytes
        self._logger = logger or _logger
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self, hook: TeardownHook) -> None:
        """Register :meth:`fire` with *hook*.  Repeated calls are ignored."""
        if self._installed:
            return
        hook.register(self.fire)
        self._installed = True

    def detach(self) -> None:
        """Mark the flusher as not installed once its hook has been closed."""
        self._installed = False

    def fire(self) -> bool:
        """Queue one delivery of the pending snapshot, if there is one.

        Returns ``True`` when a delivery was handed to the sender.
        """
        kind = self._coalescer.kind
        pending = self._coalescer.pending
        if pending is None:
            return False

        body = json.dumps(kind.wrap(pending), separators=(",", ":")).encode("utf-8")
        if len(body) > self._max_bytes:
            self._logger.debug(
                "Pending %s snapshot is %d bytes (limit %d); not flushing",
                kind.name,
                len(body),
                self._max_bytes,
            )
            return False

        self._coalescer.take_pending()
        try:
            queued = self._sender.send(self._url, body)
            if not queued:
                raise FlushError(f"Beacon for {kind.name} was not queued", kind=kind.name)
        except Exception:
            self._logger.debug("Failed to flush pending %s save", kind.name, exc_info=True)
            return False

        self._logger.debug("Flushed %d %s via beacon", len(pending), kind.name)
        return True
