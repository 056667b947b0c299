"""Write coalescing for whole-collection saves.

One :class:`WriteCoalescer` exists per collection kind.  It owns the pending
slot: a single snapshot waiting to be sent, overwritten by every new
``enqueue``.  A drain task takes the slot, awaits ``RemoteGateway.save`` and
repeats until the slot is empty, so at most one save per kind is ever in
flight and the last snapshot enqueued is always the last one attempted.

All bookkeeping happens synchronously between ``await`` points on a single
event loop; there are no locks.  Calling ``enqueue``/``take_pending`` from
another thread is not supported.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic

from studiosync.exceptions import PersistError
from studiosync.gateway import RemoteGateway, SaveAck
from studiosync.kinds import CollectionKind, EntityT, Snapshot

_logger = logging.getLogger(__name__)


class CoalescerState(StrEnum):
    IDLE = "idle"
    DRAINING = "draining"


@dataclass(frozen=True)
class SaveResult:
    """Outcome of one drain iteration.

    Exactly one of ``ack`` and ``error`` is set.
    """

    kind: str
    count: int
    elapsed: float
    ack: SaveAck | None = None
    error: PersistError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WriteCoalescer(Generic[EntityT]):
    """Serialise and coalesce saves of one collection kind."""

    def __init__(
        self,
        kind: CollectionKind[EntityT],
        gateway: RemoteGateway,
        *,
        logger: logging.Logger | None = None,
        on_result: Callable[[SaveResult], None] | None = None,
    ) -> None:
        self._kind = kind
        self._gateway = gateway
        self._logger = logger or _logger
        self._on_result = on_result
        self._pending: Snapshot[EntityT] | None = None
        self._state = CoalescerState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._last_result: SaveResult | None = None

    @property
    def kind(self) -> CollectionKind[EntityT]:
        return self._kind

    @property
    def state(self) -> CoalescerState:
        return self._state

    @property
    def pending(self) -> Snapshot[EntityT] | None:
        """The snapshot waiting to be sent, if any."""
        return self._pending

    @property
    def last_result(self) -> SaveResult | None:
        return self._last_result

    def enqueue(self, snapshot: Snapshot[EntityT]) -> None:
        """Make *snapshot* the next state to persist.

        Whatever was waiting in the slot is dropped.  Starts the drain task if
        none is running.  Without a running event loop the snapshot stays in
        the slot, where the teardown flush or the next ``enqueue`` finds it.
        """
        self._pending = snapshot
        if self._state is CoalescerState.DRAINING:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("No running loop; holding %s snapshot for later", self._kind.name)
            return
        self._state = CoalescerState.DRAINING
        self._task = loop.create_task(self._drain(), name=f"studiosync-drain-{self._kind.name}")

    def take_pending(self) -> Snapshot[EntityT] | None:
        """Remove and return the pending snapshot."""
        snapshot, self._pending = self._pending, None
        return snapshot

    def discard(self) -> None:
        """Drop the pending snapshot.  An in-flight save still settles."""
        if self._pending is not None:
            self._logger.debug("Discarding pending %s snapshot count=%d", self._kind.name, len(self._pending))
        self._pending = None

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait until the coalescer is idle with an empty slot.

        Returns ``False`` if *timeout* seconds pass first.  The drain task is
        never cancelled by this call.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            task = self._task
            if task is None or task.done():
                if self._pending is None:
                    return True
                # Held without a loop at enqueue time; start draining now.
                self.enqueue(self._pending)
                continue
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            try:
                await asyncio.wait_for(asyncio.shield(task), remaining)
            except TimeoutError:
                return False

    async def _drain(self) -> None:
        try:
            while self._pending is not None:
                taken = self._pending
                self._pending = None
                result = await self._attempt(taken)
                self._report(result)
        finally:
            self._state = CoalescerState.IDLE

    async def _attempt(self, snapshot: Snapshot[EntityT]) -> SaveResult:
        started = time.monotonic()
        try:
            ack = await self._gateway.save(self._kind, snapshot)
        except PersistError as exc:
            error = exc
        except Exception as exc:  # noqa: BLE001
            error = PersistError(f"Saving {self._kind.name} failed: {exc}", kind=self._kind.name)
            error.__cause__ = exc
        else:
            return SaveResult(
                kind=self._kind.name,
                count=len(snapshot),
                elapsed=time.monotonic() - started,
                ack=ack,
            )
        return SaveResult(
            kind=self._kind.name,
            count=len(snapshot),
            elapsed=time.monotonic() - started,
            error=error,
        )

    def _report(self, result: SaveResult) -> None:
        self._last_result = result
        if result.ok:
            self._logger.debug("Cloud sync: saved %d %s in %.3fs", result.count, result.kind, result.elapsed)
        else:
            self._logger.warning(
                "Cloud sync failed for %s (count=%d): %s",
                result.kind,
                result.count,
                result.error,
                exc_info=result.error,
            )
        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception:
                self._logger.debug("on_result callback failed", exc_info=True)
