"""Host teardown hooks and the fire-and-forget beacon transport."""

from __future__ import annotations

import asyncio
import atexit
import logging
import threading
import time
from collections.abc import Callable, Mapping
from typing import Protocol

import aiohttp

_logger = logging.getLogger(__name__)


class TeardownHook(Protocol):
    """Host capability: run callbacks once when the process is about to end."""

    def register(self, callback: Callable[[], object]) -> None:
        ...

    def close(self) -> None:
        """Stop watching for teardown; registered callbacks will not run."""
        ...


class BeaconSender(Protocol):
    """Queue a POST that must not block the caller and has no response channel."""

    def send(self, url: str, body: bytes) -> bool:
        ...


class ManualTeardownHook:
    """Teardown hook fired explicitly by the host (or a test)."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], object]] = []
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def register(self, callback: Callable[[], object]) -> None:
        self._callbacks.append(callback)

    def close(self) -> None:
        self._callbacks.clear()

    def fire(self) -> None:
        """Run every registered callback once.  Failures are logged and skipped."""
        if self._fired:
            return
        self._fired = True
        for callback in self._callbacks:
            try:
                callback()
            except Exception:
                _logger.debug("Teardown callback %r failed", callback, exc_info=True)


class AtexitTeardownHook(ManualTeardownHook):
    """Fire registered callbacks from :mod:`atexit`.

    Non-daemon threads have already been joined when atexit handlers run, so
    *settle* (typically :meth:`ThreadBeaconSender.wait`) is called after the
    callbacks to give queued deliveries a bounded chance to finish.
    """

    def __init__(self, settle: Callable[[], object] | None = None) -> None:
        super().__init__()
        self._settle = settle
        self._registered = False

    def register(self, callback: Callable[[], object]) -> None:
        super().register(callback)
        if not self._registered:
            atexit.register(self._at_exit)
            self._registered = True

    def close(self) -> None:
        """Unregister from :mod:`atexit` so the hook and its owner can be collected."""
        super().close()
        if self._registered:
            atexit.unregister(self._at_exit)
            self._registered = False

    def _at_exit(self) -> None:
        self.fire()
        if self._settle is not None:
            try:
                self._settle()
            except Exception:
                _logger.debug("Teardown settle failed", exc_info=True)


class ThreadBeaconSender:
    """Deliver each beacon from its own non-daemon thread.

    ``send`` returns as soon as the thread is started.  The interpreter joins
    non-daemon threads on a normal shutdown, so a beacon queued before
    finalisation is still delivered after the caller has moved on.  Each
    delivery is bounded by *timeout* seconds.
    """

    def __init__(
        self,
        *,
        timeout: float,
        headers_provider: Callable[[], Mapping[str, str]] | None = None,
    ) -> None:
        self._timeout = timeout
        self._headers_provider = headers_provider
        self._threads: list[threading.Thread] = []

    def send(self, url: str, body: bytes) -> bool:
        headers: dict[str, str] = {"content-type": "application/json"}
        if self._headers_provider is not None:
            headers.update(self._headers_provider())
        thread = threading.Thread(
            target=self._deliver,
            args=(url, body, headers),
            name="studiosync-beacon",
            daemon=False,
        )
        try:
            thread.start()
        except RuntimeError:
            _logger.debug("Could not start beacon thread for %s", url, exc_info=True)
            return False
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)
        return True

    def wait(self, timeout: float | None = None) -> None:
        """Join outstanding deliveries, at most *timeout* seconds in total."""
        deadline = time.monotonic() + (self._timeout if timeout is None else timeout)
        for thread in list(self._threads):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            thread.join(remaining)
        self._threads = [t for t in self._threads if t.is_alive()]

    def _deliver(self, url: str, body: bytes, headers: dict[str, str]) -> None:
        try:
            asyncio.run(self._post(url, body, headers))
        except Exception:
            _logger.debug("Beacon delivery to %s failed", url, exc_info=True)

    async def _post(self, url: str, body: bytes, headers: dict[str, str]) -> None:
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, data=body, headers=headers) as resp:
                _logger.debug("Beacon %s -> HTTP %d", url, resp.status)
