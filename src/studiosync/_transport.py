"""JSON-over-HTTP transport with cookie credentials and session refresh."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from http.cookies import SimpleCookie
from typing import Any, Protocol

import aiohttp

from studiosync._constants import AUTH_ENDPOINTS, REFRESH_ENDPOINT, USER_AGENT
from studiosync._redact import redact_for_log
from studiosync.config import SyncConfig
from studiosync.exceptions import SyncTransportError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """Decoded JSON response plus the headers the gateway cares about."""

    status: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)


class Transport(Protocol):
    """Structural transport interface used by the gateway.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def request_json(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        ...


def _error_message(body_text: str, fallback: str) -> str:
    try:
        decoded = json.loads(body_text)
    except json.JSONDecodeError:
        return fallback
    if isinstance(decoded, dict) and isinstance(decoded.get("error"), str):
        return decoded["error"]
    return fallback


class HttpTransport:
    """HTTP transport that carries session cookies and refreshes on 401.

    A 401 from any non-auth endpoint triggers one ``POST /auth/refresh``
    followed by one retry of the original request.  Concurrent callers that
    hit a 401 at the same time share a single refresh attempt.  When the
    refresh fails, ``on_session_expired`` is invoked and the 401 surfaces as
    a :class:`SyncTransportError`.
    """

    def __init__(
        self,
        config: SyncConfig,
        http_session: aiohttp.ClientSession,
        *,
        on_session_expired: Callable[[], None] | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._on_session_expired = on_session_expired
        self._cookies: dict[str, str] = {}
        self._cookie_header: str = ""
        self._refresh_task: asyncio.Task[bool] | None = None

    @property
    def cookie_header(self) -> str:
        """Current ``Cookie`` header value (shared with the teardown beacon)."""
        return self._cookie_header

    def _update_cookies(self, headers: Any) -> None:
        """Merge ``Set-Cookie`` headers into the session cookie jar."""
        jar: SimpleCookie = SimpleCookie()
        for raw in headers.getall("Set-Cookie", []):
            jar.load(raw)
        received = {name: morsel.value for name, morsel in jar.items()}
        if not received or received.items() <= self._cookies.items():
            return
        self._cookies.update(received)
        self._cookie_header = "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def clear_cookies(self) -> None:
        self._cookies.clear()
        self._cookie_header = ""

    async def _send(
        self,
        method: str,
        endpoint: str,
        payload: Mapping[str, Any] | None,
        extra_headers: Mapping[str, str] | None,
    ) -> tuple[int, str, dict[str, str]]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if payload is not None:
            headers["content-type"] = "application/json"
        if extra_headers:
            headers.update(extra_headers)
        if self._cookie_header:
            headers["cookie"] = self._cookie_header

        url = f"{self._config.base_url}{endpoint}"
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else None
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)

        _logger.debug("%s %s", method, url)
        if self._config.api_trace_enabled and payload is not None:
            _logger.debug("Request body %s: %s", endpoint, redact_for_log(payload))

        try:
            async with self._http.request(method, url, data=body, headers=headers, timeout=timeout) as resp:
                self._update_cookies(resp.headers)
                text = await resp.text()
                return resp.status, text, {k.lower(): v for k, v in resp.headers.items()}
        except aiohttp.ClientError as exc:
            raise SyncTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        except TimeoutError as exc:
            raise SyncTransportError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc

    async def _do_refresh(self) -> bool:
        try:
            status, _text, _headers = await self._send("POST", REFRESH_ENDPOINT, None, None)
        except SyncTransportError:
            _logger.debug("Session refresh request failed", exc_info=True)
            return False
        return 200 <= status < 300

    async def refresh_session(self) -> bool:
        """Refresh the access cookie; concurrent callers share one attempt."""
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._do_refresh())
            self._refresh_task = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._refresh_task is task:
                self._refresh_task = None

    async def request_json(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        """Send a JSON request and decode the JSON reply.

        Raises :class:`SyncTransportError` for network failures, non-2xx
        statuses (carrying the server's ``error`` message when present) and
        bodies that are not JSON.
        """
        status, text, resp_headers = await self._send(method, endpoint, payload, headers)

        if status == 401 and endpoint not in AUTH_ENDPOINTS:
            if await self.refresh_session():
                status, text, resp_headers = await self._send(method, endpoint, payload, headers)
            elif self._on_session_expired is not None:
                try:
                    self._on_session_expired()
                except Exception:
                    _logger.debug("on_session_expired callback failed", exc_info=True)

        if not 200 <= status < 300:
            raise SyncTransportError(
                _error_message(text, f"HTTP {status} from {endpoint}: {text[:200]}"),
                status_code=status,
                endpoint=endpoint,
            )

        if not text.strip():
            return TransportResponse(status=status, body=None, headers=resp_headers)

        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SyncTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        if self._config.api_trace_enabled:
            _logger.debug("Response body %s: %s", endpoint, redact_for_log(decoded))

        return TransportResponse(status=status, body=decoded, headers=resp_headers)
