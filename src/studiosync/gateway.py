"""Remote storage gateway.

The sync core only depends on the :class:`RemoteGateway` protocol: a full
collection fetch and a full collection replace.  :class:`HttpRemoteGateway`
binds it to the studio backend's ``/storage/<kind>`` routes and also exposes
the asset upload helpers that live next to those routes.

Endpoints:
  - GET/POST /storage/projects   (payload key ``projects``)
  - GET/POST /storage/voices     (payload key ``voices``)
  - GET/POST /storage/media      (payload key ``items``)
  - GET      /storage/status
  - POST     /storage/voices/{id}/sample
  - POST     /storage/media/{id}/file
  - DELETE   /storage/media/{id}/file
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError

from studiosync._constants import STORAGE_STATUS_ENDPOINT
from studiosync._transport import Transport, TransportResponse
from studiosync.config import SyncConfig
from studiosync.exceptions import StudioSyncError, SyncConflictError, SyncTransportError
from studiosync.kinds import CollectionKind, EntityT, Snapshot
from studiosync.models import MediaType

_logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class SaveAck(BaseModel):
    """Acknowledgement of a full-collection replace."""

    model_config = ConfigDict(frozen=True)

    kind: str
    count: int
    revision: str | None = None


class StorageStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    configured: bool
    message: str = ""


class RemoteGateway(Protocol):
    """Durable backend for whole-collection snapshots."""

    async def load(self, kind: CollectionKind[EntityT]) -> Snapshot[EntityT]:
        ...

    async def save(self, kind: CollectionKind[EntityT], snapshot: Snapshot[EntityT]) -> SaveAck:
        ...


def is_persisted_id(entity_id: str) -> bool:
    """Server-assigned ids are UUIDs; anything else only ever existed locally."""
    return bool(_UUID_RE.match(entity_id))


class HttpRemoteGateway:
    """:class:`RemoteGateway` implementation over the studio REST API."""

    def __init__(self, config: SyncConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport
        self._revisions: dict[str, str] = {}

    def revision(self, kind: CollectionKind[Any]) -> str | None:
        """Last ``ETag`` seen for *kind*, if the backend sends one."""
        return self._revisions.get(kind.name)

    def forget_revisions(self) -> None:
        self._revisions.clear()

    def _remember_revision(self, kind: CollectionKind[Any], response: TransportResponse) -> str | None:
        etag = response.headers.get("etag")
        if etag:
            self._revisions[kind.name] = etag
        return etag

    async def load(self, kind: CollectionKind[EntityT]) -> Snapshot[EntityT]:
        """Fetch the whole collection."""
        response = await self._transport.request_json("GET", kind.endpoint)
        body = response.body if isinstance(response.body, dict) else {}
        items = body.get(kind.payload_key) or []
        if not isinstance(items, list):
            raise SyncTransportError(
                f"'{kind.payload_key}' from {kind.endpoint} is not a list",
                status_code=response.status,
                endpoint=kind.endpoint,
            )
        try:
            snapshot = kind.parse_snapshot(items)
        except ValidationError as exc:
            raise SyncTransportError(
                f"Invalid {kind.name} payload from {kind.endpoint}: {exc.error_count()} error(s)",
                status_code=response.status,
                endpoint=kind.endpoint,
            ) from exc
        self._remember_revision(kind, response)
        _logger.debug("Loaded %s count=%d", kind.name, len(snapshot))
        return snapshot

    async def save(self, kind: CollectionKind[EntityT], snapshot: Snapshot[EntityT]) -> SaveAck:
        """Replace the whole collection."""
        headers: dict[str, str] = {}
        known = self._revisions.get(kind.name)
        if self._config.optimistic_concurrency and known:
            headers["if-match"] = known

        try:
            response = await self._transport.request_json(
                "POST",
                kind.endpoint,
                payload=kind.wrap(snapshot),
                headers=headers or None,
            )
        except SyncTransportError as exc:
            if exc.status_code == 412:
                raise SyncConflictError(
                    f"{kind.name} changed remotely since revision {known}; re-hydrate before saving",
                    kind=kind.name,
                ) from exc
            raise

        revision = self._remember_revision(kind, response)
        return SaveAck(kind=kind.name, count=len(snapshot), revision=revision)

    async def storage_status(self) -> StorageStatus:
        """Report whether the backend has durable storage configured."""
        try:
            response = await self._transport.request_json("GET", STORAGE_STATUS_ENDPOINT)
            return StorageStatus.model_validate(response.body)
        except (StudioSyncError, ValidationError):
            _logger.debug("Storage status check failed", exc_info=True)
            return StorageStatus(configured=False, message="Storage API unavailable")

    async def _upload(self, endpoint: str, payload: dict[str, Any]) -> str:
        response = await self._transport.request_json("POST", endpoint, payload=payload)
        body = response.body if isinstance(response.body, dict) else {}
        url = body.get("url")
        if not isinstance(url, str) or not url:
            raise SyncTransportError(f"Upload response from {endpoint} has no url", endpoint=endpoint)
        return url

    async def upload_voice_sample(self, voice_id: str, data_url: str) -> str:
        """Upload reference audio for a voice and return its storage URL."""
        url = await self._upload(f"/storage/voices/{voice_id}/sample", {"dataUrl": data_url})
        _logger.debug("Uploaded voice sample for %s", voice_id)
        return url

    async def upload_media_file(self, media_id: str, data_url: str, media_type: MediaType) -> str:
        """Upload an inline ``data:`` URL; anything else is already stored and returned as-is."""
        if not data_url.startswith("data:"):
            return data_url
        url = await self._upload(
            f"/storage/media/{media_id}/file",
            {"dataUrl": data_url, "type": str(media_type)},
        )
        _logger.debug("Uploaded media %s for %s", media_type, media_id)
        return url

    async def delete_media_file(
        self,
        media_id: str,
        media_type: MediaType,
        file_url: str | None = None,
    ) -> bool:
        """Delete a stored media file.

        Local-only ids and inline ``data:`` URLs were never uploaded, so there
        is nothing to delete and no request is made.
        """
        if not is_persisted_id(media_id) or (file_url or "").startswith("data:"):
            _logger.debug("Skipping remote delete for unstored media %s", media_id)
            return True
        payload: dict[str, Any] = {"type": str(media_type)}
        if file_url:
            payload["fileUrl"] = file_url
        try:
            response = await self._transport.request_json(
                "DELETE",
                f"/storage/media/{media_id}/file",
                payload=payload,
            )
        except SyncTransportError:
            _logger.debug("Media delete failed for %s", media_id, exc_info=True)
            return False
        body = response.body if isinstance(response.body, dict) else {}
        return bool(body.get("success"))

