"""High-level async entry point: one synchronised store per collection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import aiohttp

from studiosync._transport import HttpTransport
from studiosync.config import SyncConfig
from studiosync.exceptions import StudioSyncError
from studiosync.gateway import HttpRemoteGateway, RemoteGateway, SaveAck, StorageStatus
from studiosync.kinds import MEDIA, PROJECTS, VOICES, CollectionKind, EntityT, Snapshot
from studiosync.models import (
    Episode,
    MediaItem,
    MediaSource,
    MediaType,
    Project,
    ProjectSpec,
    ProjectStage,
    Religion,
    VoiceCharacter,
)
from studiosync.sync import mutations
from studiosync.sync.flusher import UnloadFlusher
from studiosync.sync.store import EntityStore, new_entity_id
from studiosync.sync.teardown import AtexitTeardownHook, BeaconSender, TeardownHook, ThreadBeaconSender

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _DeferredGateway:
    """Forwards to the studio's gateway, which only exists once the studio is entered."""

    def __init__(self, studio: Studio) -> None:
        self._studio = studio

    async def load(self, kind: CollectionKind[EntityT]) -> Snapshot[EntityT]:
        return await self._studio._require_gateway().load(kind)

    async def save(self, kind: CollectionKind[EntityT], snapshot: Snapshot[EntityT]) -> SaveAck:
        return await self._studio._require_gateway().save(kind, snapshot)


class Studio:
    """Composition root for the content studio's persisted collections.

    Usage::

        async with Studio(SyncConfig.from_env()) as studio:
            await studio.hydrate_all()
            project = studio.create_project(title="Morning Prayers")

    Each collection kind gets exactly one :class:`EntityStore` (and with it
    one coalescer and one teardown flusher).  Pass ``gateway`` to bind the
    stores to something other than the HTTP backend.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        gateway: RemoteGateway | None = None,
        teardown: TeardownHook | None = None,
        beacon: BeaconSender | None = None,
        clock: Callable[[], datetime] = _utcnow,
        on_session_expired: Callable[[], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: HttpTransport | None = None
        self._gateway: RemoteGateway | None = gateway
        self._on_session_expired = on_session_expired
        self._clock = clock

        self._owns_teardown = teardown is None
        if beacon is None:
            thread_beacon = ThreadBeaconSender(
                timeout=config.beacon_timeout,
                headers_provider=self._beacon_headers,
            )
            beacon = thread_beacon
            if teardown is None:
                teardown = AtexitTeardownHook(settle=thread_beacon.wait)
        self._teardown: TeardownHook = teardown if teardown is not None else AtexitTeardownHook()
        self._beacon = beacon

        bound = _DeferredGateway(self)
        self.projects: EntityStore[Project] = EntityStore(PROJECTS, bound, clock=clock)
        self.voices: EntityStore[VoiceCharacter] = EntityStore(VOICES, bound, clock=clock)
        self.media: EntityStore[MediaItem] = EntityStore(MEDIA, bound, clock=clock)
        self._flushers: list[UnloadFlusher[Any]] = [
            UnloadFlusher(
                store.coalescer,
                beacon,
                url=f"{config.base_url}{store.kind.endpoint}",
                max_bytes=config.beacon_max_bytes,
            )
            for store in self.stores
        ]
        for flusher in self._flushers:
            flusher.install(self._teardown)

    @property
    def stores(self) -> tuple[EntityStore[Any], ...]:
        return (self.projects, self.voices, self.media)

    @property
    def is_cloud_synced(self) -> bool:
        return all(store.hydrated for store in self.stores)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Studio:
        if self._gateway is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(
                self._config,
                self._http_session,
                on_session_expired=self._on_session_expired,
            )
            self._gateway = HttpRemoteGateway(self._config, self._transport)
        for flusher in self._flushers:
            flusher.install(self._teardown)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self, timeout: float | None = None) -> None:
        """Let pending saves settle, flush leftovers, then release the HTTP session.

        Each store gets up to *timeout* seconds (default
        ``config.shutdown_timeout``) to drain.  Whatever is still pending
        afterwards goes out through the teardown flush.
        A teardown hook the studio created itself is closed afterwards and
        re-armed on the next ``async with``.
        """
        budget = self._config.shutdown_timeout if timeout is None else timeout
        for store, flusher in zip(self.stores, self._flushers, strict=True):
            if not await store.coalescer.drain(budget):
                _logger.warning("Timed out draining %s saves after %.1fs", store.kind.name, budget)
            flusher.fire()
        if self._owns_teardown:
            self._teardown.close()
            for flusher in self._flushers:
                flusher.detach()
        if self._transport is not None and not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._gateway = None
        self._transport = None

    def _require_gateway(self) -> RemoteGateway:
        if self._gateway is None:
            raise StudioSyncError("Studio not initialized. Use 'async with Studio(...) as studio:'")
        return self._gateway

    def _require_http_gateway(self) -> HttpRemoteGateway:
        gateway = self._require_gateway()
        if not isinstance(gateway, HttpRemoteGateway):
            raise StudioSyncError("Asset storage requires the HTTP gateway")
        return gateway

    def _beacon_headers(self) -> Mapping[str, str]:
        if self._transport is not None and self._transport.cookie_header:
            return {"cookie": self._transport.cookie_header}
        return {}

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def hydrate_all(self) -> None:
        """Load every collection from the backend, projects first.

        The first failure propagates as :class:`HydrationError`; collections
        not yet loaded keep their current cache.
        """
        for store in self.stores:
            await store.hydrate()
        _logger.debug("Cloud sync completed")

    def reset(self) -> None:
        """Forget all local state (logout)."""
        for store in self.stores:
            store.reset()
        if self._transport is not None:
            self._transport.clear_cookies()
        if isinstance(self._gateway, HttpRemoteGateway):
            self._gateway.forget_revisions()

    async def storage_status(self) -> StorageStatus:
        return await self._require_http_gateway().storage_status()

    # ------------------------------------------------------------------
    # Projects and episodes
    # ------------------------------------------------------------------

    def create_project(
        self,
        *,
        title: str,
        description: str = "",
        religion: Religion = Religion.DEFAULT,
        tags: list[str] | None = None,
        subtitle: str | None = None,
        spec: ProjectSpec | None = None,
        first_episode: Mapping[str, Any] | None = None,
    ) -> Project:
        """Create a project, optionally with its first episode."""
        now = self._clock()
        episodes: list[Episode] = []
        if first_episode is not None:
            fields = dict(first_episode)
            fields.setdefault("stage", ProjectStage.REVIEW if fields.get("audioData") else ProjectStage.SCRIPTING)
            episodes.append(Episode(**{**fields, "id": new_entity_id(), "created_at": now, "updated_at": now}))
        return self.projects.create(
            title=title,
            subtitle=subtitle,
            description=description,
            religion=religion,
            tags=list(tags or []),
            spec=spec,
            episodes=episodes,
        )

    def update_project(self, project: Project) -> Project | None:
        return self.projects.replace(project)

    def delete_project(self, project_id: str) -> bool:
        return self.projects.remove(project_id)

    def add_episode(self, project_id: str, **fields: Any) -> Episode | None:
        """Append a new episode to a project.  Returns ``None`` for unknown projects."""
        project = self.projects.get(project_id)
        if project is None:
            return None
        now = self._clock()
        episode = Episode(**{**fields, "id": new_entity_id(), "created_at": now, "updated_at": now})
        self.projects.update(project_id, {"episodes": [*project.episodes, episode]})
        return episode

    def update_episode(self, project_id: str, episode: Episode) -> Episode | None:
        project = self.projects.get(project_id)
        if project is None or project.get_episode(episode.id) is None:
            return None
        episodes = list(mutations.replace_entity(tuple(project.episodes), episode, self._clock()))
        updated = self.projects.update(project_id, {"episodes": episodes})
        return updated.get_episode(episode.id) if updated is not None else None

    def delete_episode(self, project_id: str, episode_id: str) -> bool:
        project = self.projects.get(project_id)
        if project is None or project.get_episode(episode_id) is None:
            return False
        episodes = list(mutations.remove_entity(tuple(project.episodes), episode_id))
        self.projects.update(project_id, {"episodes": episodes})
        return True

    def projects_by_religion(self, religion: Religion) -> list[Project]:
        return self.projects.filter(lambda p: p.religion == religion)

    def project_spec(self, project_id: str) -> ProjectSpec | None:
        project = self.projects.get(project_id)
        return project.spec if project is not None else None

    # ------------------------------------------------------------------
    # Voices
    # ------------------------------------------------------------------

    def voices_for_project(self, project_id: str) -> list[VoiceCharacter]:
        return self.voices.linked_to(project_id)

    async def attach_voice_sample(self, voice_id: str, data_url: str) -> VoiceCharacter | None:
        """Upload reference audio for a voice and store the resulting URL.

        If the upload fails the inline data URL is kept so the voice stays usable.
        """
        try:
            url = await self._require_http_gateway().upload_voice_sample(voice_id, data_url)
        except StudioSyncError:
            _logger.warning("Failed to upload voice sample for %s; keeping inline audio", voice_id, exc_info=True)
            url = data_url
        return self.voices.update(voice_id, {"ref_audio_data_url": url})

    # ------------------------------------------------------------------
    # Media library
    # ------------------------------------------------------------------

    async def add_media(
        self,
        *,
        name: str,
        media_type: MediaType,
        data_url: str,
        source: MediaSource = MediaSource.UPLOADED,
        **fields: Any,
    ) -> MediaItem:
        """Upload the file when possible, then add the item to the library."""
        media_id = new_entity_id()
        stored_url = data_url
        try:
            stored_url = await self._require_http_gateway().upload_media_file(media_id, data_url, media_type)
        except StudioSyncError:
            _logger.warning("Failed to upload media %s; keeping inline data", name, exc_info=True)
        now = self._clock()
        item = MediaItem(
            **{
                **fields,
                "id": media_id,
                "name": name,
                "type": media_type,
                "data_url": stored_url,
                "source": source,
                "created_at": now,
                "updated_at": now,
            }
        )
        self.media.add(item)
        return item

    async def delete_media(self, media_id: str) -> bool:
        """Remove an item locally, then delete its stored file (best effort).

        Items still holding inline data were never uploaded; only the local
        record is removed.
        """
        item = self.media.get(media_id)
        if item is None:
            return False
        self.media.remove(media_id)
        if item.data_url.startswith("data:"):
            return True
        try:
            await self._require_http_gateway().delete_media_file(media_id, item.type, item.data_url)
        except StudioSyncError:
            _logger.warning("Failed to delete stored file for media %s", media_id, exc_info=True)
        return True

    def media_by_type(self, media_type: MediaType) -> list[MediaItem]:
        return self.media.filter(lambda item: item.type == media_type)

    def media_for_project(self, project_id: str) -> list[MediaItem]:
        return self.media.linked_to(project_id)

    def search_media(self, query: str) -> list[MediaItem]:
        return self.media.filter(lambda item: item.matches(query))
