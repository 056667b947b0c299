"""Synchronous entity cache with asynchronous write-through.

An :class:`EntityStore` is the only owner of one collection's in-memory
value.  Reads never perform I/O.  Writes replace the cache immediately and
hand the new snapshot to a :class:`WriteCoalescer`; callers never wait for
the network and never see persistence failures.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Generic

from studiosync.exceptions import HydrationError, SyncConflictError
from studiosync.gateway import RemoteGateway
from studiosync.kinds import CollectionKind, EntityT, Snapshot
from studiosync.models import LinkableEntity
from studiosync.sync import mutations
from studiosync.sync.coalescer import SaveResult, WriteCoalescer

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def new_entity_id() -> str:
    return str(uuid.uuid4())


class EntityStore(Generic[EntityT]):
    """Cache for one collection kind.

    The cache always reflects the most recently requested write, whether its
    save has completed, failed, or not started yet.  ``hydrate()`` overwrites
    unsynced local changes, so call it only at safe points (start-up, an
    explicit re-sync).
    """

    def __init__(
        self,
        kind: CollectionKind[EntityT],
        gateway: RemoteGateway,
        *,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = new_entity_id,
        logger: logging.Logger | None = None,
    ) -> None:
        self._kind = kind
        self._gateway = gateway
        self._clock = clock
        self._id_factory = id_factory
        self._logger = logger or _logger
        self._cache: Snapshot[EntityT] = ()
        self._hydrated = False
        self._needs_resync = False
        self.coalescer: WriteCoalescer[EntityT] = WriteCoalescer(
            kind,
            gateway,
            logger=self._logger,
            on_result=self._on_save_result,
        )

    @property
    def kind(self) -> CollectionKind[EntityT]:
        return self._kind

    @property
    def hydrated(self) -> bool:
        return self._hydrated

    @property
    def needs_resync(self) -> bool:
        """True after a save was rejected because the remote copy changed."""
        return self._needs_resync

    def _on_save_result(self, result: SaveResult) -> None:
        if isinstance(result.error, SyncConflictError):
            self._needs_resync = True

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def read(self) -> Snapshot[EntityT]:
        """Current cached snapshot.  Empty before the first hydration."""
        return self._cache

    async def hydrate(self) -> Snapshot[EntityT]:
        """Replace the cache with the remote collection.

        Raises :class:`HydrationError` when the load fails; the cache is then
        left untouched.  There is no retry.
        """
        try:
            snapshot = await self._gateway.load(self._kind)
        except Exception as exc:
            raise HydrationError(f"Failed to load {self._kind.name}: {exc}", kind=self._kind.name) from exc
        self._cache = tuple(snapshot)
        self._hydrated = True
        self._needs_resync = False
        self._logger.debug("Loaded %d %s from cloud", len(self._cache), self._kind.name)
        return self._cache

    def write(self, snapshot: Iterable[EntityT]) -> None:
        """Replace the cache and schedule the snapshot for saving.

        Raises :class:`ValueError` if two entities share an id; the cache is
        not modified in that case.
        """
        new_snapshot = tuple(snapshot)
        dupes = mutations.duplicate_ids(new_snapshot)
        if dupes:
            raise ValueError(f"duplicate {self._kind.name} ids in snapshot: {', '.join(dupes)}")
        self._cache = new_snapshot
        self.coalescer.enqueue(new_snapshot)

    def reset(self) -> None:
        """Forget everything local, including any unsent snapshot."""
        self.coalescer.discard()
        self._cache = ()
        self._hydrated = False
        self._needs_resync = False

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def get(self, entity_id: str) -> EntityT | None:
        for entity in self._cache:
            if entity.id == entity_id:
                return entity
        return None

    def filter(self, predicate: Callable[[EntityT], bool]) -> list[EntityT]:
        return [entity for entity in self._cache if predicate(entity)]

    def linked_to(self, project_id: str) -> list[EntityT]:
        """Entities associated with *project_id*."""
        return [e for e in self._cache if isinstance(e, LinkableEntity) and e.is_linked_to(project_id)]

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------

    def create(self, **fields: Any) -> EntityT:
        """Build a new entity with a fresh id and timestamps, and add it."""
        now = self._clock()
        entity = self._kind.model(
            **{**fields, "id": self._id_factory(), "created_at": now, "updated_at": now},
        )
        self.add(entity)
        return entity

    def add(self, entity: EntityT) -> None:
        """Add *entity*, replacing any entity with the same id."""
        self.write(mutations.add_entity(self._cache, entity))

    def update(self, entity_id: str, changes: Mapping[str, Any]) -> EntityT | None:
        """Apply field *changes* to one entity.  Unknown ids are a no-op.

        Modelled fields may be named by attribute or by wire (camelCase) key;
        unmodelled extras use the wire key.  Invalid values raise
        :class:`pydantic.ValidationError` and leave the cache unchanged.
        """
        if self.get(entity_id) is None:
            return None
        self.write(mutations.update_entity(self._cache, entity_id, changes, self._clock()))
        return self.get(entity_id)

    def replace(self, entity: EntityT) -> EntityT | None:
        """Store a caller-edited copy of an existing entity.  Unknown ids are a no-op."""
        if self.get(entity.id) is None:
            return None
        self.write(mutations.replace_entity(self._cache, entity, self._clock()))
        return self.get(entity.id)

    def remove(self, entity_id: str) -> bool:
        if self.get(entity_id) is None:
            return False
        self.write(mutations.remove_entity(self._cache, entity_id))
        return True

    def link(self, entity_id: str, project_id: str) -> EntityT | None:
        return self._write_links(entity_id, lambda snap, now: mutations.link_entity(snap, entity_id, project_id, now))

    def unlink(self, entity_id: str, project_id: str) -> EntityT | None:
        return self._write_links(entity_id, lambda snap, now: mutations.unlink_entity(snap, entity_id, project_id, now))

    def set_links(self, entity_id: str, project_ids: Iterable[str]) -> EntityT | None:
        links = list(project_ids)
        return self._write_links(entity_id, lambda snap, now: mutations.set_entity_links(snap, entity_id, links, now))

    def _write_links(
        self,
        entity_id: str,
        transform: Callable[[Any, datetime], Any],
    ) -> EntityT | None:
        if not issubclass(self._kind.model, LinkableEntity):
            raise TypeError(f"{self._kind.name} entities cannot be linked to projects")
        if self.get(entity_id) is None:
            return None
        self.write(transform(self._cache, self._clock()))
        return self.get(entity_id)
