"""Collection kinds and their wire bindings.

A :class:`CollectionKind` ties together everything that differs between the
synchronised collections: the name used in logs and by the gateway, the
storage path, the key the backend wraps the list in, and the entity model.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter

from studiosync.models import Entity, MediaItem, Project, VoiceCharacter

EntityT = TypeVar("EntityT", bound=Entity)

#: The entire value of a collection at one instant.
Snapshot = tuple[EntityT, ...]


@dataclass(frozen=True)
class CollectionKind(Generic[EntityT]):
    name: str
    path: str
    payload_key: str
    model: type[EntityT]

    @property
    def endpoint(self) -> str:
        return f"/storage/{self.path}"

    def parse_snapshot(self, items: Iterable[Any]) -> Snapshot[EntityT]:
        """Validate raw wire records into an immutable snapshot."""
        adapter = TypeAdapter(list[self.model])  # type: ignore[name-defined]
        return tuple(adapter.validate_python(list(items)))

    def dump_snapshot(self, snapshot: Sequence[EntityT]) -> list[dict[str, Any]]:
        return [entity.to_wire() for entity in snapshot]

    def wrap(self, snapshot: Sequence[EntityT]) -> dict[str, Any]:
        """Build the request body the storage endpoint expects."""
        return {self.payload_key: self.dump_snapshot(snapshot)}


PROJECTS: CollectionKind[Project] = CollectionKind("projects", "projects", "projects", Project)
VOICES: CollectionKind[VoiceCharacter] = CollectionKind("voices", "voices", "voices", VoiceCharacter)
MEDIA: CollectionKind[MediaItem] = CollectionKind("media", "media", "items", MediaItem)

ALL_KINDS: tuple[CollectionKind[Any], ...] = (PROJECTS, VOICES, MEDIA)
