"""Pure snapshot transformations.

Every function takes a snapshot and returns a new one; nothing here touches
the cache or the network.  ``updated_at`` is only ever moved forward: a
mutation stamped with a clock reading older than the entity's current
``updated_at`` keeps the existing value.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, TypeVar

from studiosync.models import Entity, LinkableEntity

E = TypeVar("E", bound=Entity)
L = TypeVar("L", bound=LinkableEntity)


def _to_wire_keys(model: type[Entity], changes: Mapping[str, Any]) -> dict[str, Any]:
    fields = model.model_fields
    return {(fields[key].alias or key) if key in fields else key: value for key, value in changes.items()}


def touch(entity: E, now: datetime, changes: Mapping[str, Any] | None = None) -> E:
    """Rebuild *entity* with *changes* applied and ``updated_at`` advanced to *now*.

    *changes* may name modelled fields by attribute or wire key.  The result
    is validated like a loaded record, so a bad value raises
    :class:`pydantic.ValidationError` and nested dicts become models.
    """
    model = type(entity)
    update = _to_wire_keys(model, changes or {})
    update.pop("id", None)
    update.pop("createdAt", None)
    update["updatedAt"] = max(entity.updated_at, now)
    return model.model_validate({**entity.model_dump(by_alias=True), **update})


def duplicate_ids(entities: Iterable[Entity]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for entity in entities:
        if entity.id in seen and entity.id not in dupes:
            dupes.append(entity.id)
        seen.add(entity.id)
    return dupes


def add_entity(snapshot: tuple[E, ...], entity: E) -> tuple[E, ...]:
    """Append *entity*; an entity with the same id is replaced in place."""
    for index, existing in enumerate(snapshot):
        if existing.id == entity.id:
            return snapshot[:index] + (entity,) + snapshot[index + 1 :]
    return snapshot + (entity,)


def update_entity(
    snapshot: tuple[E, ...],
    entity_id: str,
    changes: Mapping[str, Any],
    now: datetime,
) -> tuple[E, ...]:
    return tuple(touch(e, now, changes) if e.id == entity_id else e for e in snapshot)


def replace_entity(snapshot: tuple[E, ...], entity: E, now: datetime) -> tuple[E, ...]:
    """Swap in a caller-edited copy of an existing entity, stamping it."""
    return tuple(touch(entity, now) if e.id == entity.id else e for e in snapshot)


def remove_entity(snapshot: tuple[E, ...], entity_id: str) -> tuple[E, ...]:
    return tuple(e for e in snapshot if e.id != entity_id)


def link_entity(snapshot: tuple[L, ...], entity_id: str, project_id: str, now: datetime) -> tuple[L, ...]:
    """Add *project_id* to an entity's links; already-linked entities are left as-is."""
    result: list[L] = []
    for entity in snapshot:
        if entity.id == entity_id and project_id not in entity.project_ids:
            entity = touch(entity, now, {"project_ids": [*entity.project_ids, project_id]})
        result.append(entity)
    return tuple(result)


def unlink_entity(snapshot: tuple[L, ...], entity_id: str, project_id: str, now: datetime) -> tuple[L, ...]:
    result: list[L] = []
    for entity in snapshot:
        if entity.id == entity_id and entity.project_ids:
            remaining = [pid for pid in entity.project_ids if pid != project_id]
            entity = touch(entity, now, {"project_ids": remaining})
        result.append(entity)
    return tuple(result)


def set_entity_links(
    snapshot: tuple[L, ...],
    entity_id: str,
    project_ids: Iterable[str],
    now: datetime,
) -> tuple[L, ...]:
    """Replace an entity's project links wholesale (order kept, duplicates dropped)."""
    links = list(dict.fromkeys(project_ids))
    return tuple(touch(e, now, {"project_ids": links}) if e.id == entity_id else e for e in snapshot)
