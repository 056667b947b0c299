"""Base models for synchronised studio records.

Every record kept in a collection inherits from :class:`Entity`, which
provides:

* ``alias_generator=to_camel`` so the backend's camelCase keys map
  automatically to snake_case fields.
* ``extra="allow"`` so domain fields this package does not model
  (script sections, inline audio, future additions) survive a
  load/save round trip untouched.
* ``frozen=True`` so a cached snapshot can be handed out without copying;
  every change produces a new instance via ``model_copy``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class StudioModel(BaseModel):
    """Base for all wire models."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Entity(StudioModel):
    """A record with a unique id and creation/modification timestamps."""

    id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        entity_id = value.strip()
        if not entity_id:
            raise ValueError("id must be non-empty")
        return entity_id

    @field_validator("created_at", "updated_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class LinkableEntity(Entity):
    """An entity that can be associated with any number of projects."""

    project_ids: list[str] = Field(default_factory=list)

    def is_linked_to(self, project_id: str) -> bool:
        return project_id in self.project_ids
