"""Media library item model."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from studiosync.models._base import LinkableEntity


class MediaType(StrEnum):
    IMAGE = "image"
    BGM = "bgm"
    SFX = "sfx"


class MediaSource(StrEnum):
    GENERATED = "generated"
    UPLOADED = "uploaded"


class MediaItem(LinkableEntity):
    """An image, background track or sound effect in the media library.

    ``data_url`` is either an inline base64 ``data:`` URL (not yet uploaded)
    or a storage URL returned by the upload endpoint.
    """

    name: str = ""
    description: str = ""
    type: MediaType = MediaType.IMAGE
    mime_type: str = ""
    data_url: str = ""
    thumbnail_url: str | None = None
    duration: float | None = None
    size: int | None = None
    tags: list[str] = Field(default_factory=list)
    source: MediaSource = MediaSource.UPLOADED
    prompt: str | None = None

    def matches(self, query: str) -> bool:
        """Case-insensitive match against name, description and tags."""
        needle = query.lower()
        return (
            needle in self.name.lower()
            or needle in self.description.lower()
            or any(needle in tag.lower() for tag in self.tags)
        )
