"""Data models for synchronised studio collections."""

from studiosync.models._base import Entity, LinkableEntity, StudioModel
from studiosync.models.media import MediaItem, MediaSource, MediaType
from studiosync.models.project import Episode, Project, ProjectSpec, ProjectStage, Religion
from studiosync.models.voice import VoiceCharacter

__all__ = [
    "Entity",
    "Episode",
    "LinkableEntity",
    "MediaItem",
    "MediaSource",
    "MediaType",
    "Project",
    "ProjectSpec",
    "ProjectStage",
    "Religion",
    "StudioModel",
    "VoiceCharacter",
]
