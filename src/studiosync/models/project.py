"""Project and episode models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from studiosync.models._base import Entity, StudioModel


class Religion(StrEnum):
    DEFAULT = "default"
    EDUCATIONAL = "educational"
    FAITHFUL = "faithful"


class ProjectStage(StrEnum):
    PLANNING = "planning"
    SCRIPTING = "scripting"
    RECORDING = "recording"
    EDITING = "editing"
    REVIEW = "review"
    PUBLISHED = "published"


class ProjectSpec(StudioModel):
    """Reusable production settings applied to every new episode."""

    target_audience: str = ""
    format_and_duration: str = ""
    tone_and_expression: str = ""
    add_bgm: bool = False
    add_sound_effects: bool = False
    has_visual_content: bool = False


class Episode(Entity):
    """One episode of a project.

    Rich script data (``scriptSections``, ``characters``) and the inline
    mixed audio are carried as extra fields.
    """

    title: str = ""
    subtitle: str | None = None
    description: str = ""
    script: str = ""
    stage: ProjectStage = ProjectStage.PLANNING
    notes: str = ""


class Project(Entity):
    title: str = ""
    subtitle: str | None = None
    description: str = ""
    religion: Religion = Religion.DEFAULT
    cover_image: str | None = None
    spec: ProjectSpec | None = None
    episodes: list[Episode] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    def get_episode(self, episode_id: str) -> Episode | None:
        for episode in self.episodes:
            if episode.id == episode_id:
                return episode
        return None
