"""Voice character model."""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from studiosync.models._base import LinkableEntity


class VoiceCharacter(LinkableEntity):
    """A reusable voice profile, optionally cloned from reference audio."""

    name: str = ""
    description: str = ""
    avatar_url: str | None = None
    audio_sample_url: str | None = None
    ref_audio_data_url: str | None = None
    ref_text: str | None = None
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _map_ref_audio_url(cls, values: Any) -> Any:
        """The backend returns a signed ``refAudioUrl``; expose it as ``refAudioDataUrl``."""
        if not isinstance(values, dict):
            return values
        if values.get("refAudioDataUrl") or values.get("ref_audio_data_url"):
            return values
        signed = values.get("refAudioUrl")
        if isinstance(signed, str) and signed:
            return {**values, "refAudioDataUrl": signed}
        return values
