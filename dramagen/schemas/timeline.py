from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from dramagen.config import get_settings

TrackType = Literal["voiceover", "original", "bgm", "sfx"]
TransitionKind = Literal["none", "fade", "slide", "zoom", "crossfade"]


class Segment(BaseModel):
    """One input clip in an ordered edit sequence.

    Range checks happen in ``validate_segments`` so that each failure maps to
    its own error code instead of a generic pydantic error.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    start_ms: int | None = None
    duration_ms: int | None = None

    @property
    def has_window(self) -> bool:
        return self.start_ms is not None or self.duration_ms is not None


class Track(BaseModel):
    """One audio source with a role in the mix."""

    model_config = ConfigDict(frozen=True)

    type: TrackType
    path: str
    volume: float | None = None
    start_ms: int | None = None
    duration_ms: int | None = None


class TransitionSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: TransitionKind = "none"
    duration_ms: int = Field(default_factory=lambda: get_settings().transition_duration_ms)


NO_TRANSITION = TransitionSpec(kind="none", duration_ms=0)
