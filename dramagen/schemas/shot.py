from pydantic import BaseModel, ConfigDict, Field


class Shot(BaseModel):
    """A contiguous range of a video between two detected scene changes."""

    model_config = ConfigDict(frozen=True)

    id: str
    start_ms: int
    end_ms: int
    thumbnail_path: str | None = None
    tags: list[str] = Field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


class SceneChange(BaseModel):
    """A raw scene-change event reported by the encoder."""

    model_config = ConfigDict(frozen=True)

    pts_time: float  # seconds
    score: float
