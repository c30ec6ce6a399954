from typing import Literal

from pydantic import BaseModel, Field

from dramagen.schemas.shot import Shot

ConcatStrategy = Literal["list", "graph"]
SamplingStrategy = Literal["uniform", "scene_based", "interval"]


class TrimResult(BaseModel):
    output_path: str
    duration_ms: int
    width: int
    height: int
    size_bytes: int = 0


class ConcatResult(BaseModel):
    output_path: str
    duration_sec: float  # expected duration of the joined output
    size_bytes: int
    segment_count: int
    strategy: ConcatStrategy


class MixResult(BaseModel):
    output_path: str
    track_count: int
    size_bytes: int
    included_original: bool = False


class RenderResult(BaseModel):
    output_path: str
    duration_sec: float
    total_frames: int
    render_time_ms: int
    size_bytes: int


class ShotDetectionResult(BaseModel):
    video_path: str
    threshold: float
    shots: list[Shot] = Field(default_factory=list)


class SampledFrame(BaseModel):
    path: str
    timestamp_ms: int
    width: int
    height: int


class SamplingResult(BaseModel):
    frames: list[SampledFrame] = Field(default_factory=list)
    strategy: SamplingStrategy
    total_frames: int
    output_dir: str
    cover_path: str | None = None
