from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from dramagen.schemas.envelope import ErrorInfo
from dramagen.schemas.render import SamplingStrategy
from dramagen.schemas.subtitles import CaptionStyle, SubtitleCue
from dramagen.schemas.timeline import NO_TRANSITION, Segment, Track, TransitionSpec

ShortShotPolicy = Literal["drop", "merge"]


class JobStatus(str, Enum):
    """Render job status."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRIED = "retried"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


# =============================================================================
# Job payloads (one per kind, discriminated on ``kind``)
# =============================================================================


class TrimPayload(BaseModel):
    kind: Literal["trim"] = "trim"
    input_path: str
    output_path: str
    start_ms: int = 0
    end_ms: int | None = None
    crf: int | None = None
    width: int | None = None
    height: int | None = None
    overwrite: bool = False


class ConcatPayload(BaseModel):
    kind: Literal["concat"] = "concat"
    segments: list[Segment]
    output_path: str
    transition: TransitionSpec = NO_TRANSITION
    width: int | None = None
    height: int | None = None
    fps: int | None = None
    overwrite: bool = False


class MixAudioPayload(BaseModel):
    kind: Literal["mix_audio"] = "mix_audio"
    video_path: str
    tracks: list[Track]
    output_path: str
    include_original: bool = True
    overwrite: bool = False


class DetectShotsPayload(BaseModel):
    kind: Literal["detect_shots"] = "detect_shots"
    video_path: str
    threshold: float | None = None
    min_shot_duration_ms: int | None = None
    thumbnail_dir: str | None = None
    short_shot_policy: ShortShotPolicy = "drop"
    close_tail: bool = False
    overwrite: bool = False


class SampleKeyframesPayload(BaseModel):
    kind: Literal["sample_keyframes"] = "sample_keyframes"
    video_path: str
    output_dir: str
    strategy: SamplingStrategy = "uniform"
    frame_count: int | None = None
    interval_seconds: float | None = None
    proxy_width: int | None = None
    jpeg_quality: int | None = None
    threshold: float | None = None
    include_cover: bool = False
    overwrite: bool = False


class RenderCompositionPayload(BaseModel):
    kind: Literal["render_composition"] = "render_composition"
    composition_id: str
    output_path: str
    input_props: dict[str, Any] = Field(default_factory=dict)
    width: int | None = None
    height: int | None = None
    fps: int | None = None
    overwrite: bool = False


class CaptionedVideoPayload(BaseModel):
    kind: Literal["captioned_video"] = "captioned_video"
    video_path: str
    cues: list[SubtitleCue]
    output_path: str
    style: CaptionStyle = Field(default_factory=CaptionStyle)
    overwrite: bool = False


JobPayload = Annotated[
    Union[
        TrimPayload,
        ConcatPayload,
        MixAudioPayload,
        DetectShotsPayload,
        SampleKeyframesPayload,
        RenderCompositionPayload,
        CaptionedVideoPayload,
    ],
    Field(discriminator="kind"),
]

JOB_PAYLOAD_ADAPTER: TypeAdapter[JobPayload] = TypeAdapter(JobPayload)


class RenderJob(BaseModel):
    """A unit of queued work and its lifecycle state."""

    id: str
    payload: JobPayload
    status: JobStatus = JobStatus.WAITING
    attempts: int = 0
    max_attempts: int = 3
    progress: float = 0.0
    error: ErrorInfo | None = None
    result: dict[str, Any] | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def kind(self) -> str:
        return self.payload.kind
