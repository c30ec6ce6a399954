from dramagen.schemas.envelope import ErrorInfo, ErrorLocation
from dramagen.schemas.job import JobPayload, JobStatus, RenderJob
from dramagen.schemas.render import (
    ConcatResult,
    MixResult,
    RenderResult,
    SampledFrame,
    SamplingResult,
    ShotDetectionResult,
    TrimResult,
)
from dramagen.schemas.shot import Shot
from dramagen.schemas.subtitles import CaptionStyle, SubtitleCue, SubtitleWord
from dramagen.schemas.timeline import Segment, Track, TransitionSpec

__all__ = [
    "ErrorInfo",
    "ErrorLocation",
    "JobPayload",
    "JobStatus",
    "RenderJob",
    "ConcatResult",
    "MixResult",
    "RenderResult",
    "SampledFrame",
    "SamplingResult",
    "ShotDetectionResult",
    "TrimResult",
    "Shot",
    "CaptionStyle",
    "SubtitleCue",
    "SubtitleWord",
    "Segment",
    "Track",
    "TransitionSpec",
]
