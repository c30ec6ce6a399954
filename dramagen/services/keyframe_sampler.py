"""Keyframe sampling service for visual analysis.

Extracts a bounded set of representative frames from a video as small JPEG
proxies. Three placement strategies:

- uniform: ``frame_count + 1`` equal intervals, one frame at each interior boundary
- scene_based: frames spread evenly inside each detected shot
- interval: one frame every ``interval_seconds``
"""

import asyncio
import logging
import math
import os
from collections.abc import Sequence

from PIL import Image

from dramagen.config import get_settings
from dramagen.exceptions import MissingFileError, ValidationError
from dramagen.render.encoder import EncodeInvoker, ProgressCallback
from dramagen.schemas.envelope import ErrorLocation
from dramagen.schemas.render import SampledFrame, SamplingResult, SamplingStrategy
from dramagen.schemas.shot import Shot
from dramagen.services.shot_detector import ShotBoundaryDetector
from dramagen.utils.media_info import get_media_duration
from dramagen.utils.output import prepare_output_path
from dramagen.utils.timecode import ms_to_timestamp

logger = logging.getLogger(__name__)


def uniform_timestamps(duration_ms: float, frame_count: int) -> list[int]:
    """Interior boundaries of ``frame_count + 1`` equal intervals; never 0 or the end."""
    interval = duration_ms / (frame_count + 1)
    return [round(interval * (i + 1)) for i in range(frame_count)]


def scene_timestamps(shots: Sequence[Shot], frame_count: int) -> list[int]:
    """Up to ``ceil(frame_count / len(shots))`` evenly spaced frames per shot."""
    if not shots:
        return []
    per_shot = math.ceil(frame_count / len(shots))
    timestamps: list[int] = []
    for shot in shots:
        step = shot.duration_ms / (per_shot + 1)
        for j in range(per_shot):
            if len(timestamps) >= frame_count:
                return timestamps
            timestamps.append(round(shot.start_ms + step * (j + 1)))
    return timestamps


def interval_timestamps(duration_ms: float, interval_seconds: float) -> list[int]:
    """Every ``interval_seconds`` after the start, strictly before the end."""
    step = interval_seconds * 1000
    timestamps = []
    t = step
    while t < duration_ms:
        timestamps.append(round(t))
        t += step
    return timestamps


def _read_dimensions(path: str) -> tuple[int, int]:
    with Image.open(path) as img:
        return img.size


class KeyframeSampler:
    """Samples representative frames and writes downscaled JPEG proxies."""

    def __init__(
        self,
        invoker: EncodeInvoker | None = None,
        detector: ShotBoundaryDetector | None = None,
        proxy_width: int | None = None,
        jpeg_quality: int | None = None,
    ):
        settings = get_settings()
        self.invoker = invoker or EncodeInvoker()
        self.detector = detector or ShotBoundaryDetector(self.invoker)
        self.proxy_width = proxy_width or settings.proxy_width
        self.jpeg_quality = jpeg_quality or settings.sample_jpeg_quality

    async def extract_frame(
        self, video_path: str, timestamp_ms: int, output_path: str, *, overwrite: bool = False
    ) -> SampledFrame:
        """Write one frame at ``timestamp_ms`` scaled to the proxy width."""
        prepare_output_path(output_path, overwrite)
        args = [
            "-y" if overwrite else "-n",
            "-ss", ms_to_timestamp(timestamp_ms),
            "-i", video_path,
            "-frames:v", "1",
            "-vf", f"scale={self.proxy_width}:-2",
            "-q:v", str(self.jpeg_quality),
            output_path,
        ]
        await self.invoker.run(args)
        width, height = await asyncio.to_thread(_read_dimensions, output_path)
        return SampledFrame(path=output_path, timestamp_ms=timestamp_ms, width=width, height=height)

    async def plan(
        self,
        video_path: str,
        duration_ms: float,
        strategy: SamplingStrategy,
        frame_count: int,
        interval_seconds: float,
        threshold: float | None,
    ) -> list[int]:
        if strategy == "uniform":
            return uniform_timestamps(duration_ms, frame_count)
        if strategy == "interval":
            return interval_timestamps(duration_ms, interval_seconds)

        shots = await self.detector.detect(video_path, threshold=threshold, close_tail=True)
        if not shots:
            logger.info("[SAMPLE] No shots detected, falling back to uniform sampling")
            return uniform_timestamps(duration_ms, frame_count)
        return scene_timestamps(shots, frame_count)

    async def sample(
        self,
        video_path: str,
        output_dir: str,
        *,
        strategy: SamplingStrategy = "uniform",
        frame_count: int | None = None,
        interval_seconds: float | None = None,
        threshold: float | None = None,
        include_cover: bool = False,
        overwrite: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> SamplingResult:
        """
        Extract representative frames from a video.

        Args:
            video_path: Path to the source video
            output_dir: Directory for the JPEG proxies (created if absent)
            strategy: uniform, scene_based or interval
            frame_count: Frame budget for uniform and scene_based
            interval_seconds: Spacing for the interval strategy
            threshold: Scene threshold for scene_based
            include_cover: Also write ``cover.jpg`` from t=0
            overwrite: Replace frames left by an earlier run

        Raises:
            MissingFileError: If the video does not exist
            OutputExistsError: If a frame or cover exists and overwrite is False
            ValidationError: If frame_count or interval_seconds is not positive
        """
        settings = get_settings()
        frame_count = frame_count if frame_count is not None else settings.sample_frame_count
        interval_seconds = interval_seconds if interval_seconds is not None else settings.sample_interval_seconds

        if not os.path.isfile(video_path):
            raise MissingFileError(video_path, field="video_path")
        if frame_count <= 0:
            raise ValidationError(
                f"frame_count must be greater than 0 (got {frame_count})",
                location=ErrorLocation(field="frame_count"),
            )
        if interval_seconds <= 0:
            raise ValidationError(
                f"interval_seconds must be greater than 0 (got {interval_seconds})",
                location=ErrorLocation(field="interval_seconds"),
            )

        os.makedirs(output_dir, exist_ok=True)
        duration_ms = await asyncio.to_thread(get_media_duration, video_path)
        timestamps = await self.plan(video_path, duration_ms, strategy, frame_count, interval_seconds, threshold)
        logger.info(f"[SAMPLE] {strategy}: {len(timestamps)} frames from {video_path} ({duration_ms}ms)")

        frames: list[SampledFrame] = []
        for index, timestamp_ms in enumerate(timestamps):
            frame_path = os.path.join(output_dir, f"frame_{index:04d}_{timestamp_ms}ms.jpg")
            frames.append(await self.extract_frame(video_path, timestamp_ms, frame_path, overwrite=overwrite))
            if on_progress is not None:
                on_progress((index + 1) / len(timestamps) * 100, index + 1, len(timestamps))

        cover_path = None
        if include_cover:
            cover_path = os.path.join(output_dir, "cover.jpg")
            await self.extract_frame(video_path, 0, cover_path, overwrite=overwrite)

        return SamplingResult(
            frames=frames,
            strategy=strategy,
            total_frames=len(frames),
            output_dir=output_dir,
            cover_path=cover_path,
        )


async def batch_sample_keyframes(
    sampler: KeyframeSampler,
    videos: Sequence[tuple[str, str]],
    **kwargs,
) -> list[SamplingResult]:
    """Sample ``(video_path, output_dir)`` pairs one after another."""
    results = []
    for video_path, output_dir in videos:
        results.append(await sampler.sample(video_path, output_dir, **kwargs))
    return results
