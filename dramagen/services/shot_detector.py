"""Shot boundary detection using ffmpeg's scene-change score.

ffmpeg is run with ``select='gt(scene,T)',metadata=print`` and every selected
frame's ``pts_time`` and ``lavfi.scene_score`` are read back from the log.
Boundaries are those timestamps plus ``t=0``; each pair of consecutive
boundaries is a candidate shot.
"""

import asyncio
import hashlib
import logging
import os
import re
from collections.abc import Iterable, Sequence

from dramagen.config import get_settings
from dramagen.exceptions import MissingFileError, ValidationError
from dramagen.render.encoder import EncodeInvoker, ProgressCallback
from dramagen.schemas.envelope import ErrorLocation
from dramagen.schemas.job import ShortShotPolicy
from dramagen.schemas.shot import SceneChange, Shot
from dramagen.utils.media_info import get_media_duration
from dramagen.utils.output import prepare_output_path
from dramagen.utils.timecode import ms_to_timestamp

logger = logging.getLogger(__name__)

PTS_TIME_RE = re.compile(r"pts_time:\s*([\d.]+)")
SCENE_SCORE_RE = re.compile(r"lavfi\.scene_score=\s*([\d.]+)")


def video_id_for(video_path: str) -> str:
    """Stable short id for a video path, used as the shot id prefix."""
    return hashlib.sha1(os.path.abspath(video_path).encode("utf-8")).hexdigest()[:8]


def parse_scene_changes(lines: Iterable[str], threshold: float) -> list[SceneChange]:
    """Pair each ``pts_time`` with the scene score printed after it."""
    changes: list[SceneChange] = []
    pending_time: float | None = None
    for line in lines:
        if match := PTS_TIME_RE.search(line):
            pending_time = float(match.group(1))
            continue
        if pending_time is not None and (match := SCENE_SCORE_RE.search(line)):
            score = float(match.group(1))
            if score > threshold:
                changes.append(SceneChange(pts_time=pending_time, score=score))
            pending_time = None
    return changes


def build_shots(
    timestamps_sec: Sequence[float],
    *,
    video_id: str,
    min_shot_duration_ms: int,
    policy: ShortShotPolicy = "drop",
    end_sec: float | None = None,
) -> list[Shot]:
    """
    Turn scene-change timestamps into shots.

    Args:
        timestamps_sec: Scene-change times, any order
        video_id: Prefix for shot ids
        min_shot_duration_ms: Shots shorter than this are dropped or merged
        policy: ``drop`` discards short candidates; ``merge`` folds them into
            the previous retained shot (or the next one when none precedes)
        end_sec: When given, the media end closes the final shot

    Returns:
        Shots in time order, each at least ``min_shot_duration_ms`` long
    """
    boundaries_ms = sorted({round(t * 1000) for t in timestamps_sec if t > 0})
    boundaries_ms.insert(0, 0)
    if end_sec is not None and round(end_sec * 1000) > boundaries_ms[-1]:
        boundaries_ms.append(round(end_sec * 1000))

    candidates = list(zip(boundaries_ms, boundaries_ms[1:]))
    spans: list[tuple[int, int, int]] = []  # (candidate index, start, end)
    carried_start: int | None = None

    for index, (start, end) in enumerate(candidates):
        if end - start >= min_shot_duration_ms:
            spans.append((index, carried_start if carried_start is not None else start, end))
            carried_start = None
        elif policy == "merge":
            if spans:
                first, kept_start, _ = spans[-1]
                spans[-1] = (first, kept_start, end)
            elif carried_start is None:
                carried_start = start

    if policy == "merge" and not spans and carried_start is not None and candidates:
        end = candidates[-1][1]
        if end - carried_start >= min_shot_duration_ms:
            spans.append((0, carried_start, end))

    return [Shot(id=f"{video_id}-{index}", start_ms=start, end_ms=end) for index, start, end in spans]


class ShotBoundaryDetector:
    """Detects shots and optionally writes one thumbnail per shot."""

    def __init__(
        self,
        invoker: EncodeInvoker | None = None,
        threshold: float | None = None,
        min_shot_duration_ms: int | None = None,
    ):
        settings = get_settings()
        self.invoker = invoker or EncodeInvoker()
        self.threshold = threshold if threshold is not None else settings.shot_threshold
        self.min_shot_duration_ms = (
            min_shot_duration_ms if min_shot_duration_ms is not None else settings.min_shot_duration_ms
        )

    async def detect_scene_changes(
        self,
        video_path: str,
        threshold: float,
        duration_sec: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[SceneChange]:
        lines: list[str] = []

        def collect(stream: str, line: str) -> None:
            if stream == "stderr" and ("pts_time:" in line or "scene_score" in line):
                lines.append(line)

        args = [
            "-hide_banner",
            "-nostdin",
            "-i", video_path,
            "-vf", f"select='gt(scene,{threshold})',metadata=print",
            "-an",
            "-f", "null",
            "-",
        ]
        await self.invoker.run(args, total_duration_sec=duration_sec, on_progress=on_progress, on_line=collect)
        return parse_scene_changes(lines, threshold)

    async def detect(
        self,
        video_path: str,
        *,
        threshold: float | None = None,
        min_shot_duration_ms: int | None = None,
        thumbnail_dir: str | None = None,
        policy: ShortShotPolicy = "drop",
        close_tail: bool = False,
        overwrite: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> list[Shot]:
        """
        Detect shots in a video.

        Raises:
            MissingFileError: If the video does not exist
            OutputExistsError: If a thumbnail exists and overwrite is False
            ValidationError: If threshold is outside (0, 1) or the minimum is negative
            ProcessExitError: If ffmpeg fails
        """
        threshold = threshold if threshold is not None else self.threshold
        min_ms = min_shot_duration_ms if min_shot_duration_ms is not None else self.min_shot_duration_ms
        if not os.path.isfile(video_path):
            raise MissingFileError(video_path, field="video_path")
        if not 0.0 < threshold < 1.0:
            raise ValidationError(
                f"Scene threshold must be between 0 and 1 (got {threshold})",
                location=ErrorLocation(field="threshold"),
            )
        if min_ms < 0:
            raise ValidationError(
                f"Minimum shot duration must be >= 0 (got {min_ms})",
                location=ErrorLocation(field="min_shot_duration_ms"),
            )

        duration_sec = (await asyncio.to_thread(get_media_duration, video_path)) / 1000
        logger.info(f"[SHOTS] Detecting scene changes in {video_path} (threshold={threshold})")
        changes = await self.detect_scene_changes(video_path, threshold, duration_sec, on_progress)

        shots = build_shots(
            [c.pts_time for c in changes],
            video_id=video_id_for(video_path),
            min_shot_duration_ms=min_ms,
            policy=policy,
            end_sec=duration_sec if close_tail else None,
        )
        logger.info(f"[SHOTS] {len(changes)} scene changes -> {len(shots)} shots")

        if thumbnail_dir:
            os.makedirs(thumbnail_dir, exist_ok=True)
            with_thumbs = []
            for shot in shots:
                thumb_path = os.path.join(thumbnail_dir, f"{shot.id}.jpg")
                await self.extract_thumbnail(video_path, shot.start_ms, thumb_path, overwrite=overwrite)
                with_thumbs.append(shot.model_copy(update={"thumbnail_path": thumb_path}))
            shots = with_thumbs

        return shots

    async def extract_thumbnail(
        self, video_path: str, time_ms: int, output_path: str, *, overwrite: bool = False
    ) -> str:
        prepare_output_path(output_path, overwrite)
        args = [
            "-y" if overwrite else "-n",
            "-ss", ms_to_timestamp(time_ms),
            "-i", video_path,
            "-frames:v", "1",
            "-q:v", "2",
            output_path,
        ]
        await self.invoker.run(args)
        return output_path
