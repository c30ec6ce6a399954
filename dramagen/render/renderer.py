"""
Declarative composition rendering through the Remotion CLI.

The composition project is bundled once per ``RendererBundle`` and the bundle
location is reused by every render that is handed the same handle. Renders
write their input props to a JSON file and report progress from the CLI's
``Rendered N/M`` lines.
"""

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Sequence
from contextlib import aclosing
from typing import Any

from dramagen.config import get_settings
from dramagen.exceptions import InvalidRenderOptionsError, InvalidSubtitlesError, MissingFileError
from dramagen.render.encoder import EncodeInvoker, ProgressCallback
from dramagen.render.progress import FrameProgressParser
from dramagen.schemas.envelope import ErrorLocation
from dramagen.schemas.render import RenderResult
from dramagen.schemas.subtitles import CaptionStyle, SubtitleCue
from dramagen.utils.media_info import get_media_info
from dramagen.utils.output import file_size, prepare_output_path

logger = logging.getLogger(__name__)

CAPTIONED_VIDEO = "CaptionedVideo"


def _renderer_invoker(command: Sequence[str] | None = None, parser=None) -> EncodeInvoker:
    command = list(command or get_settings().renderer_command)
    return EncodeInvoker(command[0], base_args=command[1:], parser=parser)


class RendererBundle:
    """Handle to a bundled composition project.

    ``ensure()`` bundles on first use; concurrent callers wait for the same
    bundling run instead of starting their own.
    """

    def __init__(
        self,
        entry_point: str | None = None,
        out_dir: str | None = None,
        command: Sequence[str] | None = None,
    ):
        settings = get_settings()
        self.entry_point = entry_point or settings.renderer_entry_point
        self.out_dir = out_dir
        self.command = list(command or settings.renderer_command)
        self._location: str | None = None
        self._lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self._location is not None

    async def ensure(self) -> str:
        if self._location is not None:
            return self._location
        async with self._lock:
            if self._location is None:
                if not os.path.exists(self.entry_point):
                    raise MissingFileError(self.entry_point, field="entry_point")
                self.out_dir = self.out_dir or tempfile.mkdtemp(prefix="dramagen_bundle_")
                logger.info(f"[RENDER] Bundling {self.entry_point} -> {self.out_dir}")
                await _renderer_invoker(self.command).run(
                    ["bundle", self.entry_point, "--out-dir", self.out_dir]
                )
                self._location = self.out_dir
                logger.info(f"[RENDER] Bundle ready: {self.out_dir}")
        return self._location


def validate_render_options(
    composition_id: str,
    input_props: dict[str, Any],
    width: int,
    height: int,
    fps: int,
) -> None:
    if not composition_id:
        raise InvalidRenderOptionsError(
            "composition_id is required", location=ErrorLocation(field="composition_id")
        )
    for name, value in (("width", width), ("height", height), ("fps", fps)):
        if value <= 0:
            raise InvalidRenderOptionsError(
                f"{name} must be greater than 0 (got {value})", location=ErrorLocation(field=name)
            )
    if composition_id == CAPTIONED_VIDEO:
        src = input_props.get("src")
        if not src:
            raise InvalidRenderOptionsError(
                f"{CAPTIONED_VIDEO} requires a src prop", location=ErrorLocation(field="input_props.src")
            )
        if not os.path.isfile(src):
            raise MissingFileError(src, field="input_props.src")


def validate_cues(cues: Sequence[SubtitleCue]) -> None:
    """Cues must be non-overlapping and ordered; words must sit inside their cue."""
    previous_end = 0
    for index, cue in enumerate(cues):
        if cue.start_ms < 0 or cue.end_ms <= cue.start_ms:
            raise InvalidSubtitlesError(
                f"Cue {index} has an invalid range {cue.start_ms}-{cue.end_ms}ms",
                location=ErrorLocation(field="cues", index=index),
            )
        if cue.start_ms < previous_end:
            raise InvalidSubtitlesError(
                f"Cue {index} starts before the previous cue ends ({cue.start_ms} < {previous_end}ms)",
                location=ErrorLocation(field="cues", index=index),
            )
        for word in cue.words:
            if word.end_ms <= word.start_ms or word.start_ms < cue.start_ms or word.end_ms > cue.end_ms:
                raise InvalidSubtitlesError(
                    f"Word '{word.text}' ({word.start_ms}-{word.end_ms}ms) is outside cue {index}",
                    location=ErrorLocation(field="cues.words", index=index),
                )
        previous_end = cue.end_ms


class CompositionRenderer:
    """Renders compositions from a shared bundle."""

    def __init__(
        self,
        bundle: RendererBundle,
        *,
        command: Sequence[str] | None = None,
        concurrency: int | None = None,
    ):
        settings = get_settings()
        self.bundle = bundle
        self.command = list(command or settings.renderer_command)
        self.concurrency = concurrency or settings.renderer_concurrency

    async def render(
        self,
        composition_id: str,
        input_props: dict[str, Any],
        output_path: str,
        *,
        width: int | None = None,
        height: int | None = None,
        fps: int | None = None,
        crf: int | None = None,
        overwrite: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> RenderResult:
        """
        Render one composition to a video file.

        Raises:
            InvalidRenderOptionsError: For non-positive dimensions or missing required props
            OutputExistsError: If the output exists and overwrite is False
            ProcessExitError: If the renderer fails
        """
        settings = get_settings()
        width = width if width is not None else settings.render_width
        height = height if height is not None else settings.render_height
        fps = fps if fps is not None else settings.render_fps
        crf = crf if crf is not None else settings.render_crf
        validate_render_options(composition_id, input_props, width, height, fps)
        prepare_output_path(output_path, overwrite)

        serve_url = await self.bundle.ensure()
        invoker = _renderer_invoker(self.command, parser=FrameProgressParser(fps))

        props_fd, props_path = tempfile.mkstemp(prefix="dramagen_props_", suffix=".json")
        try:
            with os.fdopen(props_fd, "w", encoding="utf-8") as f:
                json.dump({**input_props, "fps": fps}, f, ensure_ascii=False)

            args = [
                "render",
                serve_url,
                composition_id,
                output_path,
                f"--props={props_path}",
                f"--width={width}",
                f"--height={height}",
                f"--crf={crf}",
                f"--concurrency={self.concurrency}",
                "--codec=h264",
            ]
            if overwrite:
                args.append("--overwrite")

            logger.info(f"[RENDER] {composition_id} -> {output_path} ({width}x{height}@{fps})")
            total_frames = 0
            session = invoker.stream(args)
            async with aclosing(aiter(session)) as events:
                async for event in events:
                    if event.total_sec:
                        total_frames = round(event.total_sec * fps)
                    if on_progress is not None:
                        on_progress(event.percent, event.elapsed_sec, event.total_sec)
        finally:
            os.unlink(props_path)

        run = session.require_result()
        result = RenderResult(
            output_path=output_path,
            duration_sec=total_frames / fps,
            total_frames=total_frames,
            render_time_ms=run.wall_time_ms,
            size_bytes=file_size(output_path),
        )
        logger.info(
            f"[RENDER] Done: {output_path} ({result.total_frames} frames, {result.render_time_ms}ms)"
        )
        return result


async def render_captioned_video(
    renderer: CompositionRenderer,
    video_path: str,
    cues: Sequence[SubtitleCue],
    output_path: str,
    *,
    style: CaptionStyle | None = None,
    fps: int | None = None,
    overwrite: bool = False,
    on_progress: ProgressCallback | None = None,
) -> RenderResult:
    """Burn word-timed captions over a video using the ``CaptionedVideo`` composition.

    Output dimensions follow the source video.
    """
    if not os.path.isfile(video_path):
        raise MissingFileError(video_path, field="video_path")
    validate_cues(cues)
    info = await asyncio.to_thread(get_media_info, video_path)

    style = style or CaptionStyle()
    fps = fps or round(info["fps"] or get_settings().render_fps)
    props = {
        "src": os.path.abspath(video_path),
        "subtitles": [cue.model_dump(by_alias=True) for cue in cues],
        "durationInFrames": max(1, round((info["duration_ms"] or 0) / 1000 * fps)),
        **style.model_dump(by_alias=True),
    }
    return await renderer.render(
        CAPTIONED_VIDEO,
        props,
        output_path,
        width=info["width"],
        height=info["height"],
        fps=fps,
        overwrite=overwrite,
        on_progress=on_progress,
    )


async def batch_render_compositions(
    renderer: CompositionRenderer,
    renders: Sequence[tuple[str, dict[str, Any], str]],
    **kwargs,
) -> dict[str, RenderResult]:
    """Render ``(composition_id, input_props, output_path)`` entries one after another."""
    results: dict[str, RenderResult] = {}
    for composition_id, input_props, output_path in renders:
        results[output_path] = await renderer.render(composition_id, input_props, output_path, **kwargs)
    return results
