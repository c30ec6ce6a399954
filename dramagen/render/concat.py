"""Join an ordered list of segments into one output file."""

import asyncio
import logging
import os
import shutil
import tempfile
from collections.abc import Sequence

from dramagen.render.encoder import EncodeInvoker, ProgressCallback
from dramagen.render.filter_graph import (
    RenderConfig,
    build_concat_list,
    build_concat_list_args,
    build_transition_args,
    build_transition_graph,
)
from dramagen.render.timeline import DurationProbe, Timeline
from dramagen.schemas.render import ConcatResult
from dramagen.schemas.timeline import NO_TRANSITION, Segment, TransitionSpec
from dramagen.services.video_trimmer import TrimConfig, VideoTrimmer
from dramagen.utils.media_info import get_media_duration, has_audio_track
from dramagen.utils.output import file_size, prepare_output_path

logger = logging.getLogger(__name__)


async def _pretrim_windows(
    timeline: Timeline,
    scratch_dir: str,
    trimmer: VideoTrimmer,
) -> list[str]:
    """Cut windowed segments to standalone files; unwindowed ones are listed as-is."""
    paths: list[str] = []
    for index, (segment, duration) in enumerate(zip(timeline.segments, timeline.durations_ms)):
        if not segment.has_window:
            paths.append(segment.path)
            continue
        start = segment.start_ms or 0
        cut_path = os.path.join(scratch_dir, f"segment_{index:03d}.mp4")
        await trimmer.trim(
            segment.path,
            cut_path,
            TrimConfig(start_ms=start, end_ms=int(start + duration)),
            overwrite=True,
        )
        paths.append(cut_path)
    return paths


async def concat_videos(
    segments: Sequence[Segment],
    output_path: str,
    transition: TransitionSpec = NO_TRANSITION,
    *,
    config: RenderConfig | None = None,
    overwrite: bool = False,
    invoker: EncodeInvoker | None = None,
    on_progress: ProgressCallback | None = None,
    probe: DurationProbe = get_media_duration,
) -> ConcatResult:
    """
    Concatenate segments in order, with or without transitions.

    Without a transition the concat demuxer joins inputs by stream copy; inputs
    must share codec parameters or the encoder fails. With a transition every
    input is normalized and joined through ``xfade``/``acrossfade``.

    Raises:
        ValidationError: For bad segments or transitions (before any process runs)
        OutputExistsError: If the output exists and overwrite is False
        ProcessExitError: If the encoder fails
    """
    timeline = await asyncio.to_thread(Timeline.build, segments, transition, probe)
    config = config or RenderConfig.from_settings()
    invoker = invoker or EncodeInvoker()
    prepare_output_path(output_path, overwrite)
    total_sec = timeline.expected_duration_ms / 1000

    if timeline.uses_graph:
        has_audio = await asyncio.gather(
            *(asyncio.to_thread(has_audio_track, s.path) for s in timeline.segments)
        )
        graph = build_transition_graph(timeline, config, has_audio=has_audio)
        logger.info(f"[CONCAT] Graph strategy, {len(segments)} inputs, transition={transition.kind}")
        logger.debug(f"[CONCAT] filter_complex: {graph.filter_complex}")
        args = build_transition_args(timeline, graph, output_path, config, overwrite=overwrite)
        await invoker.run(args, total_duration_sec=total_sec, on_progress=on_progress)
        strategy = "graph"
    else:
        scratch_dir = tempfile.mkdtemp(prefix="dramagen_concat_")
        try:
            paths = await _pretrim_windows(timeline, scratch_dir, VideoTrimmer(invoker, config))
            list_path = os.path.join(scratch_dir, "concat.txt")
            with open(list_path, "w", encoding="utf-8") as f:
                f.write(build_concat_list(paths))
            logger.info(f"[CONCAT] List strategy, {len(paths)} inputs")
            args = build_concat_list_args(list_path, output_path, overwrite=overwrite)
            await invoker.run(args, total_duration_sec=total_sec, on_progress=on_progress)
        finally:
            shutil.rmtree(scratch_dir, ignore_errors=True)
        strategy = "list"

    result = ConcatResult(
        output_path=output_path,
        duration_sec=total_sec,
        size_bytes=file_size(output_path),
        segment_count=len(timeline.segments),
        strategy=strategy,
    )
    logger.info(f"[CONCAT] Done: {output_path} ({result.size_bytes} bytes, {total_sec:.2f}s)")
    return result


async def batch_concat_videos(
    jobs: Sequence[tuple[Sequence[Segment], str, TransitionSpec]],
    **kwargs,
) -> list[ConcatResult]:
    """Run several concatenations one after another."""
    results = []
    for segments, output_path, transition in jobs:
        results.append(await concat_videos(segments, output_path, transition, **kwargs))
    return results
