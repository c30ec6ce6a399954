"""
FFmpeg argument and filter graph builders for joining segments.

Two strategies:

- list: concat demuxer over a list file with stream copy. Fast, but every
  input must already share codec parameters.
- graph: every input is normalized (size, sample aspect, frame rate, pixel
  format, audio layout) and joined pairwise with ``xfade``/``acrossfade``.

Builders here are pure; running them is left to ``dramagen.render.concat``.
"""

import os
from collections.abc import Sequence
from dataclasses import dataclass

from dramagen.config import get_settings
from dramagen.render.timeline import Timeline
from dramagen.utils.timecode import ms_to_seconds

# xfade transition name per transition kind
XFADE_TRANSITIONS: dict[str, str] = {
    "fade": "fade",
    "crossfade": "fade",
    "slide": "slideleft",
    "zoom": "zoomin",
}

VIDEO_OUT = "vout"
AUDIO_OUT = "aout"


@dataclass
class RenderConfig:
    """Output format for re-encoded renders."""

    width: int = 1080
    height: int = 1920
    fps: int = 30
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    crf: int = 18
    preset: str = "ultrafast"
    audio_bitrate: str = "192k"
    audio_sample_rate: int = 48000

    @classmethod
    def from_settings(cls, **overrides) -> "RenderConfig":
        settings = get_settings()
        values = {
            "width": settings.render_width,
            "height": settings.render_height,
            "fps": settings.render_fps,
            "video_codec": settings.render_video_codec,
            "audio_codec": settings.render_audio_codec,
            "crf": settings.render_crf,
            "preset": settings.render_preset,
            "audio_bitrate": settings.render_audio_bitrate,
            "audio_sample_rate": settings.render_audio_sample_rate,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def video_encode_args(self) -> list[str]:
        return [
            "-c:v", self.video_codec,
            "-crf", str(self.crf),
            "-preset", self.preset,
            "-pix_fmt", "yuv420p",
        ]

    def audio_encode_args(self) -> list[str]:
        return [
            "-c:a", self.audio_codec,
            "-b:a", self.audio_bitrate,
            "-ar", str(self.audio_sample_rate),
        ]


@dataclass
class FilterGraph:
    """A filter_complex string plus the labels it leaves unconnected."""

    filter_complex: str
    video_label: str | None = VIDEO_OUT
    audio_label: str | None = AUDIO_OUT

    def maps(self) -> list[str]:
        args = []
        if self.video_label:
            args.extend(["-map", f"[{self.video_label}]"])
        if self.audio_label:
            args.extend(["-map", f"[{self.audio_label}]"])
        return args


# =============================================================================
# List strategy
# =============================================================================


def quote_concat_path(path: str) -> str:
    """Quote an absolute path for a concat demuxer list entry."""
    escaped = os.path.abspath(path).replace("'", "'\\''")
    return f"'{escaped}'"


def build_concat_list(paths: Sequence[str]) -> str:
    """One ``file '<abs path>'`` line per input, newline terminated."""
    return "".join(f"file {quote_concat_path(p)}\n" for p in paths)


def build_concat_list_args(list_path: str, output_path: str, overwrite: bool = False) -> list[str]:
    return [
        "-y" if overwrite else "-n",
        "-f", "concat",
        "-safe", "0",
        "-i", list_path,
        "-c", "copy",
        output_path,
    ]


# =============================================================================
# Graph strategy
# =============================================================================


def _video_chain(index: int, start_ms: float, duration_ms: float, config: RenderConfig) -> str:
    w, h = config.width, config.height
    return (
        f"[{index}:v]trim=start={ms_to_seconds(start_ms)}:duration={ms_to_seconds(duration_ms)},"
        f"setpts=PTS-STARTPTS,"
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,"
        f"setsar=1,fps={config.fps},format=yuv420p[v{index}]"
    )


def _audio_chain(index: int, start_ms: float, duration_ms: float, has_audio: bool, config: RenderConfig) -> str:
    normalize = f"aresample={config.audio_sample_rate},aformat=channel_layouts=stereo"
    if not has_audio:
        # Silent stand-in so every input contributes an audio stream of the right length
        return (
            f"anullsrc=channel_layout=stereo:sample_rate={config.audio_sample_rate},"
            f"atrim=duration={ms_to_seconds(duration_ms)},{normalize}[a{index}]"
        )
    return (
        f"[{index}:a]atrim=start={ms_to_seconds(start_ms)}:duration={ms_to_seconds(duration_ms)},"
        f"asetpts=PTS-STARTPTS,{normalize}[a{index}]"
    )


def build_transition_graph(
    timeline: Timeline,
    config: RenderConfig,
    has_audio: Sequence[bool] | None = None,
) -> FilterGraph:
    """Normalize every input and chain them with the timeline's transition.

    Input ``i`` is labelled ``v{i}``/``a{i}``; the final outputs are
    ``vout``/``aout``.
    """
    count = len(timeline.segments)
    audio_flags = list(has_audio) if has_audio is not None else [True] * count
    parts: list[str] = []

    for i, (segment, duration) in enumerate(zip(timeline.segments, timeline.durations_ms)):
        start = segment.start_ms or 0
        parts.append(_video_chain(i, start, duration, config))
        parts.append(_audio_chain(i, start, duration, audio_flags[i], config))

    if count == 1:
        parts.append(f"[v0]null[{VIDEO_OUT}]")
        parts.append(f"[a0]anull[{AUDIO_OUT}]")
        return FilterGraph(filter_complex=";".join(parts))

    xfade = XFADE_TRANSITIONS.get(timeline.transition.kind, "fade")
    transition_sec = ms_to_seconds(timeline.transition_ms)
    prev_video, prev_audio = "v0", "a0"

    for i, offset in enumerate(timeline.transition_offsets_sec(), start=1):
        last = i == count - 1
        video_out = VIDEO_OUT if last else f"vx{i}"
        audio_out = AUDIO_OUT if last else f"ax{i}"
        parts.append(
            f"[{prev_video}][v{i}]xfade=transition={xfade}:duration={transition_sec}"
            f":offset={offset:.3f}[{video_out}]"
        )
        parts.append(f"[{prev_audio}][a{i}]acrossfade=d={transition_sec}[{audio_out}]")
        prev_video, prev_audio = video_out, audio_out

    return FilterGraph(filter_complex=";".join(parts))


def build_transition_args(
    timeline: Timeline,
    graph: FilterGraph,
    output_path: str,
    config: RenderConfig,
    overwrite: bool = False,
) -> list[str]:
    args = ["-y" if overwrite else "-n"]
    for segment in timeline.segments:
        args.extend(["-i", segment.path])
    args.extend(["-filter_complex", graph.filter_complex])
    args.extend(graph.maps())
    args.extend(config.video_encode_args())
    args.extend(config.audio_encode_args())
    args.extend(["-movflags", "+faststart", output_path])
    return args
