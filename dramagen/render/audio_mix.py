"""
Multi-track audio mixing over a video.

Up to four role-typed tracks (voiceover, original, bgm, sfx) are leveled,
optionally windowed, and summed with ``amix``. Each role has a default level
so a caller only has to name the files.
"""

import asyncio
import logging
import os
from collections import Counter
from collections.abc import Sequence

from dramagen.exceptions import (
    DuplicateTrackTypeError,
    InvalidVolumeError,
    MissingFileError,
    NoTracksError,
    TooManyTracksError,
)
from dramagen.render.encoder import EncodeInvoker, ProgressCallback
from dramagen.render.filter_graph import AUDIO_OUT, FilterGraph, RenderConfig
from dramagen.schemas.render import MixResult
from dramagen.schemas.timeline import Track
from dramagen.utils.media_info import get_media_duration, has_audio_track
from dramagen.utils.output import file_size, prepare_output_path
from dramagen.utils.timecode import ms_to_seconds

logger = logging.getLogger(__name__)

DEFAULT_VOLUMES: dict[str, float] = {
    "voiceover": 1.0,
    "original": 0.15,
    "bgm": 0.3,
    "sfx": 0.5,
}

MAX_TRACKS = 4


def track_volume(track: Track) -> float:
    return track.volume if track.volume is not None else DEFAULT_VOLUMES[track.type]


def validate_tracks(tracks: Sequence[Track]) -> None:
    """
    Check a track set before any process is spawned.

    Raises:
        NoTracksError: If there are no tracks
        TooManyTracksError: If there are more than four tracks
        DuplicateTrackTypeError: If a role appears twice
        InvalidVolumeError: If a volume is outside [0, 1]
        MissingFileError: If a track file does not exist
    """
    if not tracks:
        raise NoTracksError()
    if len(tracks) > MAX_TRACKS:
        raise TooManyTracksError(len(tracks), MAX_TRACKS)

    counts = Counter(t.type for t in tracks)
    for track_type, count in counts.items():
        if count > 1:
            raise DuplicateTrackTypeError(track_type)

    for index, track in enumerate(tracks):
        if track.volume is not None and not 0.0 <= track.volume <= 1.0:
            raise InvalidVolumeError(track.volume, track.type)
        if not os.path.isfile(track.path):
            raise MissingFileError(track.path, field="tracks", index=index)


def _track_filter(track: Track, input_index: int, label: str) -> str:
    chain = f"[{input_index}:a]volume={track_volume(track)}"
    if track.start_ms is not None or track.duration_ms is not None:
        trim = f"atrim=start={ms_to_seconds(track.start_ms or 0)}"
        if track.duration_ms:
            trim += f":duration={ms_to_seconds(track.duration_ms)}"
        # Window starts at 0 on the output clock
        chain += f",{trim},asetpts=PTS-STARTPTS"
    return f"{chain}[{label}]"


def build_mix_filter(tracks: Sequence[Track], input_offset: int = 0) -> FilterGraph:
    """Level and sum the tracks; track ``i`` is read from input ``input_offset + i``.

    The summed output is labelled ``aout`` and is not renormalized, so the
    levels given are the levels heard.
    """
    parts = []
    labels = []
    for i, track in enumerate(tracks):
        label = f"t{i}"
        parts.append(_track_filter(track, input_offset + i, label))
        labels.append(f"[{label}]")
    parts.append(f"{''.join(labels)}amix=inputs={len(tracks)}:duration=longest:normalize=0[{AUDIO_OUT}]")
    return FilterGraph(filter_complex=";".join(parts), video_label=None, audio_label=AUDIO_OUT)


def with_original_audio(video_path: str, tracks: Sequence[Track], include_original: bool = True) -> list[Track]:
    """Add the video's own sound as the ``original`` track unless one is given."""
    tracks = list(tracks)
    if not include_original or any(t.type == "original" for t in tracks):
        return tracks
    if not has_audio_track(video_path):
        return tracks
    return [*tracks, Track(type="original", path=video_path)]


def build_mix_args(
    video_path: str,
    tracks: Sequence[Track],
    output_path: str,
    config: RenderConfig,
    *,
    copy_video: bool = True,
    overwrite: bool = False,
) -> list[str]:
    graph = build_mix_filter(tracks, input_offset=1)
    args = ["-y" if overwrite else "-n", "-i", video_path]
    for track in tracks:
        args.extend(["-i", track.path])
    args.extend(["-filter_complex", graph.filter_complex])
    args.extend(["-map", "0:v", *graph.maps()])
    if copy_video:
        args.extend(["-c:v", "copy"])
    else:
        args.extend(config.video_encode_args())
    args.extend(config.audio_encode_args())
    args.append(output_path)
    return args


async def mix_audio_multitrack(
    video_path: str,
    tracks: Sequence[Track],
    output_path: str,
    *,
    include_original: bool = True,
    copy_video: bool = True,
    overwrite: bool = False,
    config: RenderConfig | None = None,
    invoker: EncodeInvoker | None = None,
    on_progress: ProgressCallback | None = None,
) -> MixResult:
    """
    Replace a video's soundtrack with a mix of up to four tracks.

    Args:
        video_path: Video whose picture is kept
        tracks: Audio tracks, at most one per role
        output_path: Output file path
        include_original: Mix in the video's own audio when no ``original`` track is given

    Returns:
        MixResult describing the written file

    Raises:
        ValidationError: For bad track sets (before any process runs)
        OutputExistsError: If the output exists and overwrite is False
        ProcessExitError: If the encoder fails
    """
    if not os.path.isfile(video_path):
        raise MissingFileError(video_path, field="video_path")
    validate_tracks(tracks)
    mixed = await asyncio.to_thread(with_original_audio, video_path, tracks, include_original)
    prepare_output_path(output_path, overwrite)

    config = config or RenderConfig.from_settings()
    invoker = invoker or EncodeInvoker()
    total_sec = (await asyncio.to_thread(get_media_duration, video_path)) / 1000

    for track in mixed:
        logger.info(f"[AUDIO MIX] {track.type}: volume={track_volume(track)} path={track.path}")

    args = build_mix_args(video_path, mixed, output_path, config, copy_video=copy_video, overwrite=overwrite)
    await invoker.run(args, total_duration_sec=total_sec, on_progress=on_progress)

    result = MixResult(
        output_path=output_path,
        track_count=len(mixed),
        size_bytes=file_size(output_path),
        included_original=len(mixed) > len(tracks),
    )
    logger.info(f"[AUDIO MIX] Done: {output_path} ({result.track_count} tracks, {result.size_bytes} bytes)")
    return result


async def create_standard_mix(
    video_path: str,
    voiceover_path: str,
    output_path: str,
    *,
    bgm_path: str | None = None,
    sfx_path: str | None = None,
    **kwargs,
) -> MixResult:
    """Voiceover over the original sound, with optional BGM and effects at default levels."""
    tracks = [Track(type="voiceover", path=voiceover_path)]
    if bgm_path:
        tracks.append(Track(type="bgm", path=bgm_path))
    if sfx_path:
        tracks.append(Track(type="sfx", path=sfx_path))
    return await mix_audio_multitrack(video_path, tracks, output_path, **kwargs)
