"""Video trimming and single-input processing service.

Provides:
- Frame-accurate trimming (always re-encodes)
- Frame-rate normalization
- Audio extraction and volume adjustment
"""

import asyncio
import logging
import os
from dataclasses import dataclass

from dramagen.exceptions import InvalidTimeRangeError, InvalidVolumeError, MissingFileError
from dramagen.render.encoder import EncodeInvoker, ProgressCallback
from dramagen.render.filter_graph import RenderConfig
from dramagen.schemas.envelope import ErrorLocation
from dramagen.schemas.render import TrimResult
from dramagen.utils.media_info import get_media_info
from dramagen.utils.output import file_size, prepare_output_path
from dramagen.utils.timecode import ms_to_timestamp

logger = logging.getLogger(__name__)


@dataclass
class TrimConfig:
    """Configuration for video trimming."""

    start_ms: int = 0
    end_ms: int | None = None
    crf: int | None = None
    preset: str | None = None
    fps: int | None = None
    width: int | None = None
    height: int | None = None

    @property
    def expected_duration_ms(self) -> int:
        """Calculate expected duration from config."""
        if self.end_ms is None:
            return 0
        return self.end_ms - self.start_ms


class VideoTrimmer:
    """Service for trimming and re-encoding single inputs."""

    def __init__(self, invoker: EncodeInvoker | None = None, config: RenderConfig | None = None):
        self.invoker = invoker or EncodeInvoker()
        self.config = config or RenderConfig.from_settings()

    async def _probe(self, path: str) -> dict:
        return await asyncio.to_thread(get_media_info, path)

    async def _result(self, output_path: str) -> TrimResult:
        info = await self._probe(output_path)
        return TrimResult(
            output_path=output_path,
            duration_ms=info["duration_ms"] or 0,
            width=info["width"] or 0,
            height=info["height"] or 0,
            size_bytes=file_size(output_path),
        )

    async def trim(
        self,
        input_path: str,
        output_path: str,
        config: TrimConfig,
        *,
        overwrite: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> TrimResult:
        """Cut ``[start_ms, end_ms)`` from the input.

        Seeking happens before ``-i`` and the output is re-encoded, so the cut
        lands on the exact frame rather than the previous keyframe. An
        ``end_ms`` past the end of the media is clamped to the media length.

        Raises:
            MissingFileError: If the input does not exist
            InvalidTimeRangeError: If start is negative or not before end
            OutputExistsError: If the output exists and overwrite is False
        """
        if not os.path.isfile(input_path):
            raise MissingFileError(input_path, field="input_path")
        if config.start_ms < 0:
            raise InvalidTimeRangeError(
                f"Trim start must be >= 0 (got {config.start_ms}ms)",
                location=ErrorLocation(field="start_ms"),
            )

        info = await self._probe(input_path)
        media_ms = info["duration_ms"] or 0
        end_ms = config.end_ms if config.end_ms is not None else media_ms
        if media_ms:
            end_ms = min(end_ms, media_ms)
        if end_ms <= config.start_ms:
            raise InvalidTimeRangeError(
                f"Trim end ({end_ms}ms) must be after start ({config.start_ms}ms)",
                location=ErrorLocation(field="end_ms"),
            )
        duration_ms = end_ms - config.start_ms

        prepare_output_path(output_path, overwrite)

        cmd = ["-y" if overwrite else "-n"]
        cmd.extend(["-ss", ms_to_timestamp(config.start_ms)])
        cmd.extend(["-i", input_path])
        cmd.extend(["-t", ms_to_timestamp(duration_ms)])

        filters = []
        if config.width and config.height:
            filters.append(f"scale={config.width}:{config.height}")
        if config.fps:
            filters.append(f"fps={config.fps}")
        if filters:
            cmd.extend(["-vf", ",".join(filters)])

        cmd.extend(["-c:v", self.config.video_codec])
        cmd.extend(["-crf", str(config.crf if config.crf is not None else self.config.crf)])
        cmd.extend(["-preset", config.preset or self.config.preset])
        cmd.extend(["-pix_fmt", "yuv420p"])
        cmd.extend(self.config.audio_encode_args())
        cmd.append(output_path)

        logger.info(f"[TRIM] {input_path} {config.start_ms}ms-{end_ms}ms -> {output_path}")
        await self.invoker.run(cmd, total_duration_sec=duration_ms / 1000, on_progress=on_progress)
        return await self._result(output_path)

    async def normalize_frame_rate(
        self,
        input_path: str,
        output_path: str,
        fps: int | None = None,
        *,
        overwrite: bool = False,
    ) -> TrimResult:
        """Re-encode the input at a constant frame rate."""
        if not os.path.isfile(input_path):
            raise MissingFileError(input_path, field="input_path")
        prepare_output_path(output_path, overwrite)
        target_fps = fps or self.config.fps

        info = await self._probe(input_path)
        cmd = [
            "-y" if overwrite else "-n",
            "-i", input_path,
            "-vf", f"fps={target_fps}",
            *self.config.video_encode_args(),
            "-c:a", "copy",
            output_path,
        ]
        logger.info(f"[TRIM] Normalizing {input_path} to {target_fps}fps")
        await self.invoker.run(cmd, total_duration_sec=(info["duration_ms"] or 0) / 1000 or None)
        return await self._result(output_path)

    async def extract_audio(
        self,
        input_path: str,
        output_path: str,
        *,
        sample_rate: int | None = None,
        overwrite: bool = False,
    ) -> str:
        """Write the input's audio as 16-bit PCM WAV."""
        if not os.path.isfile(input_path):
            raise MissingFileError(input_path, field="input_path")
        prepare_output_path(output_path, overwrite)
        cmd = [
            "-y" if overwrite else "-n",
            "-i", input_path,
            "-vn",
            "-acodec", "pcm_s16le",
            "-ar", str(sample_rate or self.config.audio_sample_rate),
            "-ac", "2",
            output_path,
        ]
        await self.invoker.run(cmd)
        return output_path

    async def adjust_volume(
        self,
        input_path: str,
        output_path: str,
        volume: float,
        *,
        overwrite: bool = False,
    ) -> str:
        """Scale the audio level, copying the video stream untouched."""
        if not os.path.isfile(input_path):
            raise MissingFileError(input_path, field="input_path")
        if not 0.0 <= volume <= 1.0:
            raise InvalidVolumeError(volume)
        prepare_output_path(output_path, overwrite)
        cmd = [
            "-y" if overwrite else "-n",
            "-i", input_path,
            "-af", f"volume={volume}",
            "-c:v", "copy",
            *self.config.audio_encode_args(),
            output_path,
        ]
        await self.invoker.run(cmd)
        return output_path
