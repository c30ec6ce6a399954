"""Media file information utilities using FFprobe."""

import json
import logging
import os
import subprocess

from dramagen.config import get_settings
from dramagen.exceptions import MissingFileError, ParseError, ProcessExitError, ProcessLaunchError

logger = logging.getLogger(__name__)


def _run_ffprobe(file_path: str, *args: str, ffprobe_path: str | None = None) -> dict:
    """Run ffprobe and return parsed JSON."""
    program = ffprobe_path or get_settings().ffprobe_path
    cmd = [
        program,
        "-v", "error",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, stdin=subprocess.DEVNULL)
    except OSError as e:
        raise ProcessLaunchError(program, e) from e

    if result.returncode != 0:
        tail = result.stderr.strip().splitlines()[-20:]
        raise ProcessExitError(program, result.returncode, tail)

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse ffprobe output for {file_path}: {e}") from e


def get_media_duration(file_path: str, ffprobe_path: str | None = None) -> int:
    """
    Get media file duration in milliseconds.

    Args:
        file_path: Path to media file
        ffprobe_path: Override for the ffprobe binary

    Returns:
        Duration in milliseconds

    Raises:
        ParseError: If duration not found
        ProcessExitError: If ffprobe fails
    """
    data = _run_ffprobe(file_path, "-show_format", ffprobe_path=ffprobe_path)
    format_info = data.get("format", {})

    if "duration" not in format_info:
        raise ParseError(f"Duration not found in: {file_path}")

    return int(round(float(format_info["duration"]) * 1000))


def get_video_dimensions(file_path: str, ffprobe_path: str | None = None) -> tuple[int, int]:
    """
    Get video width and height.

    Raises:
        ParseError: If no video stream or dimensions are reported
    """
    data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "v", ffprobe_path=ffprobe_path)

    streams = data.get("streams", [])
    if not streams:
        raise ParseError(f"No video stream found in: {file_path}")

    stream = streams[0]
    width = stream.get("width")
    height = stream.get("height")

    if width is None or height is None:
        raise ParseError(f"Video dimensions not found in: {file_path}")

    return width, height


def has_audio_track(file_path: str, ffprobe_path: str | None = None) -> bool:
    """
    Check if media file has an audio track.

    Returns:
        True if audio track exists, False if none or the file cannot be probed
    """
    try:
        data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "a", ffprobe_path=ffprobe_path)
    except (ProcessExitError, ParseError) as e:
        logger.warning(f"[PROBE] Could not probe audio streams of {file_path}: {e}")
        return False
    return len(data.get("streams", [])) > 0


def _parse_frame_rate(value: str) -> float | None:
    if "/" in value:
        num, den = value.split("/", 1)
        if int(den) > 0:
            return int(num) / int(den)
        return None
    return float(value) if value else None


def get_media_info(file_path: str, ffprobe_path: str | None = None) -> dict:
    """
    Get complete media file information.

    Args:
        file_path: Path to media file
        ffprobe_path: Override for the ffprobe binary

    Returns:
        Dictionary with duration_ms, width, height, fps, codecs, sample_rate,
        channels, size_bytes and has_video/has_audio flags

    Raises:
        MissingFileError: If the file does not exist
        ProcessExitError: If ffprobe fails
    """
    if not os.path.isfile(file_path):
        raise MissingFileError(file_path)

    data = _run_ffprobe(file_path, "-show_format", "-show_streams", ffprobe_path=ffprobe_path)

    result = {
        "duration_ms": None,
        "width": None,
        "height": None,
        "fps": None,
        "video_codec": None,
        "audio_codec": None,
        "sample_rate": None,
        "channels": None,
        "size_bytes": None,
        "has_video": False,
        "has_audio": False,
    }

    # Get format info
    format_info = data.get("format", {})
    if "duration" in format_info:
        result["duration_ms"] = int(round(float(format_info["duration"]) * 1000))
    if "size" in format_info:
        result["size_bytes"] = int(format_info["size"])

    # Get stream info
    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video" and not result["has_video"]:
            result["has_video"] = True
            result["width"] = stream.get("width")
            result["height"] = stream.get("height")
            result["video_codec"] = stream.get("codec_name")
            result["fps"] = _parse_frame_rate(stream.get("r_frame_rate", "0/1"))

        elif codec_type == "audio" and not result["has_audio"]:
            result["has_audio"] = True
            result["audio_codec"] = stream.get("codec_name")
            result["sample_rate"] = int(stream.get("sample_rate", 0)) or None
            result["channels"] = stream.get("channels")

    return result
