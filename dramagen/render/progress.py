"""
Progress parsing for encoder diagnostic output.

FFmpeg reports status on stderr as carriage-return terminated lines such as::

    frame=  120 fps= 30 q=28.0 size=    1024kB time=00:00:04.00 bitrate=2097.2kbits/s speed=1.0x

Only lines carrying ``time=`` are progress lines; everything else is skipped.
"""

import re
from dataclasses import dataclass
from typing import Protocol

TIME_RE = re.compile(r"time=(\d{2}):(\d{2}):(\d{2})\.(\d{2})")
FRAME_RE = re.compile(r"frame=\s*(\d+)")
FPS_RE = re.compile(r"fps=\s*([\d.]+)")
BITRATE_RE = re.compile(r"bitrate=\s*([\d.]+)kbits/s")
SIZE_RE = re.compile(r"size=\s*(\d+)(kB|KiB)")

# Remotion CLI: "Rendered 120/300"
RENDERED_FRAMES_RE = re.compile(r"Rendered\s+(\d+)\s*/\s*(\d+)")


@dataclass
class EncoderProgress:
    """One parsed progress report."""

    frame: int = 0
    fps: float = 0.0
    time_sec: float = 0.0
    bitrate_kbps: float = 0.0
    size_bytes: int = 0
    total_sec: float | None = None  # only set by parsers that know the total


class LineParser(Protocol):
    def parse(self, line: str) -> EncoderProgress | None: ...


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


class ProgressParser:
    """Stateless parser for ffmpeg status lines."""

    def parse(self, line: str) -> EncoderProgress | None:
        time_match = TIME_RE.search(line)
        if time_match is None:
            return None

        hours, minutes, seconds, centis = (int(g) for g in time_match.groups())
        progress = EncoderProgress(time_sec=hours * 3600 + minutes * 60 + seconds + centis / 100)

        if frame_match := FRAME_RE.search(line):
            progress.frame = int(frame_match.group(1))
        if fps_match := FPS_RE.search(line):
            progress.fps = _to_float(fps_match.group(1))
        if bitrate_match := BITRATE_RE.search(line):
            progress.bitrate_kbps = _to_float(bitrate_match.group(1))
        if size_match := SIZE_RE.search(line):
            progress.size_bytes = int(size_match.group(1)) * 1024

        return progress


class FrameProgressParser:
    """Parser for renderers that report ``Rendered N/M`` frame counts."""

    def __init__(self, fps: float):
        self.fps = fps

    def parse(self, line: str) -> EncoderProgress | None:
        match = RENDERED_FRAMES_RE.search(line)
        if match is None:
            return None
        done, total = int(match.group(1)), int(match.group(2))
        return EncoderProgress(
            frame=done,
            fps=self.fps,
            time_sec=done / self.fps,
            total_sec=total / self.fps if total > 0 else None,
        )


def compute_percent(elapsed_sec: float, total_sec: float | None) -> float:
    """Percentage of ``total_sec`` covered by ``elapsed_sec``, clamped to [0, 100]."""
    if not total_sec or total_sec <= 0:
        return 0.0
    return max(0.0, min(100.0, elapsed_sec / total_sec * 100))


def split_lines(buffer: str) -> tuple[list[str], str]:
    """Split on both ``\\r`` and ``\\n``; return complete lines and the remainder."""
    parts = re.split(r"[\r\n]", buffer)
    remainder = parts.pop()
    return [p for p in parts if p.strip()], remainder
