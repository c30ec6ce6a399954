"""Timestamp and frame-number conversions shared by the encoder wrappers."""

import math


def ms_to_timestamp(ms: float) -> str:
    """Format milliseconds as ``HH:MM:SS.mmm`` for ffmpeg ``-ss``/``-t``.

    Examples:
        >>> ms_to_timestamp(3723500)
        '01:02:03.500'
    """
    if ms < 0:
        raise ValueError(f"Timestamp must be >= 0 (got {ms})")
    total_ms = int(round(ms))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def ms_to_seconds(ms: float) -> str:
    """Render milliseconds as a seconds literal for filter arguments."""
    return f"{ms / 1000:.3f}".rstrip("0").rstrip(".") or "0"


def time_to_frame(seconds: float, fps: float) -> int:
    """Frame index containing the given time."""
    return math.floor(seconds * fps)


def frame_to_time(frame: int, fps: float) -> float:
    """Start time in seconds of the given frame index."""
    return frame / fps
