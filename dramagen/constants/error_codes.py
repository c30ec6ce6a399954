"""Error codes dictionary for render jobs.

This is the single source of truth for all error codes, their retryability,
and suggested recovery actions. Used by the job orchestrator to decide
whether a failed job goes back to the queue.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str
    parameters: dict[str, Any]


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "MISSING_FILE": {
        "retryable": False,
        "suggested_fix": "Check that every input path exists and is readable",
    },
    "EMPTY_SEGMENT_LIST": {
        "retryable": False,
        "suggested_fix": "Provide at least one segment",
    },
    "INVALID_DURATION": {
        "retryable": False,
        "suggested_fix": "Declared durations must be greater than 0",
    },
    "INVALID_TIME_RANGE": {
        "retryable": False,
        "suggested_fix": "Start offsets must be >= 0",
    },
    "INVALID_TRANSITION": {
        "retryable": False,
        "suggested_fix": "Transition duration must be > 0 and shorter than every joined segment",
    },
    "INVALID_VOLUME": {
        "retryable": False,
        "suggested_fix": "Volume must be between 0.0 and 1.0",
    },
    "NO_TRACKS": {
        "retryable": False,
        "suggested_fix": "Provide at least one audio track",
    },
    "TOO_MANY_TRACKS": {
        "retryable": False,
        "suggested_fix": "At most 4 audio tracks can be mixed",
    },
    "DUPLICATE_TRACK_TYPE": {
        "retryable": False,
        "suggested_fix": "Each track type (voiceover, original, bgm, sfx) may appear once",
    },
    "INVALID_RENDER_OPTIONS": {
        "retryable": False,
    },
    "INVALID_SUBTITLES": {
        "retryable": False,
        "suggested_fix": "Cues must be ordered and every word must fall inside its cue",
    },
    "OUTPUT_EXISTS": {
        "retryable": False,
        "suggested_fix": "Pass overwrite=True or choose another output path",
    },
    "UNKNOWN_JOB_KIND": {
        "retryable": False,
    },
    # ==========================================================================
    # Process errors
    # ==========================================================================
    "PROCESS_LAUNCH_FAILED": {
        "retryable": False,
        "suggested_fix": "Check that the ffmpeg/renderer binary is installed and on PATH",
    },
    "PROCESS_LAUNCH_TRANSIENT": {
        "retryable": True,
        "parameters": {"reason": "resource exhaustion at spawn time"},
    },
    "PROCESS_EXIT_NONZERO": {
        # Decided per failure from the diagnostic tail, see jobs.retry
        "retryable": False,
    },
    "PARSE_ERROR": {
        "retryable": False,
    },
    # ==========================================================================
    # Job lifecycle
    # ==========================================================================
    "JOB_CANCELLED": {
        "retryable": False,
    },
    "INTERNAL_ERROR": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested fix
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable.

    Args:
        code: The error code

    Returns:
        True if the error is retryable
    """
    spec = get_error_spec(code)
    return spec.get("retryable", False)
