"""Custom exceptions for the dramagen render core.

Every error carries a machine-readable code from the error-code registry, so
the job orchestrator can decide retryability without inspecting messages.
"""

import errno as errno_codes

from dramagen.constants.error_codes import get_error_spec
from dramagen.schemas.envelope import ErrorInfo, ErrorLocation


class DramaGenError(Exception):
    """Base exception for all dramagen errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return get_error_spec(self.code).get("retryable", False)

    def details(self) -> dict:
        return {}

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for job records."""
        spec = get_error_spec(self.code)
        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=self.retryable,
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            details=self.details(),
        )


# =============================================================================
# Validation Errors (never retried)
# =============================================================================


class ValidationError(DramaGenError):
    """Base class for input validation errors."""

    code = "VALIDATION_ERROR"
    message = "Invalid input"


class MissingFileError(ValidationError):
    code = "MISSING_FILE"
    message = "Input file not found"

    def __init__(self, path: str, *, field: str | None = None, index: int | None = None):
        self.path = path
        super().__init__(
            f"Input file not found: {path}",
            location=ErrorLocation(field=field, index=index, path=path),
        )


class EmptySegmentListError(ValidationError):
    code = "EMPTY_SEGMENT_LIST"
    message = "At least one segment is required"


class InvalidDurationError(ValidationError):
    code = "INVALID_DURATION"
    message = "Duration must be greater than 0"

    def __init__(self, duration_ms: float, *, index: int | None = None):
        self.duration_ms = duration_ms
        super().__init__(
            f"Duration must be greater than 0 (got {duration_ms}ms)",
            location=ErrorLocation(field="duration_ms", index=index),
        )


class InvalidTimeRangeError(ValidationError):
    code = "INVALID_TIME_RANGE"
    message = "Invalid time range"


class InvalidTransitionError(ValidationError):
    code = "INVALID_TRANSITION"
    message = "Invalid transition"


class InvalidVolumeError(ValidationError):
    code = "INVALID_VOLUME"
    message = "Volume must be between 0.0 and 1.0"

    def __init__(self, volume: float, track_type: str | None = None):
        self.volume = volume
        super().__init__(
            f"Volume must be between 0.0 and 1.0 (got {volume} for {track_type})",
            location=ErrorLocation(field="volume", track_type=track_type),
        )


class NoTracksError(ValidationError):
    code = "NO_TRACKS"
    message = "At least one audio track is required"


class TooManyTracksError(ValidationError):
    code = "TOO_MANY_TRACKS"
    message = "At most 4 audio tracks can be mixed"

    def __init__(self, count: int, limit: int = 4):
        self.count = count
        super().__init__(f"At most {limit} audio tracks can be mixed (got {count})")


class DuplicateTrackTypeError(ValidationError):
    code = "DUPLICATE_TRACK_TYPE"
    message = "Duplicate track type"

    def __init__(self, track_type: str):
        self.track_type = track_type
        super().__init__(
            f"Duplicate track type: {track_type}",
            location=ErrorLocation(field="type", track_type=track_type),
        )


class InvalidRenderOptionsError(ValidationError):
    code = "INVALID_RENDER_OPTIONS"
    message = "Invalid render options"


class InvalidSubtitlesError(ValidationError):
    code = "INVALID_SUBTITLES"
    message = "Invalid subtitle cues"


class OutputExistsError(ValidationError):
    code = "OUTPUT_EXISTS"
    message = "Output file already exists"

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Output file already exists: {path}",
            location=ErrorLocation(field="output_path", path=path),
        )


class UnknownJobKindError(ValidationError):
    code = "UNKNOWN_JOB_KIND"
    message = "Unknown job kind"


# =============================================================================
# Process Errors
# =============================================================================

# errno values that indicate a momentary resource shortage rather than a
# missing or broken binary
TRANSIENT_LAUNCH_ERRNOS = frozenset(
    {
        errno_codes.EAGAIN,
        errno_codes.ENOMEM,
        errno_codes.EMFILE,
        errno_codes.ENFILE,
        errno_codes.ETXTBSY,
    }
)


class ProcessLaunchError(DramaGenError):
    """The external program could not be started."""

    code = "PROCESS_LAUNCH_FAILED"
    message = "Failed to launch process"

    def __init__(self, program: str, cause: OSError | None = None):
        self.program = program
        self.errno = cause.errno if cause is not None else None
        if self.errno in TRANSIENT_LAUNCH_ERRNOS:
            code = "PROCESS_LAUNCH_TRANSIENT"
        else:
            code = None
        reason = f": {cause.strerror or cause}" if cause is not None else ""
        super().__init__(f"Failed to launch {program}{reason}", code=code)

    def details(self) -> dict:
        return {"program": self.program, "errno": self.errno or 0}


class ProcessExitError(DramaGenError):
    """The external program exited with a non-zero status."""

    code = "PROCESS_EXIT_NONZERO"
    message = "Process exited with a non-zero status"

    def __init__(
        self,
        program: str,
        returncode: int,
        diagnostic_tail: list[str] | None = None,
    ):
        self.program = program
        self.returncode = returncode
        self.diagnostic_tail = list(diagnostic_tail or [])
        message = f"{program} exited with code {returncode}"
        if self.diagnostic_tail:
            message = f"{message}: {self.diagnostic_tail[-1]}"
        super().__init__(message)

    def details(self) -> dict:
        return {
            "program": self.program,
            "returncode": self.returncode,
            "diagnostic_tail": self.diagnostic_tail,
        }


class ParseError(DramaGenError):
    """A diagnostic line could not be understood."""

    code = "PARSE_ERROR"
    message = "Could not parse process output"


# =============================================================================
# Job Lifecycle Errors
# =============================================================================


class JobCancelledError(DramaGenError):
    code = "JOB_CANCELLED"
    message = "Job was cancelled"

    def __init__(self, job_id: str | None = None):
        self.job_id = job_id
        super().__init__(f"Job was cancelled: {job_id}" if job_id else None)
