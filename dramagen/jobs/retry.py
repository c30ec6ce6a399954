"""Failure classification and retry backoff for render jobs."""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum

from dramagen.config import get_settings
from dramagen.exceptions import (
    DramaGenError,
    JobCancelledError,
    ProcessExitError,
    ProcessLaunchError,
    ValidationError,
)


class ErrorType(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"  # 5xx from a remote input
    CLIENT_ERROR = "client_error"  # 4xx from a remote input
    FILE_ERROR = "file_error"
    VALIDATION = "validation"
    PROCESS_LAUNCH = "process_launch"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


RETRYABLE_TYPES = frozenset(
    {ErrorType.NETWORK, ErrorType.TIMEOUT, ErrorType.RATE_LIMIT, ErrorType.SERVER_ERROR}
)

# Checked in order; the first match wins
TEXT_PATTERNS: list[tuple[ErrorType, re.Pattern[str]]] = [
    (
        ErrorType.NETWORK,
        re.compile(
            r"connection refused|connection reset|network is unreachable|econnrefused|enotfound"
            r"|etimedout|broken pipe|temporary failure in name resolution|name or service not known",
            re.IGNORECASE,
        ),
    ),
    (ErrorType.TIMEOUT, re.compile(r"timed out|timeout", re.IGNORECASE)),
    (ErrorType.RATE_LIMIT, re.compile(r"\b429\b|too many requests|rate limit", re.IGNORECASE)),
    (
        ErrorType.SERVER_ERROR,
        re.compile(
            r"(?:http error|server returned) 5\d\d|internal server error|bad gateway"
            r"|service unavailable|gateway timeout",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorType.CLIENT_ERROR,
        re.compile(
            r"(?:http error|server returned) 4\d\d|400 bad request|401 unauthorized|403 forbidden|404 not found",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorType.FILE_ERROR,
        re.compile(
            r"no such file|file not found|permission denied|invalid data found|moov atom not found",
            re.IGNORECASE,
        ),
    ),
]


@dataclass(frozen=True)
class RetryDecision:
    error_type: ErrorType
    retryable: bool


def classify_text(text: str) -> ErrorType:
    for error_type, pattern in TEXT_PATTERNS:
        if pattern.search(text):
            return error_type
    return ErrorType.UNKNOWN


def _decision(error_type: ErrorType) -> RetryDecision:
    return RetryDecision(error_type=error_type, retryable=error_type in RETRYABLE_TYPES)


def classify_error(exc: BaseException) -> RetryDecision:
    """Decide whether a failed attempt is worth repeating.

    Validation failures, missing binaries, file errors and cancellations are
    final. Network, timeout, rate-limit and 5xx conditions (including those
    reported in an encoder's diagnostic tail) are retried.
    """
    if isinstance(exc, (JobCancelledError, asyncio.CancelledError)):
        return RetryDecision(ErrorType.CANCELLED, retryable=False)
    if isinstance(exc, ValidationError):
        return RetryDecision(ErrorType.VALIDATION, retryable=False)
    if isinstance(exc, ProcessLaunchError):
        return RetryDecision(ErrorType.PROCESS_LAUNCH, retryable=exc.retryable)
    if isinstance(exc, ProcessExitError):
        return _decision(classify_text("\n".join(exc.diagnostic_tail)))
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return _decision(ErrorType.TIMEOUT)
    if isinstance(exc, ConnectionError):
        return _decision(ErrorType.NETWORK)
    if isinstance(exc, (FileNotFoundError, PermissionError)):
        return _decision(ErrorType.FILE_ERROR)
    if isinstance(exc, DramaGenError):
        return RetryDecision(ErrorType.UNKNOWN, retryable=exc.retryable)
    return _decision(classify_text(str(exc)))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 5000
    max_delay_ms: int = 60000
    multiplier: float = 2.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_attempts=settings.job_max_attempts,
            initial_delay_ms=settings.job_initial_delay_ms,
            max_delay_ms=settings.job_max_delay_ms,
            multiplier=settings.job_backoff_multiplier,
        )

    def delay_ms(self, retries: int) -> float:
        """Wait before retry number ``retries + 1`` (``retries`` already scheduled)."""
        return min(self.max_delay_ms, self.initial_delay_ms * self.multiplier**retries)

    def should_retry(self, decision: RetryDecision, attempts: int, max_attempts: int | None = None) -> bool:
        limit = max_attempts if max_attempts is not None else self.max_attempts
        return decision.retryable and attempts < limit
