"""Tests for failure classification and retry backoff."""

import errno

import pytest

from dramagen.exceptions import (
    InvalidDurationError,
    JobCancelledError,
    ProcessExitError,
    ProcessLaunchError,
)
from dramagen.jobs.retry import ErrorType, RetryDecision, RetryPolicy, classify_error, classify_text


class TestClassifyError:
    """Tests for classify_error."""

    def test_validation_is_final(self):
        decision = classify_error(InvalidDurationError(0))

        assert decision == RetryDecision(ErrorType.VALIDATION, retryable=False)

    def test_cancellation_is_final(self):
        assert not classify_error(JobCancelledError("job-1")).retryable

    @pytest.mark.parametrize(
        ("tail_line", "error_type", "retryable"),
        [
            ("tcp://cdn: Connection refused", ErrorType.NETWORK, True),
            ("https://cdn/a.mp4: Connection timed out", ErrorType.TIMEOUT, True),
            ("HTTP error 429 Too Many Requests", ErrorType.RATE_LIMIT, True),
            ("HTTP error 503 Service Unavailable", ErrorType.SERVER_ERROR, True),
            ("Server returned 404 Not Found", ErrorType.CLIENT_ERROR, False),
            ("in.mp4: Invalid data found when processing input", ErrorType.FILE_ERROR, False),
            ("Conversion failed!", ErrorType.UNKNOWN, False),
        ],
    )
    def test_process_exit_classified_from_tail(self, tail_line, error_type, retryable):
        error = ProcessExitError("ffmpeg", 1, ["frame=  10", tail_line])

        decision = classify_error(error)

        assert decision.error_type == error_type
        assert decision.retryable is retryable

    def test_missing_binary_is_final(self):
        error = ProcessLaunchError("ffmpeg", FileNotFoundError(errno.ENOENT, "No such file or directory"))

        decision = classify_error(error)

        assert decision.error_type == ErrorType.PROCESS_LAUNCH
        assert not decision.retryable

    def test_resource_shortage_at_launch_is_retried(self):
        error = ProcessLaunchError("ffmpeg", BlockingIOError(errno.EAGAIN, "Resource temporarily unavailable"))

        assert error.code == "PROCESS_LAUNCH_TRANSIENT"
        assert classify_error(error).retryable

    def test_builtin_network_errors(self):
        assert classify_error(TimeoutError()).error_type == ErrorType.TIMEOUT
        assert classify_error(ConnectionResetError()).error_type == ErrorType.NETWORK
        assert classify_error(ConnectionResetError()).retryable

    def test_unknown_error_is_final(self):
        decision = classify_error(RuntimeError("boom"))

        assert decision == RetryDecision(ErrorType.UNKNOWN, retryable=False)

    def test_classify_text_first_match_wins(self):
        assert classify_text("Gateway Timeout") == ErrorType.TIMEOUT


class TestRetryPolicy:
    """Tests for RetryPolicy backoff and limits."""

    @pytest.fixture
    def policy(self):
        return RetryPolicy(max_attempts=3, initial_delay_ms=5000, max_delay_ms=60000, multiplier=2.0)

    def test_exponential_delay(self, policy):
        assert [policy.delay_ms(n) for n in range(4)] == [5000, 10000, 20000, 40000]

    def test_delay_capped(self, policy):
        assert policy.delay_ms(10) == 60000

    def test_retry_only_while_attempts_remain(self, policy):
        retryable = RetryDecision(ErrorType.NETWORK, retryable=True)

        assert policy.should_retry(retryable, attempts=1)
        assert policy.should_retry(retryable, attempts=2)
        assert not policy.should_retry(retryable, attempts=3)

    def test_job_limit_overrides_policy_limit(self, policy):
        retryable = RetryDecision(ErrorType.NETWORK, retryable=True)

        assert policy.should_retry(retryable, attempts=3, max_attempts=5)
        assert not policy.should_retry(retryable, attempts=1, max_attempts=1)

    def test_never_retry_final_errors(self, policy):
        assert not policy.should_retry(RetryDecision(ErrorType.VALIDATION, retryable=False), attempts=1)

    def test_from_settings(self, monkeypatch):
        monkeypatch.setenv("JOB_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("JOB_INITIAL_DELAY_MS", "100")

        policy = RetryPolicy.from_settings()

        assert policy.max_attempts == 5
        assert policy.delay_ms(0) == 100
