"""Tests for the retry and deadline wrappers around model calls."""

import threading
from unittest.mock import Mock

import pytest

from taskpilot.llm.providers.base import ErrorClass, ModelServiceError, TransientServiceError
from taskpilot.llm.retry import (
    ModelTimeoutError,
    RetryConfig,
    is_retryable_error,
    with_retry,
    with_retry_and_timeout,
    with_timeout,
)


@pytest.fixture
def no_sleep(mocker):
    return mocker.patch("time.sleep")


class TestWithRetry:
    def test_transient_failures_then_success(self, no_sleep):
        func = Mock(side_effect=[ConnectionResetError("ECONNRESET"), ConnectionResetError("ECONNRESET"), "ok"])

        result = with_retry(func, RetryConfig(max_retries=3))

        assert result == "ok"
        assert func.call_count == 3
        assert no_sleep.call_count == 2

    def test_non_retryable_error_fails_immediately(self, no_sleep):
        func = Mock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            with_retry(func, RetryConfig(max_retries=3))

        assert func.call_count == 1
        no_sleep.assert_not_called()

    def test_exhaustion_reraises_last_error(self, no_sleep):
        func = Mock(side_effect=TransientServiceError("overloaded", ErrorClass.SERVER_ERROR))

        with pytest.raises(TransientServiceError):
            with_retry(func, RetryConfig(max_retries=2))

        assert func.call_count == 3

    def test_zero_retries(self, no_sleep):
        func = Mock(side_effect=TimeoutError("slow"))
        with pytest.raises(TimeoutError):
            with_retry(func, RetryConfig(max_retries=0))
        assert func.call_count == 1

    def test_on_retry_callback(self, no_sleep):
        seen = []
        func = Mock(side_effect=[TimeoutError("slow"), "done"])

        with_retry(func, RetryConfig(max_retries=1, jitter_fraction=0, base_delay_ms=50),
                   on_retry=lambda attempt, err, delay: seen.append((attempt, str(err), delay)))

        assert seen == [(1, "slow", 50)]
        no_sleep.assert_called_once_with(0.05)


    def test_rate_limit_waits_for_retry_after(self, no_sleep):
        rate_limited = TransientServiceError("rate_limit_error", ErrorClass.RATE_LIMIT, status_code=429, retry_after=12.0)
        func = Mock(side_effect=[rate_limited, "ok"])

        assert with_retry(func, RetryConfig(max_retries=1, jitter_fraction=0)) == "ok"

        no_sleep.assert_called_once_with(12.0)

    def test_retry_after_is_capped(self, no_sleep):
        rate_limited = TransientServiceError("rate_limit_error", ErrorClass.RATE_LIMIT, retry_after=120.0)
        func = Mock(side_effect=[rate_limited, "ok"])

        with_retry(func, RetryConfig(max_retries=1, jitter_fraction=0, max_delay_ms=30000))

        no_sleep.assert_called_once_with(30.0)


class TestRetryableClassification:
    @pytest.mark.parametrize("error", [
        ConnectionResetError("reset"),
        TimeoutError("slow"),
        RuntimeError("read ETIMEDOUT"),
        RuntimeError("Error code: 529 overloaded_error"),
        RuntimeError("503 Service Unavailable"),
        RuntimeError("rate_limit_error: slow down"),
        TransientServiceError("network down"),
    ])
    def test_retryable(self, error):
        assert is_retryable_error(error)

    @pytest.mark.parametrize("error", [
        ValueError("bad"),
        KeyError("x"),
        ModelServiceError("invalid x-api-key", ErrorClass.AUTH_ERROR),
        ModelServiceError("503 but flagged", ErrorClass.UNKNOWN, retryable=False),
    ])
    def test_not_retryable(self, error):
        assert not is_retryable_error(error)


class TestRetryConfig:
    def test_exponential_delay_without_jitter(self):
        config = RetryConfig(base_delay_ms=100, max_delay_ms=1000, jitter_fraction=0)
        assert [config.delay_for(i) for i in range(5)] == [100, 200, 400, 800, 1000]

    def test_jitter_stays_in_bounds(self):
        config = RetryConfig(base_delay_ms=100, max_delay_ms=10000, jitter_fraction=0.3)
        for _ in range(50):
            assert 100 <= config.delay_for(0) <= 130

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TASKPILOT_MODEL_MAX_RETRIES", "5")
        monkeypatch.setenv("TASKPILOT_RETRY_BASE_MS", "10")
        config = RetryConfig.from_env()
        assert config.max_retries == 5
        assert config.base_delay_ms == 10


class TestWithTimeout:
    def test_passthrough(self):
        assert with_timeout(lambda: 42, 1) == 42

    def test_no_deadline_calls_inline(self):
        assert with_timeout(threading.current_thread, None) is threading.current_thread()

    def test_deadline_exceeded(self):
        blocker = threading.Event()
        try:
            with pytest.raises(ModelTimeoutError, match="timed out"):
                with_timeout(lambda: blocker.wait(5), 0.1, label="slow call")
        finally:
            blocker.set()

    def test_error_is_reraised_on_caller(self):
        def boom():
            raise ValueError("inner")

        with pytest.raises(ValueError, match="inner"):
            with_timeout(boom, 1)

    def test_timeout_is_retryable(self):
        assert is_retryable_error(ModelTimeoutError("x"))


def test_with_retry_and_timeout(no_sleep):
    func = Mock(side_effect=[TransientServiceError("blip"), "ok"])
    assert with_retry_and_timeout(func, 1, RetryConfig(max_retries=1)) == "ok"
    assert func.call_count == 2
