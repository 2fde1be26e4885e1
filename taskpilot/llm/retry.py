#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Retry and deadline wrappers for model-service calls.

Transient failures (connection reset, timeouts, rate limits, 502/503/529
overloads) are retried with exponential backoff plus jitter; anything else
propagates on the first failure.
"""

from __future__ import annotations

import os
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from taskpilot.debug_logger import get_logger
from taskpilot.llm.providers.base import ModelServiceError


logger = get_logger()

T = TypeVar("T")

RETRYABLE_TOKENS = (
    "econnreset",
    "etimedout",
    "enotfound",
    "connection reset",
    "timed out",
    "rate_limit_error",
    "overloaded_error",
    "529",
    "503",
    "502",
)


class ModelTimeoutError(TimeoutError):
    """A wrapped call did not finish before its deadline."""


@dataclass
class RetryConfig:
    """Backoff settings; delays are in milliseconds."""
    max_retries: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2.0
    jitter_fraction: float = 0.3

    @classmethod
    def from_env(cls) -> "RetryConfig":
        return cls(
            max_retries=int(os.getenv("TASKPILOT_MODEL_MAX_RETRIES", "3")),
            base_delay_ms=float(os.getenv("TASKPILOT_RETRY_BASE_MS", "1000")),
            max_delay_ms=float(os.getenv("TASKPILOT_RETRY_MAX_MS", "30000")),
        )

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay in ms before retry number ``attempt + 1`` (``attempt`` is 0-based).

        A server ``retry_after`` hint (seconds) raises the delay to at least
        that long, still capped at ``max_delay_ms``.
        """
        delay = self.base_delay_ms * (self.backoff_multiplier ** attempt)
        delay += random.uniform(0, delay * self.jitter_fraction)
        if retry_after:
            delay = max(delay, retry_after * 1000.0)
        return min(delay, self.max_delay_ms)


def is_retryable_error(error: BaseException) -> bool:
    """Whether ``error`` looks like a transient model-service failure."""
    if isinstance(error, ModelServiceError):
        return error.retryable
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True

    message = f"{type(error).__name__} {error}".lower()
    return any(token in message for token in RETRYABLE_TOKENS)


def with_retry(
    func: Callable[[], T],
    config: Optional[RetryConfig] = None,
    *,
    label: str = "model call",
    on_retry: Optional[Callable[[int, BaseException, float], Any]] = None,
) -> T:
    """Call ``func`` until it succeeds, retrying transient failures.

    Makes at most ``config.max_retries + 1`` attempts. The last error is
    re-raised once attempts are exhausted; non-retryable errors are re-raised
    immediately.
    """
    config = config or RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            result = func()
            if attempt > 0:
                logger.info("%s succeeded on attempt %d", label, attempt + 1)
            return result
        except Exception as e:
            if not is_retryable_error(e):
                raise
            if attempt >= config.max_retries:
                logger.log("llm", "RETRY_EXHAUSTED", {
                    "label": label,
                    "attempts": attempt + 1,
                    "error": str(e),
                }, "ERROR")
                raise

            delay_ms = config.delay_for(attempt, getattr(e, "retry_after", None))
            logger.log("llm", "RETRY_SCHEDULED", {
                "label": label,
                "attempt": attempt + 1,
                "max_retries": config.max_retries,
                "delay_ms": round(delay_ms),
                "error": str(e),
            }, "WARNING")
            if on_retry is not None:
                on_retry(attempt + 1, e, delay_ms)
            time.sleep(delay_ms / 1000.0)

    raise RuntimeError("unreachable: retry loop exited without result")


def with_timeout(func: Callable[[], T], timeout_s: Optional[float], *, label: str = "model call") -> T:
    """Run ``func`` with a deadline.

    The call runs on a daemon worker thread; when the deadline passes the
    caller gets ``ModelTimeoutError`` and the worker is abandoned.
    """
    if not timeout_s or timeout_s <= 0:
        return func()

    outcome: dict = {}

    def _target() -> None:
        try:
            outcome["value"] = func()
        except BaseException as e:  # re-raised on the caller's thread
            outcome["error"] = e

    worker = threading.Thread(target=_target, name=f"taskpilot-{label}", daemon=True)
    worker.start()
    worker.join(timeout_s)

    if worker.is_alive():
        raise ModelTimeoutError(f"{label} timed out after {timeout_s}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def with_retry_and_timeout(
    func: Callable[[], T],
    timeout_s: Optional[float],
    config: Optional[RetryConfig] = None,
    *,
    label: str = "model call",
) -> T:
    """Apply the deadline to each attempt, retrying transient failures."""
    return with_retry(lambda: with_timeout(func, timeout_s, label=label), config, label=label)
