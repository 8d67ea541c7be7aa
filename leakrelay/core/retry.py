from __future__ import annotations

import logging
import random
import time
from typing import Callable, TypeVar

from leakrelay.core.errors import PipelineError
from leakrelay.core.models import RetryPolicy, RetryResult


logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable_error(exc: BaseException) -> bool:
    """Default classification: only typed pipeline errors flagged retryable."""
    return isinstance(exc, PipelineError) and exc.retryable


def execute(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    name: str,
    sleep: Callable[[float], None] = time.sleep,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
) -> RetryResult[T]:
    """Run an operation under a bounded exponential backoff policy.

    Args:
        operation (Callable[[], T]): Zero-argument callable performing one attempt.
        policy (RetryPolicy): Attempt limit and delay sequence.
        name (str): Operation name used in logs and attached to errors.
        sleep (Callable[[float], None]): Sleep function, injectable for tests.
        is_retryable (Callable): Decides whether an error consumes a retry or
            aborts immediately.

    Returns:
        RetryResult[T]: The operation's value and the number of attempts made.

    Raises:
        Exception: The most recent error, once it is terminal or attempts are
            exhausted. PipelineError instances carry ``operation`` and
            ``attempts``.
    """
    max_attempts = max(int(policy.max_attempts), 1)
    attempt = 0
    while True:
        attempt += 1
        try:
            value = operation()
        except Exception as exc:
            _annotate(exc, name, attempt)
            if not is_retryable(exc):
                logger.error("%s failed with a terminal error on attempt %d/%d: %s", name, attempt, max_attempts, exc)
                raise
            if attempt >= max_attempts:
                logger.error("%s failed after %d attempt(s): %s", name, attempt, exc)
                raise
            delay = policy.delay_for(attempt)
            if policy.jitter > 0:
                delay += random.uniform(0, policy.jitter)
            logger.warning(
                "%s attempt %d/%d failed: %s; retrying in %.1fs",
                name,
                attempt,
                max_attempts,
                exc,
                delay,
            )
            sleep(delay)
            continue
        if attempt > 1:
            logger.info("%s succeeded on attempt %d/%d", name, attempt, max_attempts)
        return RetryResult(value=value, attempts=attempt)


def _annotate(exc: Exception, name: str, attempt: int) -> None:
    if isinstance(exc, PipelineError):
        exc.operation = name
        exc.attempts = attempt
