"""
Retry logic with exponential backoff for store and engine calls.

Both the S3 store client and the OPA engine talk to services over the
network; transient failures there are retried with a RetryPolicy before
being surfaced as StoreError or CompileError/EvaluationError.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for retry behavior.

    Attributes:
        retry_on: Predicate deciding whether a failure is transient.
        max_attempts: Maximum number of attempts (including the first try).
        base_delay: Base delay between retries in seconds.
        max_delay: Maximum delay between retries in seconds.
        exponential_base: Base for exponential backoff calculation.
        jitter: Jitter factor as a fraction (0.1 = +/- 10%).

    Example:
        >>> policy = RetryPolicy(retry_on=_is_transient, max_attempts=5, base_delay=0.2)
        >>> body = retry_call(client.get_object, Bucket="b", Key="k", policy=policy)
    """

    retry_on: Callable[[Exception], bool]
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        """Validate policy parameters."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay after a given attempt number (1-indexed).

        Returns:
            Delay in seconds with jitter applied.
        """
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)

        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-jitter_range, jitter_range))

        return delay

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine whether another attempt follows a failed one."""
        if attempt >= self.max_attempts:
            return False
        return self.retry_on(exception)


def retry_call(
    func: Callable[..., T],
    *args: Any,
    policy: RetryPolicy,
    description: str | None = None,
    **kwargs: Any,
) -> T:
    """
    Call a function, retrying on failure according to a policy.

    Args:
        func: Function to call.
        *args: Positional arguments for the function.
        policy: Retry policy.
        description: Operation name used in log messages.
        **kwargs: Keyword arguments for the function.

    Returns:
        The function's result.

    Raises:
        Exception: The last exception once retries are exhausted or the
            exception is not retryable.
    """
    name = description or getattr(func, "__name__", "operation")
    attempt = 0

    while True:
        attempt += 1
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not policy.should_retry(e, attempt):
                raise
            delay = policy.calculate_delay(attempt)
            logger.warning(
                f"{name} failed (attempt {attempt}/{policy.max_attempts}): "
                f"{e}. Retrying in {delay:.2f}s"
            )
            time.sleep(delay)
