"""
Bounded retry with exponential backoff around external LLM calls.

Only transient failures (TransportError, ApiError) are retried. The wait
before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)``.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Tuple, Type, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from collabsheet.enrichment.exceptions import ApiError, RetryExhaustedError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE: Tuple[Type[BaseException], ...] = (TransportError, ApiError)


def with_retries(
    max_attempts: int,
    base_delay: float,
    operation: Callable[[], T],
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Raises:
        RetryExhaustedError: every attempt failed with a retryable error.
        Any non-retryable exception from ``operation`` is raised unchanged.
    """
    retryer = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, min=0),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
    )
    try:
        return retryer(operation)
    except RetryError as e:
        last = e.last_attempt
        raise RetryExhaustedError(last.attempt_number, last.exception()) from last.exception()


@dataclass
class RetryPolicy:
    """Retry parameters bundled for injection into workflows."""
    max_attempts: int = 3
    base_delay: float = 2.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def run(self, operation: Callable[[], T]) -> T:
        return with_retries(self.max_attempts, self.base_delay, operation, sleep=self.sleep)
