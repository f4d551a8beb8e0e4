import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from dinamai.errors import UpstreamCallFailed
from dinamai.logger import get_logger

logger = get_logger("retry")

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Rate limiting, server errors, timeouts and dropped connections."""
    return isinstance(exc, UpstreamCallFailed) and exc.retryable


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


@dataclass(frozen=True)
class RetryPolicy:
    """
    Capped exponential backoff: wait base_delay, then double it after every
    failed attempt, never exceeding max_delay. No new attempt starts once
    `deadline` seconds have passed since the first one.
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 16.0
    deadline: Optional[float] = 25.0
    should_retry: Callable[[BaseException], bool] = is_retryable


def call_with_retry(fn: Callable[[], T], policy: RetryPolicy, sleep: Callable[[float], None] = time.sleep) -> T:
    """
    Call `fn` until it succeeds, raises a non-retryable error, or the policy
    runs out of attempts or time. The last error is re-raised unchanged.
    """
    stop = stop_after_attempt(policy.max_attempts)
    if policy.deadline is not None:
        stop = stop | stop_after_delay(policy.deadline)

    retrying = Retrying(
        stop=stop,
        wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay),
        retry=retry_if_exception(policy.should_retry),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retrying(fn)
