"""
Retry policy for generation calls.

A RetryPolicy is a plain value (attempt bound plus backoff schedule);
with_retry() applies it to any zero-argument callable through tenacity.
Waiting is blocking and sequential: one attempt at a time, never concurrent
attempts.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from judgment_analysis.config import (
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY_SECONDS,
)
from judgment_analysis.exceptions import AnalysisCancelled, GenerationError
from judgment_analysis.logging_config import debug_log, warning

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        max_attempts: Total calls allowed, including the first (3 = two retries)
        base_delay: Seconds to wait after the first failed attempt
        multiplier: Growth factor of the delay per further attempt
        max_delay: Cap on any single wait
    """

    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY_SECONDS
    multiplier: float = RETRY_BACKOFF_MULTIPLIER
    max_delay: float = RETRY_MAX_DELAY_SECONDS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @property
    def retries(self) -> int:
        return self.max_attempts - 1

    def delay_for(self, attempt: int) -> float:
        """Wait after failed attempt number `attempt` (0-based)."""
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

    def wait_strategy(self) -> wait_exponential:
        """tenacity wait matching delay_for: base_delay * multiplier ** n, capped at max_delay."""
        return wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier, max=self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


def _backoff_sleep(sleep: Callable[[float], None], cancel_event: threading.Event | None,
                   description: str) -> Callable[[float], None]:
    if cancel_event is None:
        return sleep

    def interruptible_sleep(seconds: float):
        if cancel_event.wait(seconds):
            raise AnalysisCancelled(f"{description} cancelled during retry backoff")

    return interruptible_sleep


def with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    retry_on: tuple[type[BaseException], ...] = (GenerationError,),
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
    cancel_event: threading.Event | None = None,
) -> T:
    """
    Call operation until it succeeds or the policy is exhausted.

    Only exceptions in retry_on are retried; anything else propagates at
    once. When cancel_event is given the backoff wait is interruptible and
    a set event raises AnalysisCancelled.

    Returns:
        The operation's return value

    Raises:
        The last retry_on exception once max_attempts calls have failed
    """
    def log_retry(retry_state: RetryCallState):
        warning(
            f"[RETRY] {description} failed, attempt {retry_state.attempt_number}/{policy.max_attempts}: "
            f"{retry_state.outcome.exception()}. Retrying in {retry_state.next_action.sleep:.1f}s"
        )

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception_type(retry_on),
        sleep=_backoff_sleep(sleep, cancel_event, description),
        before_sleep=log_retry,
        reraise=True,
    )
    try:
        return retrying(operation)
    except retry_on:
        debug_log(f"[RETRY] {description}: giving up after {policy.max_attempts} attempts")
        raise
