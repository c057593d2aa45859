"""Bounded retry with exponential backoff for fallible async operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from audioreport.config import Config
from audioreport.errors import is_transient, redact_secrets

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait between attempts."""

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0
    is_transient: Callable[[BaseException], bool] = is_transient

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.backoff_multiplier < 1:
            raise ValueError("delays must be non-negative and non-shrinking")

    def delay_for(self, attempt: int) -> float:
        """Delay slept after the given (1-based) failed attempt."""
        return self.base_delay * self.backoff_multiplier ** (attempt - 1)

    @classmethod
    def for_upload(cls, config: Config) -> "RetryPolicy":
        return cls(
            max_attempts=config.upload_max_attempts,
            base_delay=config.upload_base_delay_seconds,
            backoff_multiplier=config.upload_backoff_multiplier,
        )


class RetryExecutor:
    """Run an operation under a RetryPolicy, re-raising the last error unchanged."""

    def __init__(self, sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        self._retry_sleep = sleep or asyncio.sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        *,
        operation_name: str = "operation",
    ) -> T:
        def _log_retry_before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            if exc is None:
                return
            wait_seconds = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "[retry] %s attempt %d/%d failed: %s. Retrying in %.1fs.",
                operation_name,
                retry_state.attempt_number,
                policy.max_attempts,
                redact_secrets(exc),
                wait_seconds,
            )

        result: Optional[T] = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(policy.is_transient),
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.base_delay,
                exp_base=policy.backoff_multiplier,
                min=0,
            ),
            reraise=True,
            before_sleep=_log_retry_before_sleep,
            sleep=self._retry_sleep,
        ):
            with attempt:
                result = await operation()
        return result  # type: ignore[return-value]
