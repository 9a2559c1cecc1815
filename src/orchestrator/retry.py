from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, Tuple, Type, TypeVar

from src.common.errors import DeploymentError, RetryExhausted

from .models import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryStatus(str, Enum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    status: RetryStatus
    attempts: int
    value: Optional[T] = None
    errors: Tuple[BaseException, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.status == RetryStatus.SUCCESS

    def raise_if_exhausted(self, operation: str) -> Optional[T]:
        if not self.succeeded:
            raise RetryExhausted(operation, self.attempts, self.errors)
        return self.value


class RetryController:
    """Re-invoke an idempotent operation with bounded attempts and a fixed delay."""

    def __init__(
        self,
        *,
        sleep: Callable[[float], None] = time.sleep,
        retry_on: Tuple[Type[BaseException], ...] = (DeploymentError,),
    ) -> None:
        self._sleep = sleep
        self.retry_on = retry_on

    def retry(
        self,
        operation: Callable[[], T],
        policy: RetryPolicy,
        on_attempt_failed: Optional[Callable[[int, BaseException], Any]] = None,
        *,
        description: str = "operation",
    ) -> RetryOutcome[T]:
        """Run ``operation`` until it succeeds or ``policy.max_attempts`` is reached.

        Between attempts the policy's recovery action runs first, then the
        delay elapses. ``on_attempt_failed`` is notified of every failed
        attempt, including the last one. Exceptions outside ``retry_on``
        propagate unchanged.
        """

        if policy.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        errors: List[BaseException] = []
        for attempt in range(1, policy.max_attempts + 1):
            logger.info("Attempting %s (attempt %d/%d)...", description, attempt, policy.max_attempts)
            try:
                value = operation()
            except self.retry_on as exc:
                errors.append(exc)
                if on_attempt_failed is not None:
                    self._notify(on_attempt_failed, attempt, exc, description, errors)
                if attempt >= policy.max_attempts:
                    logger.error("Failed %s after %d attempts: %s", description, attempt, exc)
                    break
                logger.warning("Failed %s: %s; retrying in %gs", description, exc, policy.delay_seconds)
                self._recover(policy, description, errors)
                if policy.delay_seconds > 0:
                    self._sleep(policy.delay_seconds)
                continue
            return RetryOutcome(RetryStatus.SUCCESS, attempt, value, tuple(errors))
        return RetryOutcome(RetryStatus.EXHAUSTED, policy.max_attempts, None, tuple(errors))

    @staticmethod
    def _notify(
        callback: Callable[[int, BaseException], Any],
        attempt: int,
        failure: BaseException,
        description: str,
        errors: List[BaseException],
    ) -> None:
        try:
            callback(attempt, failure)
        except DeploymentError as exc:
            errors.append(exc)
            logger.warning("Attempt callback for %s failed: %s", description, exc)

    @staticmethod
    def _recover(policy: RetryPolicy, description: str, errors: List[BaseException]) -> None:
        if policy.recovery_action is None:
            return
        try:
            policy.recovery_action()
        except DeploymentError as exc:
            errors.append(exc)
            logger.warning("Recovery action for %s failed: %s", description, exc)


__all__ = ["RetryController", "RetryOutcome", "RetryStatus"]
