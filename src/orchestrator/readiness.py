from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from src.cluster.client import ClusterClient
from src.common.errors import DeploymentError

from .models import ConditionKind, ResourceSpec

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0


class WaitStatus(str, Enum):
    READY = "ready"
    TIMED_OUT = "timed-out"


@dataclass(frozen=True)
class WaitResult:
    status: WaitStatus
    condition: ConditionKind
    elapsed_seconds: float
    polls: int
    detail: str = ""

    @property
    def ready(self) -> bool:
        return self.status == WaitStatus.READY


class ReadinessWaiter:
    """Blocking poller that resolves a readiness condition to READY or TIMED_OUT.

    Expiry never raises; the caller decides how a timeout is treated. Cluster
    errors raised during a poll count as "not ready yet".
    """

    def __init__(
        self,
        client: ClusterClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.client = client
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def wait(self, resource: ResourceSpec, condition: ConditionKind, timeout_seconds: float) -> WaitResult:
        if condition == ConditionKind.NONE:
            return WaitResult(WaitStatus.READY, condition, 0.0, 0)

        check = self._checker(resource, condition)
        start = self._clock()
        deadline = start + max(0.0, timeout_seconds)
        polls = 0
        last_detail = ""
        logger.info("Waiting for %s (%s, timeout %gs)...", resource.ref, condition.value, timeout_seconds)
        while True:
            polls += 1
            try:
                satisfied, last_detail = check()
            except DeploymentError as exc:
                satisfied, last_detail = False, str(exc)
                logger.debug("Readiness poll for %s failed: %s", resource.ref, exc)
            now = self._clock()
            if satisfied:
                logger.info("%s is ready", resource.ref)
                return WaitResult(WaitStatus.READY, condition, now - start, polls, last_detail)
            remaining = deadline - now
            if remaining <= 0:
                logger.warning(
                    "%s failed to become ready within %gs%s",
                    resource.ref,
                    timeout_seconds,
                    f" ({last_detail})" if last_detail else "",
                )
                return WaitResult(WaitStatus.TIMED_OUT, condition, now - start, polls, last_detail)
            self._sleep(min(self.poll_interval, remaining))

    def _checker(self, resource: ResourceSpec, condition: ConditionKind) -> Callable[[], Tuple[bool, str]]:
        if condition == ConditionKind.DEPLOYMENT_AVAILABLE:
            return lambda: self._deployment_available(resource)
        if condition == ConditionKind.PODS_READY_BY_LABEL:
            return lambda: self._pods_ready(resource)
        if condition == ConditionKind.RESOURCE_EXISTS:
            return lambda: self._exists(resource)
        raise ValueError(f"Unsupported readiness condition: {condition}")

    def _deployment_available(self, resource: ResourceSpec) -> Tuple[bool, str]:
        available: Optional[bool] = self.client.get_condition(
            "deployment", resource.name, resource.namespace, "Available"
        )
        if available is None:
            return (False, "deployment has no Available condition yet")
        return (available, "" if available else "deployment Available=False")

    def _pods_ready(self, resource: ResourceSpec) -> Tuple[bool, str]:
        namespace = resource.namespace or "default"
        pods = self.client.list_pods(namespace, resource.label_selector)
        if not pods:
            return (False, f"no pods match {resource.label_selector}")
        pending = [pod.name for pod in pods if not pod.ready]
        if pending:
            return (False, f"pods not ready: {', '.join(sorted(pending))}")
        return (True, f"{len(pods)} pod(s) ready")

    def _exists(self, resource: ResourceSpec) -> Tuple[bool, str]:
        found = self.client.exists(resource.kind, resource.name, resource.namespace)
        return (found, "" if found else "resource not found")


__all__ = ["ReadinessWaiter", "WaitResult", "WaitStatus"]
