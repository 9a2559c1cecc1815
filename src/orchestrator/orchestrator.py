from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from src.cluster.client import ClusterClient
from src.common.errors import DeploymentError, ReadinessTimeout, RetryExhausted

from .models import (
    ConditionKind,
    DeploymentStage,
    OutcomeStatus,
    ResourceOutcome,
    ResourceSpec,
    RunResult,
    StageEntry,
    StageOutcome,
)
from .readiness import ReadinessWaiter

if TYPE_CHECKING:  # pragma: no cover
    from src.ingress.installer import IngressInstaller

logger = logging.getLogger(__name__)

VERIFY_KINDS = ("pods", "services", "ingress")


class Orchestrator:
    """Apply deployment stages strictly in order.

    Every attempted resource yields exactly one ResourceOutcome. A critical
    failure (apply rejected, readiness timeout, exhausted ingress retries)
    stops the run before any later resource or stage is touched; a
    non-critical failure is recorded as ``warned`` and the run continues.
    Nothing is rolled back.
    """

    def __init__(
        self,
        client: ClusterClient,
        waiter: ReadinessWaiter,
        *,
        ingress_installer: Optional["IngressInstaller"] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.waiter = waiter
        self.ingress_installer = ingress_installer
        self._clock = clock

    def run(self, stages: Sequence[DeploymentStage]) -> RunResult:
        completed: List[StageOutcome] = []
        for index, stage in enumerate(stages, start=1):
            logger.info("Step %d/%d: %s", index, len(stages), stage.name)
            outcomes: List[ResourceOutcome] = []
            fatal: Optional[ResourceOutcome] = None
            for entry in stage.entries:
                outcome = self._execute(stage.name, entry)
                outcomes.append(outcome)
                if outcome.fatal:
                    fatal = outcome
                    break
            completed.append(StageOutcome(stage.name, tuple(outcomes)))
            if fatal is not None:
                reason = f"critical resource {fatal.resource.ref} {fatal.status.value} in stage '{stage.name}'"
                skipped = tuple(later.name for later in stages[index:])
                logger.error("Aborting deployment: %s", reason)
                return RunResult(tuple(completed), aborted=True, abort_reason=reason, skipped_stages=skipped)
        return RunResult(tuple(completed))

    def verify(self, namespace: str) -> None:
        """Log a post-deployment listing of the application namespace."""

        for kind in VERIFY_KINDS:
            try:
                listing = self.client.snapshot(kind, namespace)
            except DeploymentError as exc:
                logger.warning("Could not list %s in %s: %s", kind, namespace, exc)
                continue
            logger.info("Checking %s in %s:\n%s", kind, namespace, listing.rstrip())

    def _execute(self, stage: str, entry: StageEntry) -> ResourceOutcome:
        resource = entry.resource
        start = self._clock()
        logger.info("Applying %s (%s)...", resource.ref, resource.source)
        try:
            if resource.is_ingress and self.ingress_installer is not None:
                self._apply_ingress(resource)
            else:
                self.client.apply(resource)
        except DeploymentError as exc:
            return self._failed(stage, entry, OutcomeStatus.FAILED, exc, start)
        logger.info("Applied %s successfully", resource.ref)

        if entry.wait.condition != ConditionKind.NONE:
            result = self.waiter.wait(resource, entry.wait.condition, entry.wait.timeout_seconds)
            if not result.ready:
                timeout = ReadinessTimeout(resource.ref, entry.wait.condition.value, entry.wait.timeout_seconds)
                return self._failed(stage, entry, OutcomeStatus.TIMED_OUT, timeout, start, result.detail)
        return ResourceOutcome(
            stage=stage,
            resource=resource,
            status=OutcomeStatus.SUCCEEDED,
            critical=entry.critical,
            elapsed_seconds=self._clock() - start,
        )

    def _apply_ingress(self, resource: ResourceSpec) -> None:
        installer = self.ingress_installer
        if installer is None:
            raise RuntimeError("ingress installer not configured")
        outcome = installer.apply_ingress(resource)
        if not outcome.succeeded:
            raise RetryExhausted(f"apply {resource.ref}", outcome.attempts, outcome.errors)

    def _failed(
        self,
        stage: str,
        entry: StageEntry,
        status: OutcomeStatus,
        error: DeploymentError,
        start: float,
        extra: str = "",
    ) -> ResourceOutcome:
        detail = str(error) if not extra else f"{error} ({extra})"
        if entry.critical:
            logger.error("%s [fatal]: %s", entry.resource.ref, detail)
        else:
            logger.warning("%s may have failed [advisory]: %s", entry.resource.ref, detail)
            status = OutcomeStatus.WARNED
        return ResourceOutcome(
            stage=stage,
            resource=entry.resource,
            status=status,
            critical=entry.critical,
            detail=detail,
            error_kind=type(error).__name__,
            elapsed_seconds=self._clock() - start,
        )


__all__ = ["Orchestrator"]
