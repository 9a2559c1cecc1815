from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple


class ConditionKind(str, Enum):
    NONE = "none"
    DEPLOYMENT_AVAILABLE = "deployment-available"
    PODS_READY_BY_LABEL = "pods-ready-by-label"
    RESOURCE_EXISTS = "resource-exists"


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    WARNED = "warned"
    TIMED_OUT = "timed-out"


@dataclass(frozen=True)
class ResourceSpec:
    kind: str
    name: str
    namespace: Optional[str]
    source: str
    selector: Optional[str] = None

    @property
    def ref(self) -> str:
        if self.namespace and self.kind.lower() != "namespace":
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    @property
    def label_selector(self) -> str:
        return self.selector or f"app={self.name}"

    @property
    def is_ingress(self) -> bool:
        return self.kind.lower() == "ingress"


@dataclass(frozen=True)
class WaitPolicy:
    condition: ConditionKind = ConditionKind.NONE
    timeout_seconds: float = 300.0


NO_WAIT = WaitPolicy()


@dataclass(frozen=True)
class StageEntry:
    resource: ResourceSpec
    wait: WaitPolicy = NO_WAIT
    critical: bool = True


@dataclass(frozen=True)
class DeploymentStage:
    name: str
    entries: Tuple[StageEntry, ...]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay_seconds: float = 10.0
    recovery_action: Optional[Callable[[], Any]] = None


@dataclass(frozen=True)
class ResourceOutcome:
    stage: str
    resource: ResourceSpec
    status: OutcomeStatus
    critical: bool
    detail: str = ""
    error_kind: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def fatal(self) -> bool:
        return self.critical and self.status in (OutcomeStatus.FAILED, OutcomeStatus.TIMED_OUT)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "resource": self.resource.ref,
            "status": self.status.value,
            "critical": self.critical,
            "fatal": self.fatal,
            "error": self.error_kind,
            "detail": self.detail,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass(frozen=True)
class StageOutcome:
    name: str
    resources: Tuple[ResourceOutcome, ...] = ()

    @property
    def failed(self) -> bool:
        return any(outcome.fatal for outcome in self.resources)

    @property
    def warned(self) -> bool:
        return any(outcome.status == OutcomeStatus.WARNED for outcome in self.resources)


@dataclass(frozen=True)
class RunResult:
    stages: Tuple[StageOutcome, ...] = ()
    aborted: bool = False
    abort_reason: Optional[str] = None
    skipped_stages: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def resources(self) -> Tuple[ResourceOutcome, ...]:
        return tuple(outcome for stage in self.stages for outcome in stage.resources)

    @property
    def has_warnings(self) -> bool:
        return any(stage.warned for stage in self.stages)


__all__ = [
    "ConditionKind",
    "DeploymentStage",
    "NO_WAIT",
    "OutcomeStatus",
    "ResourceOutcome",
    "ResourceSpec",
    "RetryPolicy",
    "RunResult",
    "StageEntry",
    "StageOutcome",
    "WaitPolicy",
]
