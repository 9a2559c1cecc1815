"""Stage model and execution for ordered Kubernetes deployments."""

from .models import (
    ConditionKind,
    DeploymentStage,
    OutcomeStatus,
    ResourceOutcome,
    ResourceSpec,
    RetryPolicy,
    RunResult,
    StageEntry,
    StageOutcome,
    WaitPolicy,
)

__all__ = [
    "ConditionKind",
    "DeploymentStage",
    "OutcomeStatus",
    "ResourceOutcome",
    "ResourceSpec",
    "RetryPolicy",
    "RunResult",
    "StageEntry",
    "StageOutcome",
    "WaitPolicy",
]
