"""Error taxonomy shared by the validator, orchestrator and ingress installer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from src.orchestrator.models import ResourceSpec
    from src.validator.rules import ValidationReport


class DeploymentError(Exception):
    """Base class for every failure the orchestrator reports."""


class ConfigError(DeploymentError):
    """Raised when a config or stage plan file is malformed."""


class ValidationError(DeploymentError):
    """Raised when blocking validation findings prevent a run from starting."""

    def __init__(self, report: "ValidationReport") -> None:
        self.report = report
        blocking = len(report.blocking)
        super().__init__(f"configuration validation failed with {blocking} blocking finding(s)")


class ClusterConnectionError(DeploymentError):
    """Raised when kubectl is missing or the control plane cannot be reached."""


class ClusterCommandError(DeploymentError):
    """Raised when a kubectl query or delete fails."""


class ApplyError(DeploymentError):
    def __init__(self, resource: Optional["ResourceSpec"], detail: str) -> None:
        self.resource = resource
        self.detail = detail
        target = resource.ref if resource is not None else "resource"
        super().__init__(f"failed to apply {target}: {detail}")


class ReadinessTimeout(DeploymentError):
    def __init__(self, target: str, condition: str, timeout_seconds: float) -> None:
        self.target = target
        self.condition = condition
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{target} did not satisfy {condition} within {timeout_seconds:g}s")


class RetryExhausted(DeploymentError):
    def __init__(self, operation: str, attempts: int, errors: Sequence[BaseException] = ()) -> None:
        self.operation = operation
        self.attempts = attempts
        self.errors = list(errors)
        last = f": {self.errors[-1]}" if self.errors else ""
        super().__init__(f"{operation} failed after {attempts} attempt(s){last}")


__all__ = [
    "ApplyError",
    "ClusterCommandError",
    "ClusterConnectionError",
    "ConfigError",
    "DeploymentError",
    "ReadinessTimeout",
    "RetryExhausted",
    "ValidationError",
]
