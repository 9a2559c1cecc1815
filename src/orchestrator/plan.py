"""Deployment stage plans: the built-in ordering and YAML-defined overrides."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from src.common.config import DeployConfig
from src.common.errors import ConfigError

from .models import ConditionKind, DeploymentStage, ResourceSpec, StageEntry, WaitPolicy


class PlanResource(BaseModel):
    kind: str = Field(..., description="Resource kind, e.g. Deployment or ConfigMap")
    name: str = Field(..., description="metadata.name of the resource")
    namespace: Optional[str] = Field(default=None, description="Namespace; omit for cluster-scoped kinds")
    source: str = Field(..., description="Manifest file (relative to manifest_dir) or URL")
    selector: Optional[str] = Field(default=None, description="Pod label selector for pods-ready-by-label")
    wait: ConditionKind = Field(default=ConditionKind.NONE, description="Readiness condition to wait for")
    timeout: Optional[float] = Field(default=None, gt=0, description="Readiness timeout in seconds")
    critical: bool = Field(default=True, description="Abort the run when this resource fails")


class PlanStage(BaseModel):
    name: str
    resources: List[PlanResource] = Field(..., min_length=1)


def build_default_stages(config: DeployConfig) -> List[DeploymentStage]:
    """The fixed deployment order: namespace, config, datastore, monitoring, services, ingress."""

    app_ns = config.app_namespace
    monitoring_ns = config.monitoring_namespace
    timeout = config.default_timeout_seconds

    def entry(
        kind: str,
        name: str,
        namespace: Optional[str],
        filename: str,
        condition: ConditionKind = ConditionKind.NONE,
        critical: bool = True,
    ) -> StageEntry:
        resource = ResourceSpec(kind, name, namespace, str(config.manifest_path(filename)))
        return StageEntry(resource, WaitPolicy(condition, timeout), critical)

    available = ConditionKind.DEPLOYMENT_AVAILABLE
    return [
        DeploymentStage("Namespace", (entry("Namespace", app_ns, None, "namespace.yaml"),)),
        DeploymentStage(
            "PostgreSQL configuration & secrets",
            (entry("ConfigMap", "postgres-config", app_ns, "postgres-config.yaml"),),
        ),
        DeploymentStage(
            "PostgreSQL database",
            (entry("StatefulSet", "postgres", app_ns, "postgres.yaml", ConditionKind.PODS_READY_BY_LABEL),),
        ),
        DeploymentStage(
            "Monitoring stack",
            (
                entry("ConfigMap", "prometheus-alerts", monitoring_ns, "prometheus-alerts.yaml"),
                entry("Deployment", "alertmanager", monitoring_ns, "alertmanager.yaml", available),
                entry("Deployment", "prometheus", monitoring_ns, "prometheus.yaml", available),
                entry("Deployment", "grafana", monitoring_ns, "grafana.yaml", available),
            ),
        ),
        DeploymentStage(
            "Application services",
            (
                entry("Deployment", "auth-service", app_ns, "auth-service.yaml", available),
                # Images for these two may not be published yet.
                entry("Deployment", "people-counter", app_ns, "people-counter.yaml", available, critical=False),
                entry("Deployment", "video-transcoder", app_ns, "video-transcoder.yaml", available, critical=False),
            ),
        ),
        DeploymentStage(
            "Ingress configuration",
            (entry("Ingress", "myapp-ingress", app_ns, "ingress.yaml", ConditionKind.RESOURCE_EXISTS),),
        ),
    ]


def load_stages(raw_stages: Sequence[Any], config: DeployConfig) -> List[DeploymentStage]:
    """Validate a ``stages:`` section and turn it into DeploymentStages."""

    try:
        parsed = [PlanStage.model_validate(stage) for stage in raw_stages]
    except SchemaError as exc:
        raise ConfigError(f"Invalid stage plan: {exc}") from exc
    if not parsed:
        raise ConfigError("Stage plan must contain at least one stage")

    seen: Set[Tuple[str, Optional[str], str]] = set()
    stages: List[DeploymentStage] = []
    for stage in parsed:
        entries: List[StageEntry] = []
        for item in stage.resources:
            identity = (item.kind.lower(), item.namespace, item.name)
            if identity in seen:
                raise ConfigError(f"{item.kind}/{item.name} appears in more than one stage")
            seen.add(identity)
            resource = ResourceSpec(
                kind=item.kind,
                name=item.name,
                namespace=item.namespace,
                source=_resolve_source(item.source, config),
                selector=item.selector,
            )
            wait = WaitPolicy(item.wait, item.timeout or config.default_timeout_seconds)
            entries.append(StageEntry(resource, wait, item.critical))
        stages.append(DeploymentStage(stage.name, tuple(entries)))

    for stage in stages[:-1]:
        for entry in stage.entries:
            if entry.resource.is_ingress:
                raise ConfigError(f"Ingress {entry.resource.name} must be in the final stage")
    return stages


def resolve_stages(config: DeployConfig) -> List[DeploymentStage]:
    if config.stages:
        return load_stages(config.stages, config)
    return build_default_stages(config)


def _resolve_source(source: str, config: DeployConfig) -> str:
    if source.startswith(("http://", "https://")):
        return source
    return str(config.manifest_path(source))


__all__ = [
    "PlanResource",
    "PlanStage",
    "build_default_stages",
    "load_stages",
    "resolve_stages",
]
