"""Run configuration loaded from YAML with ``DEPLOY_*`` environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/deploy.yaml")
INGRESS_NGINX_MANIFEST = (
    "https://raw.githubusercontent.com/kubernetes/ingress-nginx/main/deploy/static/provider/cloud/deploy.yaml"
)
DEFAULT_VALIDATION_SOURCES = (
    "auth-service.yaml",
    "people-counter.yaml",
    "video-transcoder.yaml",
    "postgres-config.yaml",
    "deploy.sh",
)


@dataclass
class IngressSettings:
    controller_manifest: str = INGRESS_NGINX_MANIFEST
    namespace: str = "ingress-nginx"
    controller_selector: str = "app.kubernetes.io/component=controller"
    webhook_name: str = "ingress-nginx-admission"
    admission_service: str = "ingress-nginx-controller-admission"
    ready_timeout_seconds: float = 300.0
    settle_seconds: float = 10.0
    max_attempts: int = 3
    retry_delay_seconds: float = 10.0


@dataclass
class ValidationSettings:
    sources: List[str] = field(default_factory=lambda: list(DEFAULT_VALIDATION_SOURCES))
    base64_fields: List[str] = field(default_factory=lambda: ["POSTGRES_PASSWORD"])
    check_gitignore: bool = True


@dataclass
class DeployConfig:
    kubectl_cmd: str = "kubectl"
    context: Optional[str] = None
    manifest_dir: Path = Path(".")
    app_namespace: str = "myapp"
    monitoring_namespace: str = "monitoring"
    default_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 2.0
    request_timeout_seconds: float = 60.0
    ingress: IngressSettings = field(default_factory=IngressSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    stages: Optional[List[Dict[str, Any]]] = None

    def manifest_path(self, filename: str) -> Path:
        return self.manifest_dir / filename

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base_dir: Optional[Path] = None) -> "DeployConfig":
        if not isinstance(data, Mapping):
            raise ConfigError("Config file must contain a mapping")
        config = cls()
        cluster = _section(data, "cluster")
        config.kubectl_cmd = str(cluster.get("kubectl", config.kubectl_cmd))
        config.context = cluster.get("context") or None
        config.request_timeout_seconds = _number(cluster, "request_timeout", config.request_timeout_seconds)

        manifest_dir = data.get("manifest_dir")
        if manifest_dir:
            candidate = Path(str(manifest_dir)).expanduser()
            if not candidate.is_absolute() and base_dir is not None:
                candidate = (base_dir / candidate).resolve()
            config.manifest_dir = candidate

        namespaces = _section(data, "namespaces")
        config.app_namespace = str(namespaces.get("app", config.app_namespace))
        config.monitoring_namespace = str(namespaces.get("monitoring", config.monitoring_namespace))

        waits = _section(data, "waits")
        config.default_timeout_seconds = _number(waits, "timeout", config.default_timeout_seconds)
        config.poll_interval_seconds = _number(waits, "poll_interval", config.poll_interval_seconds)

        ingress = _section(data, "ingress")
        defaults = IngressSettings()
        config.ingress = IngressSettings(
            controller_manifest=str(ingress.get("controller_manifest", defaults.controller_manifest)),
            namespace=str(ingress.get("namespace", defaults.namespace)),
            controller_selector=str(ingress.get("controller_selector", defaults.controller_selector)),
            webhook_name=str(ingress.get("webhook_name", defaults.webhook_name)),
            admission_service=str(ingress.get("admission_service", defaults.admission_service)),
            ready_timeout_seconds=_number(ingress, "ready_timeout", defaults.ready_timeout_seconds),
            settle_seconds=_number(ingress, "settle_seconds", defaults.settle_seconds),
            max_attempts=int(_number(ingress, "max_attempts", defaults.max_attempts)),
            retry_delay_seconds=_number(ingress, "retry_delay", defaults.retry_delay_seconds),
        )

        validation = _section(data, "validation")
        sources = validation.get("sources", list(DEFAULT_VALIDATION_SOURCES))
        base64_fields = validation.get("base64_fields", ["POSTGRES_PASSWORD"])
        if not isinstance(sources, list) or not isinstance(base64_fields, list):
            raise ConfigError("validation.sources and validation.base64_fields must be lists")
        config.validation = ValidationSettings(
            sources=[str(item) for item in sources],
            base64_fields=[str(item) for item in base64_fields],
            check_gitignore=bool(validation.get("check_gitignore", True)),
        )

        stages = data.get("stages")
        if stages is not None and not isinstance(stages, list):
            raise ConfigError("stages must be a list of stage definitions")
        config.stages = stages
        return config

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "DeployConfig":
        env = os.environ if environ is None else environ
        if env.get("DEPLOY_KUBECTL"):
            self.kubectl_cmd = env["DEPLOY_KUBECTL"]
        if env.get("DEPLOY_CONTEXT"):
            self.context = env["DEPLOY_CONTEXT"]
        if env.get("DEPLOY_MANIFEST_DIR"):
            self.manifest_dir = Path(env["DEPLOY_MANIFEST_DIR"]).expanduser()
        if env.get("DEPLOY_NAMESPACE"):
            self.app_namespace = env["DEPLOY_NAMESPACE"]
        return self


def load_config(path: Optional[Path], *, required: bool = False) -> DeployConfig:
    """Load a DeployConfig from ``path``; fall back to defaults when the file is absent."""

    if path is None or not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        logger.info("No config file found at %s; using built-in defaults.", path)
        return DeployConfig().apply_env()
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {path} is not valid YAML: {exc}") from exc
    config = DeployConfig.from_mapping(data, base_dir=path.resolve().parent)
    return config.apply_env()


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{key} must be a mapping")
    return value


def _number(data: Mapping[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be numeric, got {value!r}") from exc


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DeployConfig",
    "IngressSettings",
    "ValidationSettings",
    "load_config",
]
