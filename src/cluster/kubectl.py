from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, Sequence

from src.common.errors import ApplyError, ClusterCommandError, ClusterConnectionError
from src.orchestrator.models import ResourceSpec

from .client import ClusterClient, PodStatus

logger = logging.getLogger(__name__)


class KubectlClient(ClusterClient):
    """ClusterClient backed by the ``kubectl`` binary."""

    def __init__(
        self,
        kubectl_cmd: str = "kubectl",
        *,
        context: Optional[str] = None,
        request_timeout_seconds: float = 60.0,
        delete_timeout_seconds: float = 60.0,
    ) -> None:
        self.kubectl_cmd = kubectl_cmd
        self.context = context
        self.request_timeout_seconds = request_timeout_seconds
        self.delete_timeout_seconds = delete_timeout_seconds

    def current_context(self) -> str:
        try:
            self._run(["cluster-info"])
            context = self._run(["config", "current-context"]).strip()
        except ClusterCommandError as exc:
            raise ClusterConnectionError(
                "Cannot connect to Kubernetes cluster. Make sure your cluster is running "
                f"and kubectl is configured: {exc}"
            ) from exc
        return self.context or context

    def apply(self, resource: ResourceSpec) -> str:
        try:
            return self._run(["apply", "-f", resource.source])
        except ClusterCommandError as exc:
            raise ApplyError(resource, str(exc)) from exc

    def get_condition(
        self, kind: str, name: str, namespace: Optional[str], condition_type: str
    ) -> Optional[bool]:
        document = self._get_json([kind, name], namespace, ignore_not_found=True)
        if not document:
            return None
        status = document.get("status") if isinstance(document.get("status"), dict) else {}
        return _condition_value(status.get("conditions"), condition_type)

    def list_pods(self, namespace: str, selector: str) -> List[PodStatus]:
        document = self._get_json(["pods", "-l", selector], namespace)
        pods: List[PodStatus] = []
        for item in _items(document):
            metadata = item.get("metadata") if isinstance(item.get("metadata"), dict) else {}
            status = item.get("status") if isinstance(item.get("status"), dict) else {}
            pods.append(
                PodStatus(
                    name=str(metadata.get("name", "")),
                    phase=str(status.get("phase", "Unknown")),
                    ready=_condition_value(status.get("conditions"), "Ready") is True,
                )
            )
        return pods

    def exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        args = ["get", kind, name, "--ignore-not-found", "-o", "name"]
        return bool(self._run(self._namespaced(args, namespace)).strip())

    def delete(
        self,
        kind: str,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        *,
        field_selector: Optional[str] = None,
    ) -> None:
        args = ["delete", kind]
        args.append(name if name else "--all")
        if field_selector:
            args.append(f"--field-selector={field_selector}")
        args.extend(["--ignore-not-found", f"--timeout={int(self.delete_timeout_seconds)}s"])
        self._run(self._namespaced(args, namespace))

    def list_namespaces(self) -> List[str]:
        document = self._get_json(["namespaces"], None)
        return [name for name in (_item_name(item) for item in _items(document)) if name]

    def list_persistent_volumes(self, phase: Optional[str] = None) -> List[str]:
        document = self._get_json(["pv"], None)
        names: List[str] = []
        for item in _items(document):
            status = item.get("status") if isinstance(item.get("status"), dict) else {}
            if phase is not None and status.get("phase") != phase:
                continue
            name = _item_name(item)
            if name:
                names.append(name)
        return names

    def snapshot(self, kind: str, namespace: Optional[str] = None) -> str:
        args = ["get", kind, "-o", "wide"]
        if namespace is None:
            args.append("--all-namespaces")
            return self._run(args)
        return self._run(self._namespaced(args, namespace))

    def _get_json(
        self, target: Sequence[str], namespace: Optional[str], *, ignore_not_found: bool = False
    ) -> Dict[str, Any]:
        args = ["get", *target, "-o", "json"]
        if ignore_not_found:
            args.append("--ignore-not-found")
        stdout = self._run(self._namespaced(args, namespace))
        if not stdout.strip():
            return {}
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise ClusterCommandError(f"kubectl returned malformed JSON for {' '.join(target)}") from exc
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _namespaced(args: List[str], namespace: Optional[str]) -> List[str]:
        if namespace:
            return [*args, "-n", namespace]
        return args

    def _run(self, args: Sequence[str]) -> str:
        command = [self.kubectl_cmd]
        if self.context:
            command.extend(["--context", self.context])
        command.append(f"--request-timeout={int(self.request_timeout_seconds)}s")
        command.extend(args)
        logger.debug("Running: %s", " ".join(command))
        try:
            completed = subprocess.run(
                command,
                check=True,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            raise ClusterConnectionError(f"{self.kubectl_cmd} is not installed or not in PATH") from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            stdout = (exc.stdout or "").strip()
            raise ClusterCommandError(stderr or stdout or f"exit status {exc.returncode}") from exc
        return completed.stdout


def _items(document: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = document.get("items") if isinstance(document, dict) else None
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _item_name(item: Dict[str, Any]) -> Optional[str]:
    metadata = item.get("metadata")
    if not isinstance(metadata, dict):
        return None
    name = metadata.get("name")
    return name if isinstance(name, str) and name else None


def _condition_value(conditions: Any, condition_type: str) -> Optional[bool]:
    if not isinstance(conditions, list):
        return None
    for condition in conditions:
        if not isinstance(condition, dict):
            continue
        if str(condition.get("type", "")).lower() == condition_type.lower():
            return str(condition.get("status", "")).lower() == "true"
    return None


__all__ = ["KubectlClient"]
