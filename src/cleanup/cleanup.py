"""Best-effort teardown of deployed namespaces, volumes and ingress leftovers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.cluster.client import ClusterClient
from src.common.errors import ClusterCommandError

logger = logging.getLogger(__name__)

SYSTEM_NAMESPACES = ("default", "kube-system", "kube-public", "kube-node-lease")
NAMESPACE_CONTENTS = ("all", "pvc", "secrets", "configmaps", "ingress", "networkpolicy")
QUICK_CONTENTS = ("all", "pvc", "secrets,configmaps")
DEFAULT_NAMESPACE_WORKLOADS = "deployment,statefulset,daemonset,job,cronjob"
DEFAULT_NAMESPACE_CONFIG = "ingress,configmap,secret"
WEBHOOK_KINDS = ("validatingwebhookconfiguration", "mutatingwebhookconfiguration")


@dataclass
class CleanupSummary:
    deleted: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    namespaces: List[str] = field(default_factory=list)
    remaining: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespaces": list(self.namespaces),
            "deleted": list(self.deleted),
            "failures": list(self.failures),
        }


class ClusterCleaner:
    """Delete what a deployment created. Individual delete failures never stop the sweep."""

    def __init__(
        self,
        client: ClusterClient,
        *,
        webhook_name: str = "ingress-nginx-admission",
        system_namespaces: Sequence[str] = SYSTEM_NAMESPACES,
    ) -> None:
        self.client = client
        self.webhook_name = webhook_name
        self.system_namespaces: Tuple[str, ...] = tuple(system_namespaces)

    def custom_namespaces(self) -> List[str]:
        return [ns for ns in self.client.list_namespaces() if ns not in self.system_namespaces]

    def cleanup(self, *, include_default: bool = False) -> CleanupSummary:
        summary = CleanupSummary()
        try:
            namespaces = self.custom_namespaces()
        except ClusterCommandError as exc:
            logger.error("Could not list namespaces: %s", exc)
            summary.failures.append(f"list namespaces: {exc}")
            namespaces = []

        if namespaces:
            logger.info("Found custom namespaces: %s", ", ".join(namespaces))
        else:
            logger.info("No custom namespaces found")
        for namespace in namespaces:
            self.cleanup_namespace(namespace, summary)

        self._delete_available_volumes(summary)
        if include_default:
            self.cleanup_default_namespace(summary)
        logger.info("Cleaning up ingress admission webhooks...")
        for kind in WEBHOOK_KINDS:
            self._delete(summary, kind, self.webhook_name)

        summary.remaining = self._remaining()
        if summary.failures:
            logger.warning("Cleanup finished with %d failed delete(s)", len(summary.failures))
        else:
            logger.info("Cluster cleanup completed")
        return summary

    def cleanup_namespace(self, namespace: str, summary: Optional[CleanupSummary] = None) -> CleanupSummary:
        summary = summary if summary is not None else CleanupSummary()
        logger.info("Cleaning up namespace: %s", namespace)
        summary.namespaces.append(namespace)
        for kind in NAMESPACE_CONTENTS:
            self._delete(summary, kind, namespace=namespace)
        if namespace in self.system_namespaces:
            logger.info("Skipping deletion of system namespace %s", namespace)
        else:
            self._delete(summary, "namespace", namespace)
        return summary

    def cleanup_default_namespace(self, summary: Optional[CleanupSummary] = None) -> CleanupSummary:
        summary = summary if summary is not None else CleanupSummary()
        logger.info("Cleaning custom resources in the default namespace...")
        self._delete(summary, DEFAULT_NAMESPACE_WORKLOADS, namespace="default")
        self._delete(summary, "service", namespace="default", field_selector="metadata.name!=kubernetes")
        self._delete(summary, DEFAULT_NAMESPACE_CONFIG, namespace="default")
        return summary

    def quick_cleanup(self, namespace: str = "myapp") -> CleanupSummary:
        summary = CleanupSummary()
        try:
            present = self.client.exists("namespace", namespace)
        except ClusterCommandError as exc:
            logger.error("Could not look up namespace %s: %s", namespace, exc)
            summary.failures.append(f"namespace/{namespace}: {exc}")
            return summary
        if not present:
            logger.warning("Namespace '%s' does not exist", namespace)
            return summary
        summary.namespaces.append(namespace)
        for kind in QUICK_CONTENTS:
            self._delete(summary, kind, namespace=namespace)
        self._delete(summary, "namespace", namespace)
        logger.info("Cleanup of namespace '%s' complete", namespace)
        return summary

    def _delete_available_volumes(self, summary: CleanupSummary) -> None:
        try:
            volumes = self.client.list_persistent_volumes(phase="Available")
        except ClusterCommandError as exc:
            logger.warning("Could not list persistent volumes: %s", exc)
            summary.failures.append(f"list pv: {exc}")
            return
        if volumes:
            logger.info("Deleting orphaned persistent volumes: %s", ", ".join(volumes))
        for volume in volumes:
            self._delete(summary, "pv", volume)

    def _delete(
        self,
        summary: CleanupSummary,
        kind: str,
        name: Optional[str] = None,
        *,
        namespace: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> None:
        target = f"{kind}/{name or '*'}" + (f" -n {namespace}" if namespace else "")
        try:
            self.client.delete(kind, name, namespace, field_selector=field_selector)
        except ClusterCommandError as exc:
            logger.warning("Failed to delete %s: %s", target, exc)
            summary.failures.append(f"{target}: {exc}")
            return
        logger.debug("Deleted %s", target)
        summary.deleted.append(target)

    def _remaining(self) -> str:
        try:
            return self.client.snapshot("all")
        except ClusterCommandError as exc:
            logger.warning("Could not list remaining resources: %s", exc)
            return ""


__all__ = ["CleanupSummary", "ClusterCleaner", "SYSTEM_NAMESPACES"]
