"""In-memory cluster used for ``--simulate`` runs and tests.

The simulation registers every document found in an applied manifest, marks
workloads as available with ready pods, and lets callers inject apply failures
or pre-register the objects a remote manifest (such as the ingress controller
bundle) would create.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import yaml

from src.common.errors import ApplyError, ClusterConnectionError
from src.orchestrator.models import ResourceSpec

from .client import ClusterClient, PodStatus

logger = logging.getLogger(__name__)

WORKLOAD_KINDS = {"deployment", "statefulset", "daemonset"}
CLUSTER_SCOPED_KINDS = {
    "namespace",
    "persistentvolume",
    "validatingwebhookconfiguration",
    "mutatingwebhookconfiguration",
    "clusterrole",
    "clusterrolebinding",
    "ingressclass",
}
KIND_ALIASES = {"pv": "persistentvolume", "pvc": "persistentvolumeclaim", "ns": "namespace", "svc": "service"}
ALL_KINDS = {"pod", "service", "replicaset", "job", "cronjob"} | WORKLOAD_KINDS
SYSTEM_NAMESPACES = ("default", "kube-system", "kube-public", "kube-node-lease")


@dataclass
class SimulatedObject:
    kind: str
    name: str
    namespace: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    conditions: Dict[str, bool] = field(default_factory=dict)
    phase: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        return _key(self.kind, self.name, self.namespace)


class SimulatedClusterClient(ClusterClient):
    def __init__(self, context: str = "simulated", *, reachable: bool = True, auto_ready: bool = True) -> None:
        self.context = context
        self.reachable = reachable
        self.auto_ready = auto_ready
        self.objects: Dict[Tuple[str, str, str], SimulatedObject] = {}
        self.applied: List[str] = []
        self.deleted: List[str] = []
        self._apply_failures: Dict[str, int] = {}
        self._bundles: Dict[str, List[SimulatedObject]] = {}
        for namespace in SYSTEM_NAMESPACES:
            self.add(SimulatedObject("Namespace", namespace))

    def add(self, obj: SimulatedObject) -> None:
        if _normalise_kind(obj.kind) in CLUSTER_SCOPED_KINDS:
            obj.namespace = None
        self.objects[obj.key] = obj

    def register_bundle(self, source: str, objects: Iterable[SimulatedObject]) -> None:
        """Declare the objects created when ``source`` is applied."""

        self._bundles[source] = list(objects)

    def fail_apply(self, name_or_source: str, times: int = -1) -> None:
        """Reject the next ``times`` applies of a resource name or source (-1 means always)."""

        self._apply_failures[name_or_source] = times

    def set_pods_ready(self, namespace: str, selector: str, ready: bool, phase: str = "Running") -> None:
        for obj in self._matching_pods(namespace, selector):
            obj.conditions["Ready"] = ready
            obj.phase = phase

    def current_context(self) -> str:
        if not self.reachable:
            raise ClusterConnectionError("simulated cluster is unreachable")
        return self.context

    def apply(self, resource: ResourceSpec) -> str:
        self.applied.append(resource.source)
        for key in (resource.name, resource.source):
            remaining = self._apply_failures.get(key)
            if remaining is None or remaining == 0:
                continue
            if remaining > 0:
                self._apply_failures[key] = remaining - 1
            raise ApplyError(resource, "simulated admission rejection")

        created = self._bundles.get(resource.source)
        if created is None:
            created = list(self._objects_from_source(resource))
        for obj in created:
            existed = obj.key in self.objects
            self.add(obj)
            if obj.kind.lower() in WORKLOAD_KINDS:
                self._materialise_workload(obj)
            logger.debug("%s %s/%s", "configured" if existed else "created", obj.kind, obj.name)
        return f"{resource.ref} configured"

    def get_condition(
        self, kind: str, name: str, namespace: Optional[str], condition_type: str
    ) -> Optional[bool]:
        obj = self.objects.get(_key(kind, name, namespace))
        if obj is None:
            return None
        return obj.conditions.get(condition_type)

    def list_pods(self, namespace: str, selector: str) -> List[PodStatus]:
        return [
            PodStatus(name=obj.name, phase=obj.phase or "Pending", ready=bool(obj.conditions.get("Ready")))
            for obj in self._matching_pods(namespace, selector)
        ]

    def exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        return _key(kind, name, namespace) in self.objects

    def delete(
        self,
        kind: str,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        *,
        field_selector: Optional[str] = None,
    ) -> None:
        kinds = {_normalise_kind(part) for part in kind.split(",")}
        if "all" in kinds:
            kinds.discard("all")
            kinds.update(ALL_KINDS)
        excluded = None
        if field_selector and field_selector.startswith("metadata.name!="):
            excluded = field_selector.split("!=", 1)[1]
        for key, obj in list(self.objects.items()):
            if _normalise_kind(obj.kind) not in kinds:
                continue
            if name is not None and obj.name != name:
                continue
            if namespace is not None and obj.namespace != namespace:
                continue
            if excluded is not None and obj.name == excluded:
                continue
            del self.objects[key]
            self.deleted.append(f"{obj.kind}/{obj.name}")
            if obj.kind.lower() == "namespace":
                self._drop_namespace_contents(obj.name)

    def list_namespaces(self) -> List[str]:
        return sorted(obj.name for obj in self.objects.values() if obj.kind.lower() == "namespace")

    def list_persistent_volumes(self, phase: Optional[str] = None) -> List[str]:
        return sorted(
            obj.name
            for obj in self.objects.values()
            if obj.kind.lower() == "persistentvolume" and (phase is None or obj.phase == phase)
        )

    def snapshot(self, kind: str, namespace: Optional[str] = None) -> str:
        wanted = _normalise_kind(kind)
        lines = ["NAMESPACE\tKIND\tNAME"]
        for obj in sorted(self.objects.values(), key=lambda o: (o.namespace or "", o.kind, o.name)):
            if wanted != "all" and _normalise_kind(obj.kind) != wanted:
                continue
            if namespace is not None and obj.namespace != namespace:
                continue
            lines.append(f"{obj.namespace or '-'}\t{obj.kind}\t{obj.name}")
        return "\n".join(lines)

    def _objects_from_source(self, resource: ResourceSpec) -> Iterable[SimulatedObject]:
        path = Path(resource.source)
        documents: List[dict] = []
        if path.is_file():
            try:
                text = path.read_text(encoding="utf-8")
                documents = [doc for doc in yaml.safe_load_all(text) if isinstance(doc, dict)]
            except yaml.YAMLError as exc:
                raise ApplyError(resource, f"error parsing {path.name}: {exc}") from exc
        for document in documents:
            metadata = document.get("metadata") if isinstance(document.get("metadata"), dict) else {}
            kind = document.get("kind")
            name = metadata.get("name")
            if not isinstance(kind, str) or not isinstance(name, str):
                continue
            labels = metadata.get("labels") if isinstance(metadata.get("labels"), dict) else {}
            yield SimulatedObject(
                kind=kind,
                name=name,
                namespace=metadata.get("namespace") or resource.namespace,
                labels={str(k): str(v) for k, v in labels.items()},
            )
        if not documents:
            yield SimulatedObject(
                kind=resource.kind,
                name=resource.name,
                namespace=resource.namespace,
                labels=parse_selector(resource.label_selector),
            )

    def _materialise_workload(self, obj: SimulatedObject) -> None:
        labels = dict(obj.labels) or {"app": obj.name}
        obj.conditions["Available"] = self.auto_ready
        pod = SimulatedObject(
            kind="Pod",
            name=f"{obj.name}-0",
            namespace=obj.namespace,
            labels=labels,
            conditions={"Ready": self.auto_ready},
            phase="Running" if self.auto_ready else "Pending",
        )
        self.add(pod)

    def _matching_pods(self, namespace: str, selector: str) -> List[SimulatedObject]:
        wanted = parse_selector(selector)
        return [
            obj
            for obj in self.objects.values()
            if obj.kind.lower() == "pod"
            and obj.namespace == namespace
            and all(obj.labels.get(k) == v for k, v in wanted.items())
        ]

    def _drop_namespace_contents(self, namespace: str) -> None:
        for key, obj in list(self.objects.items()):
            if obj.namespace == namespace:
                del self.objects[key]


def _key(kind: str, name: str, namespace: Optional[str]) -> Tuple[str, str, str]:
    normalised = _normalise_kind(kind)
    scope = "" if normalised in CLUSTER_SCOPED_KINDS else (namespace or "")
    return (normalised, scope, name)


def _normalise_kind(kind: str) -> str:
    lowered = kind.strip().lower()
    lowered = KIND_ALIASES.get(lowered, lowered)
    if lowered.endswith("ies"):
        return lowered[:-3] + "y"
    if lowered.endswith("sses"):
        return lowered[:-2]
    if lowered.endswith("s") and not lowered.endswith("ss"):
        return lowered[:-1]
    return lowered


def parse_selector(selector: str) -> Dict[str, str]:
    labels: Dict[str, str] = {}
    for part in selector.split(","):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        labels[key.strip()] = value.strip()
    return labels


__all__ = ["SimulatedClusterClient", "SimulatedObject", "parse_selector"]
