"""Capability interface the orchestrator uses to talk to the cluster control plane."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from src.orchestrator.models import ResourceSpec


@dataclass(frozen=True)
class PodStatus:
    name: str
    phase: str
    ready: bool

    @property
    def running(self) -> bool:
        return self.phase == "Running"


class ClusterClient(ABC):
    """Every mutation is create-or-update or delete-if-present, so callers may repeat them."""

    @abstractmethod
    def current_context(self) -> str:
        """Return the active context name; raise ClusterConnectionError when unreachable."""

    @abstractmethod
    def apply(self, resource: ResourceSpec) -> str:
        """Apply the resource definition; raise ApplyError when the cluster rejects it."""

    @abstractmethod
    def get_condition(
        self, kind: str, name: str, namespace: Optional[str], condition_type: str
    ) -> Optional[bool]:
        """Return the named status condition, or None when the resource or condition is absent."""

    @abstractmethod
    def list_pods(self, namespace: str, selector: str) -> List[PodStatus]:
        ...

    @abstractmethod
    def exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    def delete(
        self,
        kind: str,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        *,
        field_selector: Optional[str] = None,
    ) -> None:
        """Delete one named resource, or every resource of ``kind`` when ``name`` is None."""

    @abstractmethod
    def list_namespaces(self) -> List[str]:
        ...

    @abstractmethod
    def list_persistent_volumes(self, phase: Optional[str] = None) -> List[str]:
        ...

    @abstractmethod
    def snapshot(self, kind: str, namespace: Optional[str] = None) -> str:
        """Human-readable listing used for post-run verification output."""


__all__ = ["ClusterClient", "PodStatus"]
