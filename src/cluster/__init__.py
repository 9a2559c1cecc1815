"""Cluster access: the ClusterClient interface, a kubectl backend and an in-memory simulation."""

from .client import ClusterClient, PodStatus
from .kubectl import KubectlClient
from .simulated import SimulatedClusterClient, SimulatedObject

__all__ = [
    "ClusterClient",
    "KubectlClient",
    "PodStatus",
    "SimulatedClusterClient",
    "SimulatedObject",
]
