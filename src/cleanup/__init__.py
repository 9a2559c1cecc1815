"""Cluster teardown helpers."""

from .cleanup import CleanupSummary, ClusterCleaner

__all__ = ["CleanupSummary", "ClusterCleaner"]
