"""
PodSet Operator

Keeps the number of live pods of each PodSet equal to its declared replicas.
"""

__version__ = "0.1.0"

from .models import ObjectKey, Pod, PodPhase, PodSet, PodSetSpec, PodSetStatus
from .reconciler import PodSetReconciler, ReconcileResult
from .store import ClusterStore, InMemoryStore, KubernetesStore

__all__ = [
    "ClusterStore",
    "InMemoryStore",
    "KubernetesStore",
    "ObjectKey",
    "Pod",
    "PodPhase",
    "PodSet",
    "PodSetReconciler",
    "PodSetSpec",
    "PodSetStatus",
    "ReconcileResult",
]
