"""
Cluster store implementations.
"""

from .base import ClusterStore
from .kubernetes_store import KubernetesStore, label_selector, load_kube_config, translate_api_exception
from .memory import InMemoryStore

__all__ = [
    "ClusterStore",
    "InMemoryStore",
    "KubernetesStore",
    "label_selector",
    "load_kube_config",
    "translate_api_exception",
]
