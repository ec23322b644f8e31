"""
Resource models for the PodSet operator.
"""

from .podset import (
    LIVE_PHASES,
    Container,
    ObjectKey,
    OwnerReference,
    Pod,
    PodPhase,
    PodSet,
    PodSetSpec,
    PodSetStatus,
)

__all__ = [
    "LIVE_PHASES",
    "Container",
    "ObjectKey",
    "OwnerReference",
    "Pod",
    "PodPhase",
    "PodSet",
    "PodSetSpec",
    "PodSetStatus",
]
