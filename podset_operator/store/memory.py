"""
In-process cluster store.

Behaves like the API server where the reconciler can observe it: generated
name suffixes, optimistic concurrency on status writes, deletion markers,
cascading deletion through owner references, and change notifications.
"""

import copy
import itertools
import logging
import random
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from ..exceptions import ConflictError, NotFoundError, StoreError
from ..models import ObjectKey, Pod, PodPhase, PodSet
from .base import ClusterStore

LOG = logging.getLogger(__name__)

# Same alphabet the API server uses for generateName suffixes
NAME_SUFFIX_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"
NAME_SUFFIX_LENGTH = 5

PODSET = "podset"
POD = "pod"

Listener = Callable[[str, str, Dict[str, Any]], None]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryStore(ClusterStore):
    """Thread-safe store holding PodSets and pods in memory.

    Pods are listed in creation order. Listeners receive
    ``(kind, event_type, body)`` after the lock is released.
    """

    def __init__(self, cancel_event: Optional[threading.Event] = None, seed: Optional[int] = None):
        super().__init__(cancel_event)
        self._lock = threading.RLock()
        self._podsets: Dict[ObjectKey, PodSet] = {}
        self._pods: Dict[ObjectKey, Pod] = {}
        self._versions = itertools.count(1)
        self._random = random.Random(seed)
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self, events: List[Tuple[str, str, Dict[str, Any]]]) -> None:
        for kind, event_type, body in events:
            for listener in list(self._listeners):
                listener(kind, event_type, body)

    # ------------------------------------------------------------------
    # ClusterStore
    # ------------------------------------------------------------------

    def get_podset(self, key: ObjectKey) -> PodSet:
        self.check_cancelled("get_podset")
        with self._lock:
            podset = self._podsets.get(key)
            if podset is None:
                raise NotFoundError(f"podset {key} not found", status=404)
            return copy.deepcopy(podset)

    def update_podset_status(self, podset: PodSet) -> PodSet:
        self.check_cancelled("update_podset_status")
        with self._lock:
            current = self._podsets.get(podset.key)
            if current is None:
                raise NotFoundError(f"podset {podset.key} not found", status=404)
            if podset.resource_version != current.resource_version:
                raise ConflictError(
                    f"podset {podset.key} was modified: resourceVersion "
                    f"{podset.resource_version} != {current.resource_version}",
                    status=409,
                )
            updated = current.with_status(copy.deepcopy(podset.status))
            updated.metadata["resourceVersion"] = str(next(self._versions))
            self._podsets[podset.key] = updated
            event = (PODSET, "MODIFIED", updated.to_dict())
            result = copy.deepcopy(updated)
        self._emit([event])
        return result

    def list_pods(self, namespace: str, labels: Mapping[str, str]) -> List[Pod]:
        self.check_cancelled("list_pods")
        with self._lock:
            return [
                copy.deepcopy(pod)
                for pod in self._pods.values()
                if pod.namespace == namespace
                and all(pod.labels.get(k) == v for k, v in labels.items())
            ]

    def create_pod(self, pod: Pod) -> Pod:
        self.check_cancelled("create_pod")
        if not pod.namespace:
            raise StoreError("pod namespace is required", status=422)
        with self._lock:
            created = copy.deepcopy(pod)
            if not created.name:
                if not created.generate_name:
                    raise StoreError("pod name or generateName is required", status=422)
                created.name = self._generate_name(created.namespace, created.generate_name)
            key = ObjectKey(created.namespace, created.name)
            if key in self._pods:
                raise ConflictError(f"pod {key} already exists", status=409)
            created.uid = str(uuid.uuid4())
            created.phase = PodPhase.PENDING
            created.deletion_timestamp = None
            self._pods[key] = created
            event = (POD, "ADDED", created.to_dict())
            result = copy.deepcopy(created)
        self._emit([event])
        return result

    def delete_pod(self, namespace: str, name: str) -> None:
        self.check_cancelled("delete_pod")
        key = ObjectKey(namespace, name)
        with self._lock:
            pod = self._pods.pop(key, None)
            if pod is None:
                raise NotFoundError(f"pod {key} not found", status=404)
            event = (POD, "DELETED", pod.to_dict())
        self._emit([event])

    def _generate_name(self, namespace: str, prefix: str) -> str:
        while True:
            suffix = "".join(self._random.choice(NAME_SUFFIX_ALPHABET) for _ in range(NAME_SUFFIX_LENGTH))
            name = f"{prefix}{suffix}"
            if ObjectKey(namespace, name) not in self._pods:
                return name

    # ------------------------------------------------------------------
    # Cluster-side actions (users, kubelet, garbage collector)
    # ------------------------------------------------------------------

    def apply_podset(self, podset: Union[PodSet, Mapping[str, Any]]) -> PodSet:
        """Create a PodSet, or replace the spec of an existing one"""
        if not isinstance(podset, PodSet):
            podset = PodSet.from_dict(podset)
        with self._lock:
            current = self._podsets.get(podset.key)
            if current is None:
                stored = copy.deepcopy(podset)
                stored.metadata.setdefault("uid", str(uuid.uuid4()))
                event_type = "ADDED"
            else:
                stored = copy.deepcopy(current)
                stored.spec = copy.deepcopy(podset.spec)
                event_type = "MODIFIED"
            stored.metadata["resourceVersion"] = str(next(self._versions))
            self._podsets[stored.key] = stored
            event = (PODSET, event_type, stored.to_dict())
            result = copy.deepcopy(stored)
        self._emit([event])
        return result

    def delete_podset(self, key: ObjectKey, cascade: bool = True) -> List[str]:
        """Delete a PodSet; with ``cascade`` also delete the pods it owns.

        Returns the names of the pods removed by the cascade.
        """
        with self._lock:
            podset = self._podsets.pop(key, None)
            if podset is None:
                raise NotFoundError(f"podset {key} not found", status=404)
            events = [(PODSET, "DELETED", podset.to_dict())]
            removed = []
            if cascade:
                for pod_key, pod in list(self._pods.items()):
                    if any(ref.uid == podset.uid for ref in pod.owner_references):
                        del self._pods[pod_key]
                        removed.append(pod.name)
                        events.append((POD, "DELETED", pod.to_dict()))
        LOG.debug(f"Garbage collected {len(removed)} pods owned by {key}")
        self._emit(events)
        return removed

    def set_pod_phase(self, namespace: str, name: str, phase: PodPhase) -> Pod:
        return self._modify_pod(namespace, name, lambda pod: setattr(pod, "phase", phase))

    def mark_pod_for_deletion(self, namespace: str, name: str) -> Pod:
        return self._modify_pod(namespace, name, lambda pod: setattr(pod, "deletion_timestamp", _now()))

    def _modify_pod(self, namespace: str, name: str, change: Callable[[Pod], None]) -> Pod:
        key = ObjectKey(namespace, name)
        with self._lock:
            pod = self._pods.get(key)
            if pod is None:
                raise NotFoundError(f"pod {key} not found", status=404)
            change(pod)
            event = (POD, "MODIFIED", pod.to_dict())
            result = copy.deepcopy(pod)
        self._emit([event])
        return result

    def pods(self, namespace: Optional[str] = None) -> List[Pod]:
        """Snapshot of all pods, optionally limited to one namespace"""
        with self._lock:
            return [
                copy.deepcopy(pod) for pod in self._pods.values()
                if namespace is None or pod.namespace == namespace
            ]
