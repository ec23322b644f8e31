"""
Orphan sweep for clusters without ownership-based garbage collection.

Kubernetes removes owned pods on its own once a PodSet is deleted; this is
only wired in when ORPHAN_SWEEP_ENABLED is set.
"""

import logging
from typing import List, Optional

from .config import Config
from .exceptions import NotFoundError
from .metrics import PODS_DELETED
from .models import ObjectKey
from .reconciler import pod_labels
from .store import ClusterStore

LOG = logging.getLogger(__name__)


def collect_orphans(store: ClusterStore, key: ObjectKey, owner_uid: Optional[str] = None) -> List[str]:
    """Delete pods whose controlling PodSet ``key`` no longer exists.

    ``owner_uid`` narrows the sweep to pods of one PodSet incarnation; when a
    PodSet with the same name exists, only pods owned by a different uid are
    orphans. Returns the names of the deleted pods. Store errors propagate.
    """
    try:
        live_uid = store.get_podset(key).uid
    except NotFoundError:
        live_uid = None

    deleted = []
    for pod in store.list_pods(key.namespace, pod_labels(key.name)):
        ref = pod.controller_reference()
        if ref is None or ref.kind != Config.CRD_KIND or ref.name != key.name:
            continue
        if live_uid is not None and ref.uid == live_uid:
            continue
        if owner_uid is not None and ref.uid != owner_uid:
            continue
        try:
            store.delete_pod(pod.namespace, pod.name)
        except NotFoundError:
            continue
        PODS_DELETED.labels(namespace=pod.namespace, reason="orphan").inc()
        deleted.append(pod.name)

    if deleted:
        LOG.info(f"Removed {len(deleted)} orphaned pods of PodSet '{key}': {deleted}")
    return deleted
