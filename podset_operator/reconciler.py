"""
PodSet reconcile loop.

One call to ``PodSetReconciler.reconcile`` performs a single convergence step
for one PodSet: it re-derives everything from the store, writes the status
snapshot if it changed, then scales down, scales up by one pod, or stops.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .config import Config
from .exceptions import NotFoundError, OwnerReferenceError, PodSetOperatorError, StoreError
from .metrics import PODS_CREATED, PODS_DELETED, STATUS_UPDATES
from .models import Container, ObjectKey, OwnerReference, Pod, PodSet, PodSetStatus
from .store import ClusterStore

LOG = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Tells the dispatcher whether to invoke reconcile again for the key"""
    requeue: bool = False
    error: Optional[Exception] = None


# ============================================================================
# Helpers
# ============================================================================

def pod_labels(podset_name: str) -> Dict[str, str]:
    """Labels correlating pods with their PodSet"""
    return {"app": podset_name, "version": Config.POD_VERSION_LABEL}


def available_pods(pods: Sequence[Pod]) -> List[Pod]:
    """Pods not marked for deletion and Pending or Running, in listing order"""
    return [pod for pod in pods if pod.is_live]


def compute_status(available: Sequence[Pod]) -> PodSetStatus:
    return PodSetStatus(pod_names=[pod.name for pod in available])


def select_pods_for_deletion(available: Sequence[Pod], count: int) -> List[Pod]:
    # No ordering guarantee beyond "some prefix of the listing"
    return list(available[:max(0, count)])


def new_pod_for_podset(podset: PodSet) -> Pod:
    """Placeholder pod template for a PodSet"""
    return Pod(
        generate_name=f"{podset.name}-pod-",
        namespace=podset.namespace,
        labels=pod_labels(podset.name),
        containers=[Container(name="busybox", image=Config.POD_IMAGE, command=list(Config.POD_COMMAND))],
    )


def set_controller_reference(owner: PodSet, pod: Pod) -> None:
    """Make ``owner`` the controlling owner of ``pod``.

    Raises OwnerReferenceError if the owner has no uid, lives in another
    namespace, or the pod is already controlled by a different object.
    """
    if not owner.uid:
        raise OwnerReferenceError(f"owner {owner.key} has no uid", {"pod": pod.generate_name or pod.name})
    if owner.namespace != pod.namespace:
        raise OwnerReferenceError(
            f"cross-namespace owner references are disallowed: owner {owner.key}, pod namespace {pod.namespace}"
        )

    reference = OwnerReference(
        api_version=owner.api_version,
        kind=owner.kind,
        name=owner.name,
        uid=owner.uid,
        controller=True,
        block_owner_deletion=True,
    )
    existing = pod.controller_reference()
    if existing is not None and existing.uid != reference.uid:
        raise OwnerReferenceError(
            f"pod {pod.name or pod.generate_name} is already controlled by {existing.kind} {existing.name}"
        )

    pod.owner_references = [ref for ref in pod.owner_references if ref.uid != reference.uid]
    pod.owner_references.append(reference)


# ============================================================================
# Reconciler
# ============================================================================

class PodSetReconciler:
    """Converges the live pods of a PodSet toward spec.replicas"""

    def __init__(self, store: ClusterStore):
        self.store = store

    def reconcile(self, key: ObjectKey) -> ReconcileResult:
        try:
            return self._reconcile(key)
        except PodSetOperatorError as e:
            LOG.error(f"Reconcile of PodSet '{key}' failed: {e}")
            return ReconcileResult(error=e)

    def _reconcile(self, key: ObjectKey) -> ReconcileResult:
        try:
            podset = self.store.get_podset(key)
        except NotFoundError:
            # Owned pods go away through owner references
            LOG.debug(f"PodSet '{key}' not found, nothing to do")
            return ReconcileResult()

        pods = self.store.list_pods(podset.namespace, pod_labels(podset.name))
        available = available_pods(pods)

        status = compute_status(available)
        if status != podset.status:
            self.store.update_podset_status(podset.with_status(status))
            STATUS_UPDATES.labels(namespace=podset.namespace).inc()
            LOG.debug(f"[{key}] Status updated: {status.pod_names}")

        current = len(available)
        desired = podset.spec.replicas

        if current > desired:
            LOG.info(f"[{key}] Scaling down: {current} available, {desired} required")
            return self._scale_down(podset, select_pods_for_deletion(available, current - desired))

        if current < desired:
            LOG.info(f"[{key}] Scaling up: {current} available, {desired} required")
            return self._scale_up(podset)

        return ReconcileResult()

    def _scale_down(self, podset: PodSet, victims: Sequence[Pod]) -> ReconcileResult:
        first_error = None
        for pod in victims:
            try:
                self.store.delete_pod(pod.namespace, pod.name)
            except NotFoundError:
                LOG.debug(f"[{podset.key}] Pod {pod.name} already gone")
            except StoreError as e:
                LOG.error(f"[{podset.key}] Failed to delete pod {pod.name}: {e}")
                if first_error is None:
                    first_error = e
            else:
                PODS_DELETED.labels(namespace=pod.namespace, reason="scale_down").inc()
                LOG.info(f"[{podset.key}] Deleted pod {pod.name}")
        return ReconcileResult(requeue=True, error=first_error)

    def _scale_up(self, podset: PodSet) -> ReconcileResult:
        pod = new_pod_for_podset(podset)
        set_controller_reference(podset, pod)
        created = self.store.create_pod(pod)
        PODS_CREATED.labels(namespace=podset.namespace).inc()
        LOG.info(f"[{podset.key}] Created pod {created.name}")
        return ReconcileResult(requeue=True)
