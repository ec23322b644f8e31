"""
Main PodSet operator implementation.
"""

import logging
from typing import Any, Mapping, Optional

from .config import Config
from .crd import crd_manager
from .dispatcher import Dispatcher, key_for_podset, owner_key_for_pod
from .exceptions import ConfigurationError
from .garbage import collect_orphans
from .health import set_component_health
from .models import ObjectKey
from .reconciler import PodSetReconciler
from .store import ClusterStore, KubernetesStore
from .workqueue import ItemExponentialFailureRateLimiter, WorkQueue

LOG = logging.getLogger(__name__)

# ============================================================================
# Main Operator
# ============================================================================

class PodSetOperator:
    """Owns the store, reconciler, work queue and worker pool"""

    def __init__(self):
        self.store: Optional[ClusterStore] = None
        self.reconciler: Optional[PodSetReconciler] = None
        self.queue: Optional[WorkQueue] = None
        self.dispatcher: Optional[Dispatcher] = None

    @property
    def initialized(self) -> bool:
        return self.dispatcher is not None

    def initialize(self, store: Optional[ClusterStore] = None, workers: Optional[int] = None):
        """Build the pipeline and start the workers"""
        try:
            if store is None:
                store = KubernetesStore.from_environment()
                if Config.INSTALL_CRD:
                    crd_manager.initialize(store.api_client)
                    if not crd_manager.install_crds():
                        raise ConfigurationError("Failed to install the PodSet CRD")

            self.store = store
            self.reconciler = PodSetReconciler(store)
            self.queue = WorkQueue(
                maxsize=Config.QUEUE_MAXSIZE,
                rate_limiter=ItemExponentialFailureRateLimiter(
                    base_delay=Config.BACKOFF_BASE_DELAY,
                    max_delay=Config.BACKOFF_MAX_DELAY,
                ),
            )
            self.dispatcher = Dispatcher(
                self.reconciler, self.queue, workers if workers is not None else Config.WORKERS
            )
            self.dispatcher.start()

            set_component_health("kubernetes", True)
            LOG.info("PodSet operator pipeline ready")
        except Exception as e:
            LOG.error(f"Operator init failed: {e}")
            set_component_health("kubernetes", False)
            raise

    def enqueue(self, key: ObjectKey) -> None:
        if not self.initialized:
            LOG.warning(f"Dropping reconcile request for '{key}': operator not initialized")
            return
        self.dispatcher.enqueue(key)

    def handle_podset_event(self, event_type: Optional[str], body: Mapping[str, Any]) -> None:
        """Route a PodSet watch event to its own key"""
        key = key_for_podset(body)
        if event_type == "DELETED" and Config.ORPHAN_SWEEP_ENABLED and self.store is not None:
            uid = (body.get("metadata") or {}).get("uid")
            collect_orphans(self.store, key, owner_uid=uid)
        self.enqueue(key)

    def handle_pod_event(self, body: Mapping[str, Any]) -> None:
        """Route a pod watch event to the PodSet that controls it"""
        key = owner_key_for_pod(body)
        if key is not None:
            self.enqueue(key)

    def cleanup(self):
        """Stop the workers; in-flight store calls observe the cancellation"""
        if self.dispatcher is not None:
            self.dispatcher.stop()
            set_component_health("dispatcher", False)
        self.store = None
        self.reconciler = None
        self.queue = None
        self.dispatcher = None
        LOG.info("PodSet operator cleaned up")
