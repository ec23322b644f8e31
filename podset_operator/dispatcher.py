"""
Worker pool feeding reconcile keys from the work queue to the reconciler.
"""

import logging
import threading
import time
from typing import Any, List, Mapping, Optional

from .config import Config, health_status
from .metrics import RECONCILE_DURATION, RECONCILE_TOTAL
from .models import ObjectKey, Pod
from .reconciler import PodSetReconciler, ReconcileResult
from .workqueue import WorkQueue

LOG = logging.getLogger(__name__)

# ============================================================================
# Event routing
# ============================================================================

def key_for_podset(body: Mapping[str, Any]) -> ObjectKey:
    metadata = body.get("metadata") or {}
    return ObjectKey(metadata.get("namespace", ""), metadata.get("name", ""))


def owner_key_for_pod(body: Mapping[str, Any]) -> Optional[ObjectKey]:
    """Key of the PodSet controlling this pod, if any"""
    pod = Pod.from_dict(body)
    ref = pod.controller_reference()
    if ref is None or ref.kind != Config.CRD_KIND:
        return None
    if ref.api_version.split("/")[0] != Config.CRD_GROUP:
        return None
    return ObjectKey(pod.namespace, ref.name)

# ============================================================================
# Dispatcher
# ============================================================================

class Dispatcher:
    """Runs ``workers`` threads, each reconciling one key at a time"""

    def __init__(self, reconciler: PodSetReconciler, queue: Optional[WorkQueue] = None,
                 workers: int = Config.WORKERS, cancel_event: Optional[threading.Event] = None):
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.reconciler = reconciler
        self.queue = queue if queue is not None else WorkQueue(maxsize=Config.QUEUE_MAXSIZE)
        self.workers = workers
        # Shared with the store so in-flight calls stop on shutdown
        self.cancel_event = cancel_event if cancel_event is not None else reconciler.store.cancel_event
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        for i in range(self.workers):
            thread = threading.Thread(target=self._worker, name=f"podset-worker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        health_status["dispatcher"] = True
        LOG.info(f"Dispatcher started with {self.workers} workers")

    def stop(self, timeout: Optional[float] = Config.SHUTDOWN_TIMEOUT) -> None:
        """Cancel in-flight reconciles, shut the queue down and join workers"""
        self.cancel_event.set()
        self.queue.shut_down()
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
            if thread.is_alive():
                LOG.warning(f"Worker {thread.name} did not stop within {timeout}s")
        self._threads = [t for t in self._threads if t.is_alive()]
        LOG.info("Dispatcher stopped")

    def enqueue(self, key: ObjectKey) -> None:
        self.queue.add(key)

    def _worker(self) -> None:
        while True:
            key = self.queue.get()
            if key is None:
                return
            try:
                self.process(key)
            finally:
                self.queue.done(key)

    def process(self, key: ObjectKey) -> ReconcileResult:
        """Reconcile one key and route the result back into the queue"""
        started = time.monotonic()
        try:
            result = self.reconciler.reconcile(key)
        except Exception as e:
            LOG.exception(f"Unexpected error reconciling '{key}'")
            result = ReconcileResult(error=e)
        finally:
            RECONCILE_DURATION.observe(time.monotonic() - started)

        if self.cancel_event.is_set():
            RECONCILE_TOTAL.labels(result="cancelled").inc()
            return result

        if result.error is not None:
            RECONCILE_TOTAL.labels(result="error").inc()
            self.queue.add_rate_limited(key)
        elif result.requeue:
            RECONCILE_TOTAL.labels(result="requeue").inc()
            self.queue.add_rate_limited(key)
        else:
            RECONCILE_TOTAL.labels(result="success").inc()
            self.queue.forget(key)
        return result
