from abc import ABC, abstractmethod
import threading
from typing import List, Mapping, Optional

from ..exceptions import ReconcileCancelledError
from ..models import ObjectKey, Pod, PodSet


class ClusterStore(ABC):
    """CRUD surface the reconciler needs from the cluster.

    Every call is a blocking round trip. Implementations raise
    ``NotFoundError``, ``ConflictError``, ``TransientStoreError`` or
    ``StoreError`` and never retry internally. Once ``cancel_event`` is set,
    calls raise ``ReconcileCancelledError`` instead of reaching the cluster.
    """

    def __init__(self, cancel_event: Optional[threading.Event] = None):
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()

    def check_cancelled(self, operation: str) -> None:
        if self.cancel_event.is_set():
            raise ReconcileCancelledError(f"{operation} cancelled: operator is shutting down")

    @abstractmethod
    def get_podset(self, key: ObjectKey) -> PodSet:
        """Fetch a PodSet by key."""

    @abstractmethod
    def update_podset_status(self, podset: PodSet) -> PodSet:
        """Write ``podset.status`` through the status subresource.

        The write is conditioned on ``podset.resource_version``.
        """

    @abstractmethod
    def list_pods(self, namespace: str, labels: Mapping[str, str]) -> List[Pod]:
        """List pods in ``namespace`` carrying all of ``labels``."""

    @abstractmethod
    def create_pod(self, pod: Pod) -> Pod:
        """Create a pod; the store assigns the name suffix for ``generate_name``."""

    @abstractmethod
    def delete_pod(self, namespace: str, name: str) -> None:
        """Delete a pod."""
