"""
Pytest configuration and shared fixtures for PodSet operator tests.
"""

import pytest
from typing import Any, Dict, List, Optional

from podset_operator.config import health_status
from podset_operator.models import Pod, PodSet
from podset_operator.reconciler import PodSetReconciler, new_pod_for_podset, set_controller_reference
from podset_operator.store import InMemoryStore

NAMESPACE = "default"


def make_podset_body(name: str = "web", replicas: int = 3, namespace: str = NAMESPACE,
                     pod_names: Optional[List[str]] = None) -> Dict[str, Any]:
    """Build a PodSet manifest as the API server would return it."""
    body = {
        "apiVersion": "app.github.com/v1alpha1",
        "kind": "PodSet",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"replicas": replicas},
    }
    if pod_names is not None:
        body["status"] = {"podNames": pod_names}
    return body


@pytest.fixture(autouse=True)
def reset_health_status():
    """Keep global health state from leaking between tests."""
    saved = dict(health_status)
    yield
    health_status.clear()
    health_status.update(saved)


@pytest.fixture
def store():
    """In-memory cluster store with deterministic name suffixes."""
    return InMemoryStore(seed=42)


@pytest.fixture
def reconciler(store):
    return PodSetReconciler(store)


@pytest.fixture
def podset(store) -> PodSet:
    """A PodSet named 'web' asking for 3 replicas."""
    return store.apply_podset(make_podset_body())


@pytest.fixture
def add_pods(store):
    """Factory creating pods owned by a PodSet, as the reconciler would."""
    def _add(owner: PodSet, count: int) -> List[Pod]:
        created = []
        for _ in range(count):
            pod = new_pod_for_podset(owner)
            set_controller_reference(owner, pod)
            created.append(store.create_pod(pod))
        return created
    return _add


@pytest.fixture
def write_spies(store, mocker):
    """Spies on every store write path."""
    return {
        "update_podset_status": mocker.spy(store, "update_podset_status"),
        "create_pod": mocker.spy(store, "create_pod"),
        "delete_pod": mocker.spy(store, "delete_pod"),
    }


def total_writes(spies) -> int:
    return sum(spy.call_count for spy in spies.values())
