"""
Unit tests for the PodSet reconcile loop.

Runs the reconciler against the in-memory store and checks convergence,
idempotence, status fidelity and the failure semantics of each step.
"""

import pytest

from podset_operator.exceptions import (
    ConflictError,
    NotFoundError,
    OwnerReferenceError,
    ReconcileCancelledError,
    TransientStoreError,
)
from podset_operator.models import ObjectKey, OwnerReference, Pod, PodPhase, PodSetStatus
from podset_operator.reconciler import (
    ReconcileResult,
    available_pods,
    compute_status,
    new_pod_for_podset,
    pod_labels,
    select_pods_for_deletion,
    set_controller_reference,
)

from .conftest import NAMESPACE, make_podset_body, total_writes


def live_names(store, name="web"):
    return [p.name for p in store.list_pods(NAMESPACE, pod_labels(name)) if p.is_live]


class TestHelpers:
    """Test cases for the pure reconcile helpers."""

    def test_pod_labels(self):
        assert pod_labels("web") == {"app": "web", "version": "v0.1"}

    def test_available_pods_filters_and_keeps_order(self):
        pods = [
            Pod(name="a", phase=PodPhase.RUNNING),
            Pod(name="b", phase=PodPhase.SUCCEEDED),
            Pod(name="c", phase=PodPhase.PENDING),
            Pod(name="d", phase=PodPhase.RUNNING, deletion_timestamp="2024-01-01T00:00:00Z"),
            Pod(name="e", phase=PodPhase.FAILED),
            Pod(name="f", phase=PodPhase.UNKNOWN),
            Pod(name="g", phase=PodPhase.RUNNING),
        ]

        assert [p.name for p in available_pods(pods)] == ["a", "c", "g"]

    def test_pod_reported_without_phase_is_not_available(self):
        pod = Pod.from_dict({"metadata": {"name": "fresh", "namespace": NAMESPACE, "labels": pod_labels("web")}})
        assert available_pods([pod]) == []

    def test_compute_status_uses_listing_order(self):
        pods = [Pod(name="z"), Pod(name="a"), Pod(name="m")]
        assert compute_status(pods) == PodSetStatus(pod_names=["z", "a", "m"])

    def test_select_pods_for_deletion(self):
        pods = [Pod(name=str(i)) for i in range(5)]
        assert len(select_pods_for_deletion(pods, 3)) == 3
        assert select_pods_for_deletion(pods, 0) == []
        assert select_pods_for_deletion(pods, -1) == []

    def test_new_pod_template(self, podset):
        pod = new_pod_for_podset(podset)

        assert pod.name == ""
        assert pod.generate_name == "web-pod-"
        assert pod.namespace == NAMESPACE
        assert pod.labels == {"app": "web", "version": "v0.1"}
        assert len(pod.containers) == 1
        assert pod.containers[0].image == "busybox"
        assert pod.containers[0].command == ["sleep", "3600"]
        assert pod.owner_references == []

    def test_set_controller_reference(self, podset):
        pod = new_pod_for_podset(podset)
        set_controller_reference(podset, pod)
        # Setting it twice does not duplicate the reference
        set_controller_reference(podset, pod)

        assert len(pod.owner_references) == 1
        ref = pod.owner_references[0]
        assert ref.uid == podset.uid
        assert ref.kind == "PodSet"
        assert ref.name == "web"
        assert ref.api_version == "app.github.com/v1alpha1"
        assert ref.controller is True
        assert ref.block_owner_deletion is True

    def test_set_controller_reference_requires_uid(self, podset):
        podset.metadata.pop("uid")
        with pytest.raises(OwnerReferenceError):
            set_controller_reference(podset, new_pod_for_podset(podset))

    def test_set_controller_reference_rejects_cross_namespace(self, podset):
        pod = new_pod_for_podset(podset)
        pod.namespace = "other"
        with pytest.raises(OwnerReferenceError):
            set_controller_reference(podset, pod)

    def test_set_controller_reference_rejects_other_controller(self, podset):
        pod = new_pod_for_podset(podset)
        pod.owner_references.append(
            OwnerReference(api_version="apps/v1", kind="ReplicaSet", name="rs", uid="other-uid", controller=True)
        )
        with pytest.raises(OwnerReferenceError):
            set_controller_reference(podset, pod)


class TestReconcile:
    """Test cases for PodSetReconciler.reconcile."""

    def test_scale_up_from_zero_creates_one_pod_per_cycle(self, store, reconciler, podset):
        """Replicas=3 with no pods converges after three creates."""
        for expected in range(1, 4):
            result = reconciler.reconcile(podset.key)
            assert result == ReconcileResult(requeue=True, error=None)
            assert len(live_names(store)) == expected

        result = reconciler.reconcile(podset.key)

        assert result.requeue is False
        assert result.error is None
        stored = store.get_podset(podset.key)
        assert stored.status.pod_names == live_names(store)
        assert len(stored.status.pod_names) == 3

    def test_scale_down_deletes_all_surplus_in_one_cycle(self, store, reconciler, add_pods):
        podset = store.apply_podset(make_podset_body(replicas=2))
        add_pods(podset, 5)

        result = reconciler.reconcile(podset.key)

        assert result.requeue is True
        assert result.error is None
        assert len(live_names(store)) == 2

        result = reconciler.reconcile(podset.key)
        assert result == ReconcileResult()
        assert store.get_podset(podset.key).status.pod_names == live_names(store)

    def test_scale_to_zero(self, store, reconciler, add_pods):
        podset = store.apply_podset(make_podset_body(replicas=0))
        add_pods(podset, 3)

        reconciler.reconcile(podset.key)
        result = reconciler.reconcile(podset.key)

        assert result == ReconcileResult()
        assert live_names(store) == []
        assert store.get_podset(podset.key).status.pod_names == []

    def test_missing_podset_is_success_without_writes(self, reconciler, write_spies):
        result = reconciler.reconcile(ObjectKey(NAMESPACE, "gone"))

        assert result == ReconcileResult(requeue=False, error=None)
        assert total_writes(write_spies) == 0

    def test_status_conflict_aborts_before_scaling(self, store, reconciler, podset, add_pods, mocker):
        add_pods(podset, 1)
        create = mocker.spy(store, "create_pod")
        mocker.patch.object(
            store, "update_podset_status", side_effect=ConflictError("modified", status=409)
        )

        result = reconciler.reconcile(podset.key)

        assert isinstance(result.error, ConflictError)
        assert create.call_count == 0
        assert len(live_names(store)) == 1

    def test_stale_resource_version_is_a_conflict(self, store, reconciler, podset, add_pods, mocker):
        """A spec change between fetch and status write loses the race."""
        add_pods(podset, 1)
        original_list = store.list_pods

        def list_then_modify(namespace, labels):
            pods = original_list(namespace, labels)
            store.apply_podset(make_podset_body(replicas=5))
            return pods

        mocker.patch.object(store, "list_pods", side_effect=list_then_modify)

        result = reconciler.reconcile(podset.key)

        assert isinstance(result.error, ConflictError)
        assert len(store.pods(NAMESPACE)) == 1

    def test_empty_status_is_recorded_once(self, store, reconciler, write_spies):
        """A new PodSet with nothing to run still gets podNames: [] written."""
        podset = store.apply_podset(make_podset_body(replicas=0))
        assert store.get_podset(podset.key).status.pod_names is None

        assert reconciler.reconcile(podset.key) == ReconcileResult()

        assert store.get_podset(podset.key).to_dict()["status"] == {"podNames": []}
        assert write_spies["update_podset_status"].call_count == 1

        assert reconciler.reconcile(podset.key) == ReconcileResult()
        assert total_writes(write_spies) == 1

    def test_reconcile_is_idempotent(self, store, reconciler, podset, write_spies):
        while reconciler.reconcile(podset.key).requeue:
            pass
        writes = total_writes(write_spies)

        first = reconciler.reconcile(podset.key)
        second = reconciler.reconcile(podset.key)

        assert first == second == ReconcileResult()
        assert total_writes(write_spies) == writes

    def test_status_lists_only_live_pods_in_listing_order(self, store, reconciler, add_pods):
        podset = store.apply_podset(make_podset_body(replicas=6))
        pods = add_pods(podset, 6)
        store.set_pod_phase(NAMESPACE, pods[1].name, PodPhase.SUCCEEDED)
        store.set_pod_phase(NAMESPACE, pods[2].name, PodPhase.RUNNING)
        store.set_pod_phase(NAMESPACE, pods[3].name, PodPhase.FAILED)
        store.mark_pod_for_deletion(NAMESPACE, pods[4].name)

        reconciler.reconcile(podset.key)

        expected = [pods[0].name, pods[2].name, pods[5].name]
        assert store.get_podset(podset.key).status.pod_names == expected

    def test_pods_with_other_labels_or_namespace_are_ignored(self, store, reconciler, podset):
        store.create_pod(Pod(name="stranger", namespace=NAMESPACE, labels={"app": "web", "version": "v0.2"}))
        store.create_pod(Pod(name="elsewhere", namespace="other", labels={"app": "web", "version": "v0.1"}))

        reconciler.reconcile(podset.key)

        assert len(live_names(store)) == 1
        assert "stranger" not in store.get_podset(podset.key).status.pod_names

    def test_created_pods_are_owned_and_labeled(self, store, reconciler, podset):
        reconciler.reconcile(podset.key)

        (pod,) = store.pods(NAMESPACE)
        assert pod.name.startswith("web-pod-")
        assert pod.labels == {"app": "web", "version": "v0.1"}
        ref = pod.controller_reference()
        assert ref is not None
        assert ref.uid == podset.uid

    def test_created_names_are_unique(self, store, reconciler):
        podset = store.apply_podset(make_podset_body(replicas=10))
        while reconciler.reconcile(podset.key).requeue:
            pass

        names = [p.name for p in store.pods(NAMESPACE)]
        assert len(names) == 10
        assert len(set(names)) == 10

    def test_deleting_pods_are_replaced(self, store, reconciler, podset, add_pods):
        pods = add_pods(podset, 3)
        store.mark_pod_for_deletion(NAMESPACE, pods[0].name)

        result = reconciler.reconcile(podset.key)

        assert result.requeue is True
        assert len(live_names(store)) == 3

    def test_delete_failure_does_not_stop_other_deletions(self, store, reconciler, add_pods, mocker):
        podset = store.apply_podset(make_podset_body(replicas=1))
        pods = add_pods(podset, 5)
        failing = pods[1].name
        original_delete = store.delete_pod
        error = TransientStoreError("connection reset", status=503)

        def flaky_delete(namespace, name):
            if name == failing:
                raise error
            return original_delete(namespace, name)

        delete = mocker.patch.object(store, "delete_pod", side_effect=flaky_delete)

        result = reconciler.reconcile(podset.key)

        assert delete.call_count == 4
        assert result.requeue is True
        assert result.error is error
        assert len(live_names(store)) == 2
        assert failing in live_names(store)

    def test_first_delete_error_is_returned(self, store, reconciler, add_pods, mocker):
        podset = store.apply_podset(make_podset_body(replicas=0))
        add_pods(podset, 3)
        errors = [TransientStoreError("first", status=500), None, TransientStoreError("third", status=500)]
        original_delete = store.delete_pod

        def delete(namespace, name):
            err = errors.pop(0)
            if err is not None:
                raise err
            return original_delete(namespace, name)

        mocker.patch.object(store, "delete_pod", side_effect=delete)

        result = reconciler.reconcile(podset.key)

        assert str(result.error) == "first"
        assert len(live_names(store)) == 2

    def test_delete_not_found_counts_as_success(self, store, reconciler, add_pods, mocker):
        podset = store.apply_podset(make_podset_body(replicas=1))
        add_pods(podset, 3)
        mocker.patch.object(store, "delete_pod", side_effect=NotFoundError("gone", status=404))

        result = reconciler.reconcile(podset.key)

        assert result == ReconcileResult(requeue=True, error=None)

    def test_owner_reference_failure_aborts_create(self, store, reconciler, podset, mocker):
        broken = store.get_podset(podset.key)
        broken.metadata.pop("uid")
        mocker.patch.object(store, "get_podset", return_value=broken)
        create = mocker.spy(store, "create_pod")

        result = reconciler.reconcile(podset.key)

        assert isinstance(result.error, OwnerReferenceError)
        assert result.requeue is False
        assert create.call_count == 0

    def test_list_error_is_returned(self, store, reconciler, podset, mocker):
        mocker.patch.object(store, "list_pods", side_effect=TransientStoreError("timeout", status=504))

        result = reconciler.reconcile(podset.key)

        assert isinstance(result.error, TransientStoreError)
        assert store.pods(NAMESPACE) == []

    def test_create_error_is_returned(self, store, reconciler, podset, mocker):
        mocker.patch.object(store, "create_pod", side_effect=TransientStoreError("unavailable", status=503))

        result = reconciler.reconcile(podset.key)

        assert isinstance(result.error, TransientStoreError)
        assert result.requeue is False

    def test_cancelled_store_calls_abort_reconcile(self, store, reconciler, podset, write_spies):
        store.cancel_event.set()

        result = reconciler.reconcile(podset.key)

        assert isinstance(result.error, ReconcileCancelledError)
        assert store.pods(NAMESPACE) == []

    def test_cancellation_stops_scale_down_midway(self, store, reconciler, add_pods, mocker):
        podset = store.apply_podset(make_podset_body(replicas=0))
        add_pods(podset, 4)
        original_delete = store.delete_pod

        def delete_then_cancel(namespace, name):
            original_delete(namespace, name)
            store.cancel_event.set()

        mocker.patch.object(store, "delete_pod", side_effect=delete_then_cancel)

        result = reconciler.reconcile(podset.key)

        # The second call raises before reaching the store
        assert isinstance(result.error, ReconcileCancelledError)
        assert len(store.pods(NAMESPACE)) == 3
