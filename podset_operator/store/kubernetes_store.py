"""
Cluster store backed by the official Kubernetes Python client.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

import urllib3
from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException

from ..config import Config
from ..exceptions import (
    ConflictError,
    ErrorContext,
    NotFoundError,
    StoreError,
    TransientStoreError,
)
from ..models import ObjectKey, Pod, PodSet
from .base import ClusterStore

LOG = logging.getLogger(__name__)


def load_kube_config():
    """Load in-cluster config, falling back to the local kubeconfig"""
    try:
        k8s_config.load_incluster_config()
        LOG.info("Loaded in-cluster Kubernetes config")
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()
        LOG.info("Loaded local Kubernetes config")


def label_selector(labels: Mapping[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in labels.items())


def translate_api_exception(exc: ApiException, message: str) -> StoreError:
    """Map an API error onto the store error taxonomy"""
    status = exc.status
    detail = f"{message}: {exc.status} {exc.reason}"
    if status == 404:
        return NotFoundError(detail, status=status)
    if status == 409:
        return ConflictError(detail, status=status)
    if status == 429 or (status is not None and status >= 500):
        return TransientStoreError(detail, status=status)
    return StoreError(detail, status=status)


class KubernetesStore(ClusterStore):
    """PodSets through CustomObjectsApi, pods through CoreV1Api"""

    def __init__(
        self,
        api_client: Optional[client.ApiClient] = None,
        request_timeout: float = Config.REQUEST_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
    ):
        super().__init__(cancel_event)
        self.api_client = api_client if api_client is not None else client.ApiClient()
        self.core_api = client.CoreV1Api(self.api_client)
        self.custom_api = client.CustomObjectsApi(self.api_client)
        self.request_timeout = request_timeout

    @classmethod
    def from_environment(cls, **kwargs) -> 'KubernetesStore':
        """Build a store from the ambient kubeconfig with client retries disabled"""
        load_kube_config()
        configuration = client.Configuration.get_default_copy()
        # Retrying is the dispatcher's job
        configuration.retries = 0
        return cls(client.ApiClient(configuration), **kwargs)

    def _call(self, operation: str, fn: Callable[..., Any], context: Dict[str, Any], **kwargs) -> Any:
        self.check_cancelled(operation)
        with ErrorContext(operation, component="kubernetes-store").add_context(**context):
            try:
                return fn(_request_timeout=self.request_timeout, **kwargs)
            except ApiException as e:
                raise translate_api_exception(e, f"{operation} failed") from e
            except (urllib3.exceptions.HTTPError, OSError) as e:
                raise TransientStoreError(f"{operation} failed: {e}") from e

    def _to_pod(self, obj: Any) -> Pod:
        return Pod.from_dict(self.api_client.sanitize_for_serialization(obj))

    def get_podset(self, key: ObjectKey) -> PodSet:
        body = self._call(
            "get_podset",
            self.custom_api.get_namespaced_custom_object,
            {"podset": str(key)},
            group=Config.CRD_GROUP,
            version=Config.CRD_VERSION,
            namespace=key.namespace,
            plural=Config.CRD_PLURAL,
            name=key.name,
        )
        return PodSet.from_dict(body)

    def update_podset_status(self, podset: PodSet) -> PodSet:
        body = self._call(
            "update_podset_status",
            self.custom_api.replace_namespaced_custom_object_status,
            {"podset": str(podset.key), "resource_version": podset.resource_version},
            group=Config.CRD_GROUP,
            version=Config.CRD_VERSION,
            namespace=podset.namespace,
            plural=Config.CRD_PLURAL,
            name=podset.name,
            body=podset.to_dict(),
        )
        return PodSet.from_dict(body)

    def list_pods(self, namespace: str, labels: Mapping[str, str]) -> List[Pod]:
        selector = label_selector(labels)
        pod_list = self._call(
            "list_pods",
            self.core_api.list_namespaced_pod,
            {"namespace": namespace, "selector": selector},
            namespace=namespace,
            label_selector=selector,
        )
        return [self._to_pod(item) for item in pod_list.items]

    def create_pod(self, pod: Pod) -> Pod:
        created = self._call(
            "create_pod",
            self.core_api.create_namespaced_pod,
            {"namespace": pod.namespace, "generate_name": pod.generate_name},
            namespace=pod.namespace,
            body=pod.to_dict(include_status=False),
        )
        return self._to_pod(created)

    def delete_pod(self, namespace: str, name: str) -> None:
        self._call(
            "delete_pod",
            self.core_api.delete_namespaced_pod,
            {"namespace": namespace, "pod": name},
            name=name,
            namespace=namespace,
        )
