"""
CRD management utilities for the PodSet operator.
"""

import logging
import time
from typing import Any, Dict, Optional

import kubernetes
from kubernetes.client.rest import ApiException

from .config import Config
from .health import set_component_health

LOG = logging.getLogger(__name__)

CRD_NAME = f"{Config.CRD_PLURAL}.{Config.CRD_GROUP}"


def podset_crd_manifest() -> Dict[str, Any]:
    """CustomResourceDefinition for PodSet with the status subresource"""
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": CRD_NAME},
        "spec": {
            "group": Config.CRD_GROUP,
            "scope": "Namespaced",
            "names": {
                "kind": Config.CRD_KIND,
                "listKind": f"{Config.CRD_KIND}List",
                "plural": Config.CRD_PLURAL,
                "singular": Config.CRD_KIND.lower(),
            },
            "versions": [
                {
                    "name": Config.CRD_VERSION,
                    "served": True,
                    "storage": True,
                    "subresources": {"status": {}},
                    "additionalPrinterColumns": [
                        {"name": "Replicas", "type": "integer", "jsonPath": ".spec.replicas"},
                        {"name": "Age", "type": "date", "jsonPath": ".metadata.creationTimestamp"},
                    ],
                    "schema": {
                        "openAPIV3Schema": {
                            "type": "object",
                            "properties": {
                                "spec": {
                                    "type": "object",
                                    "properties": {
                                        "replicas": {
                                            "type": "integer",
                                            "format": "int32",
                                            "minimum": 0,
                                            "description": "Desired number of live pods",
                                        },
                                    },
                                    "required": ["replicas"],
                                },
                                "status": {
                                    "type": "object",
                                    "properties": {
                                        "podNames": {
                                            "type": "array",
                                            "items": {"type": "string"},
                                            "description": "Names of Pending or Running pods",
                                        },
                                    },
                                },
                            },
                        }
                    },
                }
            ],
        },
    }


class CRDManager:
    """Manages CRD installation"""

    def __init__(self):
        self.extensions_api: Optional[kubernetes.client.ApiextensionsV1Api] = None

    def initialize(self, k8s_client: kubernetes.client.ApiClient):
        """Initialize CRD manager with Kubernetes client"""
        self.extensions_api = kubernetes.client.ApiextensionsV1Api(k8s_client)

    def install_crds(self) -> bool:
        """Install the PodSet CRD unless it is already present"""
        try:
            if self.crd_exists(CRD_NAME):
                LOG.info(f"CRD {CRD_NAME} already exists")
                set_component_health("crd_manager", True)
                return True

            LOG.info(f"Installing CRD {CRD_NAME}...")
            try:
                self.extensions_api.create_custom_resource_definition(body=podset_crd_manifest())
            except ApiException as e:
                # Someone else created it in the meantime
                if e.status != 409:
                    raise

            ready = self.wait_for_crd_ready(CRD_NAME)
            set_component_health("crd_manager", ready)
            return ready

        except ApiException as e:
            LOG.error(f"Failed to install CRDs: {e}")
            set_component_health("crd_manager", False)
            return False

    def crd_exists(self, crd_name: str) -> bool:
        """Check if a CRD exists"""
        try:
            self.extensions_api.read_custom_resource_definition(name=crd_name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def wait_for_crd_ready(self, crd_name: str, timeout: int = 60, interval: float = 1.0) -> bool:
        """Wait for CRD to be established"""
        LOG.info(f"Waiting for CRD {crd_name} to be ready...")
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            try:
                crd = self.extensions_api.read_custom_resource_definition(name=crd_name)
                conditions = (crd.status.conditions or []) if crd.status else []
                for condition in conditions:
                    if condition.type == "Established" and condition.status == "True":
                        LOG.info(f"CRD {crd_name} is ready")
                        return True
            except ApiException as e:
                LOG.warning(f"Error checking CRD status: {e}")
            time.sleep(interval)

        LOG.error(f"Timeout waiting for CRD {crd_name} to be ready")
        return False


# Global CRD manager instance
crd_manager = CRDManager()
