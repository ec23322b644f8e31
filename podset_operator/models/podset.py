"""
PodSet custom resource and the pods it manages.

Models parse from and render to Kubernetes manifest dictionaries, so the same
types flow through the kubernetes client, kopf event bodies and the
in-memory store.
"""

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from ..config import Config
from ..exceptions import InvalidSpecError


class ObjectKey(NamedTuple):
    """Identity of a namespaced object; the reconcile request key"""
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class PodPhase(Enum):
    """Pod lifecycle phases"""
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'PodPhase':
        # A pod without a reported phase is not counted as live
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


LIVE_PHASES = frozenset({PodPhase.PENDING, PodPhase.RUNNING})


@dataclass
class OwnerReference:
    """Back-reference from a pod to the object that created it"""
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = False
    block_owner_deletion: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'OwnerReference':
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            uid=data.get("uid", ""),
            controller=bool(data.get("controller", False)),
            block_owner_deletion=bool(data.get("blockOwnerDeletion", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }


@dataclass
class Container:
    name: str
    image: str
    command: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Container':
        return cls(
            name=data.get("name", ""),
            image=data.get("image", ""),
            command=list(data.get("command") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        body = {"name": self.name, "image": self.image}
        if self.command:
            body["command"] = list(self.command)
        return body


@dataclass
class Pod:
    """A single workload instance"""
    name: str = ""
    namespace: str = ""
    generate_name: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    uid: Optional[str] = None
    deletion_timestamp: Optional[str] = None
    owner_references: List[OwnerReference] = field(default_factory=list)
    containers: List[Container] = field(default_factory=list)
    phase: PodPhase = PodPhase.PENDING

    @property
    def is_marked_for_deletion(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def is_live(self) -> bool:
        """Not being torn down, and Pending or Running"""
        return not self.is_marked_for_deletion and self.phase in LIVE_PHASES

    def controller_reference(self) -> Optional[OwnerReference]:
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None

    @classmethod
    def from_dict(cls, body: Mapping[str, Any]) -> 'Pod':
        metadata = body.get("metadata") or {}
        spec = body.get("spec") or {}
        status = body.get("status") or {}
        deletion_timestamp = metadata.get("deletionTimestamp")
        return cls(
            name=metadata.get("name") or "",
            namespace=metadata.get("namespace") or "",
            generate_name=metadata.get("generateName") or "",
            labels=dict(metadata.get("labels") or {}),
            uid=metadata.get("uid"),
            deletion_timestamp=str(deletion_timestamp) if deletion_timestamp else None,
            owner_references=[
                OwnerReference.from_dict(ref) for ref in metadata.get("ownerReferences") or []
            ],
            containers=[Container.from_dict(c) for c in spec.get("containers") or []],
            phase=PodPhase.parse(status.get("phase")),
        )

    def to_dict(self, include_status: bool = True) -> Dict[str, Any]:
        """Render as a manifest; without status it is a create request body"""
        metadata: Dict[str, Any] = {"namespace": self.namespace, "labels": dict(self.labels)}
        if self.name:
            metadata["name"] = self.name
        if self.generate_name:
            metadata["generateName"] = self.generate_name
        if self.owner_references:
            metadata["ownerReferences"] = [ref.to_dict() for ref in self.owner_references]

        body: Dict[str, Any] = {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": metadata,
            "spec": {"containers": [c.to_dict() for c in self.containers]},
        }
        if include_status:
            if self.uid:
                metadata["uid"] = self.uid
            if self.deletion_timestamp:
                metadata["deletionTimestamp"] = self.deletion_timestamp
            body["status"] = {"phase": self.phase.value}
        return body


@dataclass
class PodSetSpec:
    """Desired state declared by the user"""
    replicas: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'PodSetSpec':
        data = data or {}
        replicas = data.get("replicas", 0)
        if isinstance(replicas, bool) or not isinstance(replicas, int):
            raise InvalidSpecError(f"spec.replicas must be an integer, got {replicas!r}")
        if replicas < 0:
            raise InvalidSpecError(f"spec.replicas must be non-negative, got {replicas}")
        return cls(replicas=replicas)

    def to_dict(self) -> Dict[str, Any]:
        return {"replicas": self.replicas}


@dataclass(eq=False)
class PodSetStatus:
    """Observed state; recomputed from scratch on every reconcile.

    ``pod_names`` is None until a status has been written, so a new PodSet
    with no live pods still gets ``podNames: []`` recorded once.
    """
    pod_names: Optional[List[str]] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PodSetStatus):
            return NotImplemented
        # Order is significant, a missing list differs from an empty one
        if self.pod_names is None or other.pod_names is None:
            return self.pod_names is None and other.pod_names is None
        return list(self.pod_names) == list(other.pod_names)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'PodSetStatus':
        pod_names = (data or {}).get("podNames")
        return cls(pod_names=None if pod_names is None else list(pod_names))

    def to_dict(self) -> Dict[str, Any]:
        if self.pod_names is None:
            return {}
        return {"podNames": list(self.pod_names)}


@dataclass
class PodSet:
    """PodSet Custom Resource"""
    metadata: Dict[str, Any] = field(default_factory=dict)
    spec: PodSetSpec = field(default_factory=PodSetSpec)
    status: PodSetStatus = field(default_factory=PodSetStatus)
    api_version: str = field(default_factory=Config.api_version)
    kind: str = Config.CRD_KIND

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def uid(self) -> Optional[str]:
        return self.metadata.get("uid")

    @property
    def resource_version(self) -> Optional[str]:
        return self.metadata.get("resourceVersion")

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)

    def with_status(self, status: PodSetStatus) -> 'PodSet':
        return replace(self, metadata=copy.deepcopy(self.metadata), status=status)

    @classmethod
    def from_dict(cls, body: Mapping[str, Any]) -> 'PodSet':
        return cls(
            metadata=copy.deepcopy(dict(body.get("metadata") or {})),
            spec=PodSetSpec.from_dict(body.get("spec")),
            status=PodSetStatus.from_dict(body.get("status")),
            api_version=body.get("apiVersion") or Config.api_version(),
            kind=body.get("kind") or Config.CRD_KIND,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": copy.deepcopy(self.metadata),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }
