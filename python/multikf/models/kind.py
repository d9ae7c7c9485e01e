"""
multikf/models/kind.py

Typed model of a kind cluster configuration (kind.x-k8s.io/v1alpha4), holding
exactly what multikf renders: one control-plane node, N workers and the API
server binding. Built from a MachineSpecification by multikf.template.kind.
"""

from __future__ import annotations

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict

KIND_API_VERSION = "kind.x-k8s.io/v1alpha4"
KIND_KIND = "Cluster"

INGRESS_READY_LABEL = "ingress-ready=true"
LOCAL_PATH_CONTAINER_PATH = "/var/local-path-provisioner"
AUDIT_POLICY_CONTAINER_PATH = "/etc/kubernetes/policies/audit-policy.yaml"


class NodeRole(str, Enum):
    control_plane = "control-plane"
    worker = "worker"


class KindMount(BaseModel):
    """A host path bind-mounted into a node container."""

    model_config = ConfigDict(frozen=True)

    host_path: str
    container_path: str
    read_only: bool = False


class KindPortMapping(BaseModel):
    """A host port published to a port of the node container."""

    model_config = ConfigDict(frozen=True)

    container_port: int
    host_port: int
    protocol: str = "TCP"


class KindNode(BaseModel):
    """
    One node of the cluster.

    Attributes:
        role: control-plane or worker.
        image: Pinned node image reference.
        gpus: GPU passthrough flag.
        audit: Patch the API server with audit logging (control-plane only).
        node_labels: "key=value" kubelet labels, in render order.
        port_mappings: Exported ports, in render order.
        mounts: Extra mounts, in render order.
    """

    model_config = ConfigDict(frozen=True)

    role: NodeRole
    image: str
    gpus: bool
    audit: bool = False
    node_labels: Tuple[str, ...] = ()
    port_mappings: Tuple[KindPortMapping, ...] = ()
    mounts: Tuple[KindMount, ...] = ()


class KindNetworking(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_server_address: str
    api_server_port: int


class KindClusterConfig(BaseModel):
    """The whole cluster document; nodes[0] is the control-plane."""

    model_config = ConfigDict(frozen=True)

    name: str
    nodes: Tuple[KindNode, ...]
    networking: KindNetworking

    @property
    def control_plane(self) -> KindNode:
        return self.nodes[0]

    @property
    def workers(self) -> Tuple[KindNode, ...]:
        return self.nodes[1:]
