"""
multikf/models/machine.py

Defines the immutable machine specification a guest machine is provisioned
from, plus the parsers the command layer uses to build its port and label
sequences from flag strings.
"""

from __future__ import annotations

import os
import re
from typing import Any, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from multikf.errors import ConfigurationError
from multikf.models.k8s import KindK8sVersion, default_version

# Lower-case DNS label: usable as a directory name, a kind cluster name and a
# container name prefix.
_MACHINE_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$")

DEFAULT_API_SERVER_IP = "0.0.0.0"
DEFAULT_API_SERVER_PORT = 6443


def _check_machine_name(name: str) -> str:
    if not _MACHINE_NAME_RE.match(name):
        raise ValueError(
            f"invalid machine name {name!r}: use lower-case letters, digits and '-'"
        )
    return name


def validate_machine_name(name: str) -> str:
    """Check that `name` is safe as a path component and a cluster name.

    Raises:
        ConfigurationError: If the name is not a lower-case DNS label.
    """
    try:
        return _check_machine_name(name)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


class ExportPortPair(BaseModel):
    """A host port published to a container port on the control-plane node."""

    model_config = ConfigDict(frozen=True)

    host_port: int = Field(..., ge=1, le=65535)
    container_port: int = Field(..., ge=1, le=65535)


class NodeLabel(BaseModel):
    """A kubelet node label attached to the control-plane node."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    value: str

    @field_validator("key", "value")
    @classmethod
    def validate_no_separators(cls, val: str) -> str:
        if any(c in val for c in ('"', "\n", ",", "=")):
            raise ValueError(f"node label part {val!r} contains a reserved character")
        return val


class MachineSpecification(BaseModel):
    """
    Everything needed to provision one guest machine and render its cluster
    configuration. Built once per command invocation and never mutated.

    Attributes:
        name: Machine name; also the state directory name and the cluster name.
        cpus: CPUs allocated to the guest (VM backend only).
        memory_gigabytes: Memory allocated to the guest (VM backend only).
        gpu_count: GPUs requested; any positive count enables GPU passthrough.
        api_server_ip: Address the Kubernetes API server binds to on the host.
        api_server_port: Port the Kubernetes API server binds to on the host.
        exported_ports: Host to container port mappings, rendered in order.
        worker_count: Number of worker nodes next to the control-plane.
        node_labels: Labels for the control-plane node, rendered in order,
            duplicate keys included.
        audit_enabled: Turn on API server audit logging.
        audit_policy_absolute_path: Host path of the audit policy file.
        local_path: Host directory mounted into every node, if non-empty.
        kubernetes_version: Pinned node image version and digest.
        force_overwrite: Overwrite previously rendered configuration files.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    cpus: int = Field(default=1, gt=0)
    memory_gigabytes: int = Field(default=1, gt=0)
    gpu_count: int = Field(default=0, ge=0)
    api_server_ip: str = DEFAULT_API_SERVER_IP
    api_server_port: int = Field(default=DEFAULT_API_SERVER_PORT, ge=1, le=65535)
    exported_ports: Tuple[ExportPortPair, ...] = ()
    worker_count: int = Field(default=0, ge=0)
    node_labels: Tuple[NodeLabel, ...] = ()
    audit_enabled: bool = False
    audit_policy_absolute_path: str = ""
    local_path: str = ""
    kubernetes_version: KindK8sVersion = Field(default_factory=default_version)
    force_overwrite: bool = False

    def __init__(__pydantic_self__, **data: Any) -> None:
        """Build a specification, reporting any invalid field as ConfigurationError."""
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(
                f"invalid machine specification: {exc}"
            ) from exc

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _check_machine_name(value)

    @model_validator(mode="after")
    def check_audit_policy(self) -> MachineSpecification:
        """Auditing requires an existing policy file given by absolute path."""
        if not self.audit_enabled:
            return self
        path = self.audit_policy_absolute_path
        if not path:
            raise ValueError("audit is enabled but no audit policy path was given")
        if not os.path.isabs(path):
            raise ValueError(f"audit policy path {path!r} is not absolute")
        if not os.path.isfile(path):
            raise ValueError(f"audit policy file {path!r} does not exist")
        return self

    @property
    def use_gpus(self) -> bool:
        return self.gpu_count > 0

    @property
    def memory_mebibytes(self) -> int:
        return self.memory_gigabytes * 1024


def parse_export_ports(raw: str) -> Tuple[ExportPortPair, ...]:
    """
    Parse "8443:443,8080:80" (host:container, comma separated) into port pairs.
    Whitespace around entries is ignored; an empty string yields no pairs.

    Raises:
        ConfigurationError: On any malformed entry.
    """
    pairs = []
    for entry in (e.strip() for e in raw.split(",")):
        if not entry:
            continue
        host, sep, container = entry.partition(":")
        if not sep or not host.isdigit() or not container.isdigit():
            raise ConfigurationError(
                f"invalid port mapping {entry!r}, expected hostPort:containerPort"
            )
        try:
            pairs.append(
                ExportPortPair(host_port=int(host), container_port=int(container))
            )
        except ValidationError as exc:
            raise ConfigurationError(f"invalid port mapping {entry!r}: {exc}") from exc
    return tuple(pairs)


def parse_node_labels(raw: str) -> Tuple[NodeLabel, ...]:
    """
    Parse "key1=value1,key2=value2" into node labels, keeping order and repeats.

    Raises:
        ConfigurationError: On any malformed entry.
    """
    labels = []
    for entry in (e.strip() for e in raw.split(",")):
        if not entry:
            continue
        key, sep, value = entry.partition("=")
        if not sep:
            raise ConfigurationError(f"invalid label {entry!r}, expected key=value")
        try:
            labels.append(NodeLabel(key=key.strip(), value=value.strip()))
        except ValidationError as exc:
            raise ConfigurationError(f"invalid label {entry!r}: {exc}") from exc
    return tuple(labels)
