"""
multikf/template/kind.py

Renders a MachineSpecification into the kind cluster configuration file that
`kind create cluster --config` consumes.

Rendering happens in two pure steps:
  1) build_kind_config(spec) decides which nodes, mounts, ports, labels and
     patches exist, producing a KindClusterConfig.
  2) serialize_kind_config(config) writes that model out line by line. The
     layout (key order, indentation, quoting, comments inside the audit patch)
     is fixed so the same specification always yields byte-identical text.
"""

from __future__ import annotations

from typing import List

from multikf.errors import ConfigurationError
from multikf.models.kind import (
    AUDIT_POLICY_CONTAINER_PATH,
    INGRESS_READY_LABEL,
    KIND_API_VERSION,
    KIND_KIND,
    LOCAL_PATH_CONTAINER_PATH,
    KindClusterConfig,
    KindMount,
    KindNetworking,
    KindNode,
    KindPortMapping,
    NodeRole,
)
from multikf.models.machine import MachineSpecification

KIND_CONFIG_FILENAME = "kind-config.yaml"

_AUDIT_PATCH = """\
  - |
    kind: ClusterConfiguration
    apiServer:
      # enable auditing flags on the API server
      extraArgs:
        audit-log-path: /var/log/kubernetes/kube-apiserver-audit.log
        audit-policy-file: /etc/kubernetes/policies/audit-policy.yaml
        audit-log-maxage: "30"
        audit-log-maxbackup: "10"
        audit-log-maxsize: "100"
      # mount new files / directories on the control plane
      extraVolumes:
        - name: audit-policies
          hostPath: /etc/kubernetes/policies
          mountPath: /etc/kubernetes/policies
          readOnly: true
          pathType: "DirectoryOrCreate"
        - name: "audit-logs"
          hostPath: "/var/log/kubernetes"
          mountPath: "/var/log/kubernetes"
          readOnly: false
          pathType: DirectoryOrCreate"""


def build_kind_config(spec: MachineSpecification) -> KindClusterConfig:
    """
    Decide the shape of the cluster document for `spec`.

    Raises:
        ConfigurationError: If auditing is enabled without a policy path.
    """
    if spec.audit_enabled and not spec.audit_policy_absolute_path:
        raise ConfigurationError(
            "audit is enabled but no audit policy path was given",
            operation="render",
            machine=spec.name,
        )

    image = spec.kubernetes_version.image
    local_mounts = (
        (KindMount(host_path=spec.local_path, container_path=LOCAL_PATH_CONTAINER_PATH),)
        if spec.local_path
        else ()
    )
    audit_mounts = (
        (
            KindMount(
                host_path=spec.audit_policy_absolute_path,
                container_path=AUDIT_POLICY_CONTAINER_PATH,
                read_only=True,
            ),
        )
        if spec.audit_enabled
        else ()
    )

    control_plane = KindNode(
        role=NodeRole.control_plane,
        image=image,
        gpus=spec.use_gpus,
        audit=spec.audit_enabled,
        node_labels=(INGRESS_READY_LABEL,)
        + tuple(f"{label.key}={label.value}" for label in spec.node_labels),
        port_mappings=tuple(
            KindPortMapping(container_port=p.container_port, host_port=p.host_port)
            for p in spec.exported_ports
        ),
        mounts=local_mounts + audit_mounts,
    )
    workers = tuple(
        KindNode(role=NodeRole.worker, image=image, gpus=spec.use_gpus, mounts=local_mounts)
        for _ in range(spec.worker_count)
    )
    return KindClusterConfig(
        name=spec.name,
        nodes=(control_plane,) + workers,
        networking=KindNetworking(
            api_server_address=spec.api_server_ip,
            api_server_port=spec.api_server_port,
        ),
    )


def _render_bool(value: bool) -> str:
    return "true" if value else "false"


def _node_lines(node: KindNode) -> List[str]:
    lines = [f"- role: {node.role.value}"]

    if node.audit or node.node_labels:
        lines.append("  kubeadmConfigPatches:")
        if node.audit:
            lines.extend(_AUDIT_PATCH.splitlines())
        lines.extend(
            [
                "  - |",
                "    kind: InitConfiguration",
                "    nodeRegistration:",
                "      kubeletExtraArgs:",
            ]
        )
        lines.extend(f'        node-labels: "{label}"' for label in node.node_labels)

    lines.append(f"  image: {node.image}")
    lines.append(f"  gpus: {_render_bool(node.gpus)}")

    if node.port_mappings:
        lines.append("  extraPortMappings:")
        for mapping in node.port_mappings:
            lines.extend(
                [
                    f"  - containerPort: {mapping.container_port}",
                    f"    hostPort: {mapping.host_port}",
                    f"    protocol: {mapping.protocol}",
                ]
            )

    if node.mounts:
        lines.append("  extraMounts:")
        for mount in node.mounts:
            lines.append(f"  - hostPath: {mount.host_path}")
            lines.append(f"    containerPath: {mount.container_path}")
            if mount.read_only:
                lines.append("    readOnly: true")

    return lines


def serialize_kind_config(config: KindClusterConfig) -> str:
    """Write the cluster document. Output starts with a blank line and ends with a newline."""
    lines = [
        "",
        f"kind: {KIND_KIND}",
        f"apiVersion: {KIND_API_VERSION}",
        f"name: {config.name}",
        "nodes:",
    ]
    for node in config.nodes:
        lines.extend(_node_lines(node))
    lines.extend(
        [
            "networking:",
            f"  apiServerAddress: {config.networking.api_server_address}",
            f"  apiServerPort: {config.networking.api_server_port}",
        ]
    )
    return "\n".join(lines) + "\n"


def render(spec: MachineSpecification) -> str:
    """Render `spec` as a kind cluster configuration document."""
    return serialize_kind_config(build_kind_config(spec))
