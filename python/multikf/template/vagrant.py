"""
multikf/template/vagrant.py

Renders the Vagrantfile for a VM-backed guest machine. The VM syncs the
machine's state directory to /multikf and, on first boot, installs docker,
kind and kubectl and creates the cluster from the kind configuration rendered
next to the Vagrantfile.
"""

from __future__ import annotations

import os
from typing import List

from multikf.models.machine import MachineSpecification
from multikf.template.kind import KIND_CONFIG_FILENAME

VAGRANTFILE_FILENAME = "Vagrantfile"
VAGRANT_BOX = "generic/ubuntu2204"
KIND_RELEASE = "v0.20.0"
GUEST_SYNC_DIR = "/multikf"

_PROVISION_SCRIPT = """\
set -euo pipefail
if ! command -v docker >/dev/null; then
  curl -fsSL https://get.docker.com | sh
  usermod -aG docker vagrant
fi
if ! command -v kind >/dev/null; then
  curl -fsSLo /usr/local/bin/kind https://kind.sigs.k8s.io/dl/{kind_release}/kind-linux-amd64
  chmod +x /usr/local/bin/kind
fi
if ! command -v kubectl >/dev/null; then
  curl -fsSLo /usr/local/bin/kubectl https://dl.k8s.io/release/{k8s_version}/bin/linux/amd64/kubectl
  chmod +x /usr/local/bin/kubectl
fi
if ! kind get clusters | grep -qx {name}; then
  kind create cluster --config {sync_dir}/{kind_config}
fi
mkdir -p /home/vagrant/.kube
kind get kubeconfig --name {name} > /home/vagrant/.kube/config
chown -R vagrant:vagrant /home/vagrant/.kube"""


def render_vagrantfile(spec: MachineSpecification) -> str:
    """Render the Vagrantfile for `spec`. Pure; the same spec gives the same text."""
    script = _PROVISION_SCRIPT.format(
        kind_release=KIND_RELEASE,
        k8s_version=spec.kubernetes_version.version,
        name=spec.name,
        sync_dir=GUEST_SYNC_DIR,
        kind_config=KIND_CONFIG_FILENAME,
    )
    synced: List[str] = [f'  config.vm.synced_folder ".", "{GUEST_SYNC_DIR}"']
    # kind inside the VM mounts these by their host paths
    if spec.local_path:
        synced.append(
            f'  config.vm.synced_folder "{spec.local_path}", "{spec.local_path}"'
        )
    if spec.audit_enabled:
        policy_dir = os.path.dirname(spec.audit_policy_absolute_path)
        synced.append(f'  config.vm.synced_folder "{policy_dir}", "{policy_dir}"')

    forwarded: List[str] = [
        f'  config.vm.network "forwarded_port", guest: {spec.api_server_port}, '
        f'host: {spec.api_server_port}, host_ip: "{spec.api_server_ip}"'
    ]
    forwarded.extend(
        f'  config.vm.network "forwarded_port", guest: {p.host_port}, host: {p.host_port}'
        for p in spec.exported_ports
    )

    lines = [
        "# -*- mode: ruby -*-",
        "# vi: set ft=ruby :",
        "",
        'Vagrant.configure("2") do |config|',
        f'  config.vm.box = "{VAGRANT_BOX}"',
        f'  config.vm.hostname = "{spec.name}"',
        *synced,
        *forwarded,
        '  config.vm.provider "virtualbox" do |vb|',
        f'    vb.name = "multikf-{spec.name}"',
        f"    vb.cpus = {spec.cpus}",
        f"    vb.memory = {spec.memory_mebibytes}",
        "  end",
        '  config.vm.provision "shell", inline: <<-SHELL',
        *(f"    {line}" for line in script.splitlines()),
        "  SHELL",
        "end",
    ]
    return "\n".join(lines) + "\n"
