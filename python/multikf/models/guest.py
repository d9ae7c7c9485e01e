"""
multikf/models/guest.py

Live facts about a guest machine, as reported by its backend. None of this is
persisted: every command queries it again.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from multikf.models.provisioner import Provisioner
from multikf.utils.meminfo import CpuInfo, MemInfo


class MachineState(str, Enum):
    """Lifecycle state of a guest machine."""

    absent = "absent"
    provisioning = "provisioning"
    running = "running"
    stopped = "stopped"
    destroying = "destroying"


STATUS_NOT_FOUND = "not found"


class GpuInfo(BaseModel):
    """Whether the machine was provisioned with GPU passthrough."""

    enabled: bool = False

    def info(self) -> str:
        return "on" if self.enabled else "off"


class MachineInfo(BaseModel):
    """
    Snapshot returned by GuestMachine.info().

    Attributes:
        name: Machine name.
        host_dir: The machine's state directory.
        backend: Which provisioner realizes the machine.
        state: Lifecycle state derived from `status`.
        status: Status string as reported by the backend, or "not found".
        kubeconfig_exported: True when credentials exist in the state directory.
        cpu_info: CPU count inside the guest, if it could be read.
        mem_info: Memory of the guest, if it could be read.
        gpu_info: GPU flag (container backend only).
        kube_api: API server endpoint "ip:port" (container backend only).
    """

    name: str
    host_dir: str
    backend: Provisioner
    state: MachineState
    status: str
    kubeconfig_exported: bool = False
    cpu_info: Optional[CpuInfo] = None
    mem_info: Optional[MemInfo] = None
    gpu_info: Optional[GpuInfo] = None
    kube_api: str = ""

    def to_row(self) -> dict:
        """Flatten into the row printed by `multikf list`."""
        return {
            "name": self.name,
            "dir": self.host_dir,
            "status": self.status,
            "gpus": self.gpu_info.info() if self.gpu_info else "",
            "kubeAPI": self.kube_api,
            "cpus": str(self.cpu_info.num_cpus) if self.cpu_info else "",
            "memory": (
                f"{self.mem_info.free()}/{self.mem_info.total()}"
                if self.mem_info
                else ""
            ),
        }
