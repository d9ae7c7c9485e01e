"""
multikf/machine/vagrant.py

VM-based backend: each guest machine is a vagrant VM, described by a
Vagrantfile in its state directory, that runs a kind cluster inside. All
vagrant commands run with the state directory as working directory.
"""

from __future__ import annotations

import os
import shlex
import logging
from typing import List, Optional

from multikf.errors import BackendExecutionError, ConfigurationError
from multikf.machine.base import GuestMachine, MachineCURDFactory
from multikf.models.guest import MachineState
from multikf.models.machine import MachineSpecification
from multikf.models.provisioner import Provisioner
from multikf.template.kind import KIND_CONFIG_FILENAME, render
from multikf.template.vagrant import VAGRANTFILE_FILENAME, render_vagrantfile
from multikf.utils.meminfo import host_cpu_info

logger = logging.getLogger(__name__)

GUEST_KUBECONFIG = "/home/vagrant/.kube/config"

_STOPPED_STATES = {"poweroff", "saved", "aborted", "shutoff", "stopped"}


def parse_machine_readable_state(output: str) -> Optional[str]:
    """
    Pull the state out of `vagrant status --machine-readable` output, whose
    lines look like `1700000000,default,state,running`.
    """
    for line in output.splitlines():
        fields = line.split(",")
        if len(fields) >= 4 and fields[2] == "state":
            return fields[3]
    return None


class VagrantMachine(GuestMachine):
    """A vagrant VM hosting a single kind cluster."""

    backend = Provisioner.vagrant

    async def _query_status(self) -> Optional[str]:
        if not os.path.isfile(self.state_dir.file(VAGRANTFILE_FILENAME)):
            return None
        output = await self._run(
            "status", ["vagrant", "status", "--machine-readable"], cwd=self.host_dir
        )
        state = parse_machine_readable_state(output)
        if state is None:
            raise BackendExecutionError(
                "vagrant status reported no machine state",
                operation="status",
                machine=self.name,
            )
        return None if state == "not_created" else state

    def _state_from_status(self, status: str) -> MachineState:
        if status == "running":
            return MachineState.running
        if status in _STOPPED_STATES:
            return MachineState.stopped
        return MachineState.provisioning

    async def _render_files(self, spec: MachineSpecification, *, overwrite: bool) -> None:
        await self.state_dir.write_file(KIND_CONFIG_FILENAME, render(spec), overwrite=overwrite)
        await self.state_dir.write_file(
            VAGRANTFILE_FILENAME, render_vagrantfile(spec), overwrite=overwrite
        )
        logger.debug("rendered kind configuration and Vagrantfile in %s", self.host_dir)

    async def _create(self, *, replace: bool) -> None:
        # provisioning is idempotent, so an existing VM is simply provisioned again
        await self._run(
            "up",
            ["vagrant", "up", "--provision"],
            cwd=self.host_dir,
            stream=self.verbose,
        )

    async def _teardown(self, *, force: bool) -> None:
        if force:
            await self._run(
                "destroy",
                ["vagrant", "destroy", "-f"],
                cwd=self.host_dir,
                stream=self.verbose,
            )
            return
        code = await self.runner.run_interactive(["vagrant", "destroy"], cwd=self.host_dir)
        if code != 0:
            raise BackendExecutionError(
                f"vagrant destroy exited with {code}",
                operation="destroy",
                machine=self.name,
                return_code=code,
            )

    async def _guest_exec(self, command: List[str]) -> str:
        return await self._run(
            "info",
            ["vagrant", "ssh", "-c", shlex.join(command)],
            cwd=self.host_dir,
        )

    async def _fetch_kubeconfig(self) -> str:
        return await self._run(
            "export",
            ["vagrant", "ssh", "-c", f"cat {GUEST_KUBECONFIG}"],
            cwd=self.host_dir,
            sensitive=True,
        )


class VagrantMachines(MachineCURDFactory):
    """Factory for vagrant-backed guest machines."""

    backend = Provisioner.vagrant
    machine_class = VagrantMachine

    def _check_spec(self, spec: MachineSpecification) -> None:
        if spec.gpu_count > 0:
            raise ConfigurationError(
                "vagrant machines do not support gpu passthrough", machine=spec.name
            )
        host_cpus = host_cpu_info().num_cpus
        if spec.cpus > host_cpus:
            logger.warning(
                "machine %s asks for %d cpus, the host has %d",
                spec.name,
                spec.cpus,
                host_cpus,
            )
