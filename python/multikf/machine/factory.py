"""
multikf/machine/factory.py

Picks the backend for a provisioner token. The set of backends is closed.
"""

from __future__ import annotations

from typing import Dict, Optional, Type, Union

from multikf.machine.base import MachineCURDFactory
from multikf.machine.docker import DockerMachines
from multikf.machine.vagrant import VagrantMachines
from multikf.models.provisioner import Provisioner, parse_provisioner
from multikf.utils.async_command_runner import ProcessRunner

_FACTORIES: Dict[Provisioner, Type[MachineCURDFactory]] = {
    Provisioner.docker: DockerMachines,
    Provisioner.vagrant: VagrantMachines,
}


def new_machine_factory(
    kind: Union[str, Provisioner],
    root_dir: str,
    verbose: bool = True,
    runner: Optional[ProcessRunner] = None,
) -> MachineCURDFactory:
    """
    Build the machine factory for provisioner `kind`.

    Raises:
        ConfigurationError: If `kind` is not a known provisioner.
    """
    provisioner = parse_provisioner(kind)
    return _FACTORIES[provisioner](root_dir, verbose=verbose, runner=runner)
