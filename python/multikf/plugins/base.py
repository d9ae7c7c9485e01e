"""
multikf/plugins/base.py

Plugins install software onto a freshly provisioned guest machine. They run
after `up` succeeds, one at a time in the order requested. The first failure
stops the rest; the cluster is left running either way.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from multikf.errors import BackendExecutionError, MultikfError
from multikf.machine.base import GuestMachine

logger = logging.getLogger(__name__)


class Plugin(ABC):
    """Something that can be applied to a running guest machine."""

    name: str = "plugin"

    @abstractmethod
    async def apply(self, machine: GuestMachine) -> None:
        """
        Install onto `machine`.

        Raises:
            MultikfError: If installation fails.
        """
        pass


class ManifestPlugin(Plugin):
    """Applies a Kubernetes manifest (file, directory or URL) with kubectl."""

    def __init__(self, manifest: str, *, server_side: bool = False) -> None:
        self.manifest = manifest
        self.server_side = server_side
        self.name = f"manifest:{manifest}"

    async def apply(self, machine: GuestMachine) -> None:
        args = ["apply", "-f", self.manifest]
        if self.server_side:
            args.append("--server-side")
        output = await machine.kubectl("apply", args)
        logger.debug("%s", output)


async def add_plugins(machine: GuestMachine, plugins: Sequence[Plugin]) -> None:
    """
    Apply `plugins` to `machine` in order, stopping at the first failure.

    Raises:
        MultikfError: The failing plugin's own error, unchanged.
        BackendExecutionError: Wrapping any other error a plugin raised.
    """
    for plugin in plugins:
        logger.info("applying %s to %s", plugin.name, machine.name)
        try:
            await plugin.apply(machine)
        except MultikfError:
            raise
        except Exception as exc:
            raise BackendExecutionError(
                f"plugin {plugin.name} failed: {exc}",
                operation="add plugins",
                machine=machine.name,
            ) from exc
        logger.info("applied %s to %s", plugin.name, machine.name)
