"""
multikf/machine/docker.py

Container-based backend: each guest machine is a kind cluster whose nodes are
docker containers on the local host. Drives the `kind` and `docker` CLIs.
"""

from __future__ import annotations

import os
import logging
from typing import List, Optional

import aiofiles
import yaml
from pydantic import BaseModel, ValidationError

from multikf.errors import BackendExecutionError
from multikf.machine.base import GuestMachine, MachineCURDFactory
from multikf.models.guest import GpuInfo, MachineInfo, MachineState
from multikf.models.machine import MachineSpecification
from multikf.models.provisioner import Provisioner
from multikf.template.kind import KIND_CONFIG_FILENAME, render

logger = logging.getLogger(__name__)


def dockerhub_parser(stderr_str: str) -> Optional[str]:
    """Short message for Docker Hub rate limiting, else None."""
    lower = stderr_str.lower()
    if "429 too many requests" in lower or "toomanyrequests" in lower:
        return "Docker Hub rate limit encountered. Consider authenticating or upgrading."
    return None


class _RenderedNode(BaseModel):
    gpus: bool = False


class _RenderedNetworking(BaseModel):
    apiServerAddress: str
    apiServerPort: int


class _RenderedKindFile(BaseModel):
    nodes: List[_RenderedNode]
    networking: _RenderedNetworking


class DockerMachine(GuestMachine):
    """A kind cluster named after the machine."""

    backend = Provisioner.docker

    @property
    def node_container(self) -> str:
        return f"{self.name}-control-plane"

    @property
    def kind_config_path(self) -> str:
        return self.state_dir.file(KIND_CONFIG_FILENAME)

    async def _query_status(self) -> Optional[str]:
        result = await self.runner.run(
            ["docker", "inspect", "--format", "{{.State.Status}}", self.node_container]
        )
        if result.ok:
            return result.stdout.strip()
        if "no such object" in result.stderr.lower():
            return None
        raise BackendExecutionError(
            f"docker inspect failed: {result.stderr}",
            operation="status",
            machine=self.name,
            return_code=result.return_code,
        )

    def _state_from_status(self, status: str) -> MachineState:
        if status == "running":
            return MachineState.running
        if status in ("created", "restarting"):
            return MachineState.provisioning
        if status == "removing":
            return MachineState.destroying
        return MachineState.stopped

    async def _render_files(self, spec: MachineSpecification, *, overwrite: bool) -> None:
        path = await self.state_dir.write_file(
            KIND_CONFIG_FILENAME, render(spec), overwrite=overwrite
        )
        logger.debug("rendered %s", path)

    async def _create(self, *, replace: bool) -> None:
        if replace:
            await self._run(
                "up",
                ["kind", "delete", "cluster", "--name", self.name],
                stream=self.verbose,
            )
        await self._run(
            "up",
            ["kind", "create", "cluster", "--config", self.kind_config_path],
            stream=self.verbose,
            error_parser=dockerhub_parser,
        )

    async def _teardown(self, *, force: bool) -> None:
        # kind never prompts, so force changes nothing here
        await self._run(
            "destroy",
            ["kind", "delete", "cluster", "--name", self.name],
            stream=self.verbose,
        )

    async def _fetch_kubeconfig(self) -> str:
        return await self._run(
            "export", ["kind", "get", "kubeconfig", "--name", self.name], sensitive=True
        )

    async def _guest_exec(self, command: List[str]) -> str:
        return await self._run("info", ["docker", "exec", self.node_container, *command])

    async def _extra_info(self, info: MachineInfo) -> MachineInfo:
        """GPU flag and API endpoint, read back from the rendered configuration."""
        if not os.path.isfile(self.kind_config_path):
            return info
        async with aiofiles.open(self.kind_config_path, "r") as f:
            raw = yaml.safe_load(await f.read())
        try:
            rendered = _RenderedKindFile.model_validate(raw)
        except ValidationError as exc:
            logger.warning("cannot read %s: %s", self.kind_config_path, exc)
            return info
        net = rendered.networking
        return info.model_copy(
            update={
                "gpu_info": GpuInfo(enabled=bool(rendered.nodes) and rendered.nodes[0].gpus),
                "kube_api": f"{net.apiServerAddress}:{net.apiServerPort}",
            }
        )


class DockerMachines(MachineCURDFactory):
    """Factory for kind-on-docker guest machines."""

    backend = Provisioner.docker
    machine_class = DockerMachine
