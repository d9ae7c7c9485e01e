"""
multikf/machine/base.py

The uniform capability set every backend offers for guest machines:

  - GuestMachine: one machine, looked up by name. Implements the lifecycle
    (up, destroy, export_kubeconfig, info, portforward, get_pods) once, on top
    of a handful of backend hooks that drive the backend's native tool.
  - MachineCURDFactory: creates GuestMachine handles and enumerates the
    machines recorded under the root directory.

Command-level code only ever talks to these two classes, never to a concrete
backend.

Lifecycle state is never cached: every operation derives it again from the
state directory and, when that exists, from the backend itself. A missing state
directory means the machine is absent, without asking the backend.
"""

from __future__ import annotations

import os
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, List, Optional, Tuple, Type

import aiofiles

from multikf.errors import (
    BackendExecutionError,
    ConfigurationError,
    NotFoundError,
    StateConflictError,
)
from multikf.machine.state import StateDirectory, list_machine_names, write_guarded
from multikf.models.guest import STATUS_NOT_FOUND, MachineInfo, MachineState
from multikf.models.machine import MachineSpecification, validate_machine_name
from multikf.models.provisioner import Provisioner
from multikf.utils.async_command_runner import CommandError, ProcessRunner
from multikf.utils.ephemeral_file import ephemeral_manager
from multikf.utils.meminfo import CpuInfo, MemInfo, parse_cpu_count, parse_meminfo

logger = logging.getLogger(__name__)


class GuestMachine(ABC):
    """
    Handle to one guest machine.

    A handle built without a specification is read-only: it can be inspected,
    exported and destroyed, but not brought up.
    """

    backend: Provisioner

    def __init__(
        self,
        name: str,
        spec: Optional[MachineSpecification],
        *,
        root_dir: str,
        runner: ProcessRunner,
        verbose: bool = True,
    ) -> None:
        self.name = name
        self.spec = spec
        self.state_dir = StateDirectory(root_dir, name)
        self.runner = runner
        self.verbose = verbose

    @property
    def host_dir(self) -> str:
        return self.state_dir.path

    # ------------------------------------------------------------------
    # backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _query_status(self) -> Optional[str]:
        """Backend status string, or None when the backend has no such instance."""

    @abstractmethod
    def _state_from_status(self, status: str) -> MachineState:
        """Map a backend status string onto the lifecycle state."""

    @abstractmethod
    async def _render_files(self, spec: MachineSpecification, *, overwrite: bool) -> None:
        """Write the backend's configuration files into the state directory."""

    @abstractmethod
    async def _create(self, *, replace: bool) -> None:
        """Run the native creation command. `replace` means the backend still has the machine."""

    @abstractmethod
    async def _teardown(self, *, force: bool) -> None:
        """Run the native teardown command."""

    @abstractmethod
    async def _fetch_kubeconfig(self) -> str:
        """Live credentials of the cluster, verbatim."""

    @abstractmethod
    async def _guest_exec(self, command: List[str]) -> str:
        """Run `command` inside the guest (control-plane node) and return stdout."""

    async def _extra_info(self, info: MachineInfo) -> MachineInfo:
        """Backend-specific additions to a running machine's info."""
        return info

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        operation: str,
        command: List[str],
        *,
        cwd: Optional[str] = None,
        stream: bool = False,
        sensitive: bool = False,
        error_parser: Optional[Callable[[str], Optional[str]]] = None,
    ) -> str:
        """Run a native command once and return stdout; failures become BackendExecutionError."""
        result = await self.runner.run(command, cwd=cwd, stream=stream)
        try:
            return result.check(sensitive=sensitive, error_parser=error_parser)
        except CommandError as exc:
            raise BackendExecutionError(
                str(exc),
                operation=operation,
                machine=self.name,
                return_code=exc.return_code,
            ) from exc

    async def state(self) -> MachineState:
        """Current lifecycle state, queried live."""
        if not self.state_dir.exists():
            return MachineState.absent
        status = await self._query_status()
        if status is None:
            return MachineState.absent
        return self._state_from_status(status)

    async def _require_running(self, operation: str) -> None:
        current = await self.state()
        if current is not MachineState.running:
            raise NotFoundError(
                f"machine is {current.value}, it must be running",
                operation=operation,
                machine=self.name,
            )

    @asynccontextmanager
    async def kubeconfig_file(self) -> AsyncGenerator[str, None]:
        """
        Yield the path of a short-lived file holding the machine's live
        credentials; the file is removed on exit.
        """
        content = await self._fetch_kubeconfig()
        async with ephemeral_manager("kubeconfig", prefix="multikf-") as path:
            async with aiofiles.open(path, "w") as f:
                await f.write(content)
            yield path

    async def kubectl(self, operation: str, args: List[str]) -> str:
        """Run kubectl against the machine and return its stdout."""
        async with self.kubeconfig_file() as kubeconfig:
            return await self._run(operation, ["kubectl", "--kubeconfig", kubeconfig, *args])

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def up(self, force: bool = False) -> bool:
        """
        Provision the machine.

        A running machine is left untouched unless `force` is set. Otherwise the
        configuration is rendered again and the creation command run, replacing
        whatever instance the backend still has (running, stopped or half-created).
        The rendered files stay in place when the backend fails.

        Returns:
            bool: True if the backend was invoked, False if the machine was
            already running.

        Raises:
            ConfigurationError: On a read-only handle.
            StateConflictError: If rendered files exist and neither `force` nor
                the specification's force_overwrite is set.
            BackendExecutionError: If the native creation command fails.
        """
        if self.spec is None:
            raise ConfigurationError(
                "no machine specification given, handle is read-only",
                operation="up",
                machine=self.name,
            )

        current = await self.state()
        if current is MachineState.running and not force:
            logger.info("machine %s is already running, nothing to do", self.name)
            return False

        logger.info(
            "provisioning machine %s with %s in %s",
            self.name,
            self.backend.value,
            self.host_dir,
        )
        self.state_dir.create()
        try:
            await self._render_files(
                self.spec, overwrite=force or self.spec.force_overwrite
            )
        except StateConflictError as exc:
            raise StateConflictError(exc.detail, operation="up", machine=self.name) from exc

        await self._create(replace=current is not MachineState.absent)
        logger.info("machine %s is running", self.name)
        return True

    async def destroy(self, force: bool = False) -> None:
        """
        Tear the machine down and remove its state directory.

        An absent machine is a no-op: no backend command is run, and a stale
        state directory is removed. `force` skips the backend's confirmation
        prompt; backend errors are still raised.

        Raises:
            BackendExecutionError: If the native teardown command fails.
        """
        current = await self.state()
        if current is MachineState.absent:
            if self.state_dir.exists():
                logger.info("machine %s not found by backend, removing stale state", self.name)
                self.state_dir.remove()
            else:
                logger.info("machine %s does not exist, nothing to do", self.name)
            return

        logger.info("destroying machine %s", self.name)
        await self._teardown(force=force)
        self.state_dir.remove()
        logger.info("machine %s destroyed", self.name)

    async def export_kubeconfig(
        self, path: Optional[str] = None, overwrite: bool = False
    ) -> str:
        """
        Write the machine's live credentials to `path` (default: the
        `kubeconfig` file in the state directory).

        Returns:
            str: The path written.

        Raises:
            NotFoundError: If the machine is not running.
            StateConflictError: If `path` exists and `overwrite` is False.
        """
        target = path or self.state_dir.kubeconfig_path
        await self._require_running("export")
        content = await self._fetch_kubeconfig()
        try:
            await write_guarded(target, content, overwrite=overwrite)
        except StateConflictError as exc:
            raise StateConflictError(exc.detail, operation="export", machine=self.name) from exc
        logger.info("exported kubeconfig of %s to %s", self.name, target)
        return target

    async def info(self) -> MachineInfo:
        """
        Live status and resources. A machine the backend does not know is
        reported with status "not found" rather than raising.

        Raises:
            BackendExecutionError: If a probe of a running machine fails.
        """
        status = await self._query_status() if self.state_dir.exists() else None
        state = MachineState.absent if status is None else self._state_from_status(status)
        info = MachineInfo(
            name=self.name,
            host_dir=self.host_dir,
            backend=self.backend,
            state=state,
            status=status if status is not None else STATUS_NOT_FOUND,
            kubeconfig_exported=os.path.isfile(self.state_dir.kubeconfig_path),
        )
        if state is not MachineState.running:
            return info

        cpu_info, mem_info = await self._probe_resources()
        return await self._extra_info(
            info.model_copy(update={"cpu_info": cpu_info, "mem_info": mem_info})
        )

    async def _probe_resources(self) -> Tuple[CpuInfo, MemInfo]:
        nproc = await self._guest_exec(["nproc"])
        meminfo = await self._guest_exec(["cat", "/proc/meminfo"])
        try:
            return parse_cpu_count(nproc), parse_meminfo(meminfo)
        except ValueError as exc:
            raise BackendExecutionError(
                f"unparsable resource report: {exc}", operation="info", machine=self.name
            ) from exc

    async def get_pods(self, namespace: str = "") -> str:
        """
        List pods in `namespace`, or in all namespaces when it is empty.

        Raises:
            NotFoundError: If the machine is not running.
        """
        await self._require_running("get pods")
        scope = ["-n", namespace] if namespace else ["--all-namespaces"]
        return await self.kubectl("get pods", ["get", "pods", *scope])

    async def portforward(
        self,
        service: str,
        namespace: str,
        port: int,
        local_port: Optional[int] = None,
    ) -> int:
        """
        Forward `local_port` (default: `port`) on the host to `port` of
        `service`. Blocks until kubectl exits (normally on Ctrl-C).

        Returns:
            int: kubectl's exit code.

        Raises:
            NotFoundError: If the machine is not running.
        """
        await self._require_running("portforward")
        scope = ["-n", namespace] if namespace else []
        async with self.kubeconfig_file() as kubeconfig:
            command = [
                "kubectl",
                "--kubeconfig",
                kubeconfig,
                "port-forward",
                *scope,
                service,
                f"{local_port or port}:{port}",
            ]
            logger.info("forwarding localhost:%d to %s:%d", local_port or port, service, port)
            return await self.runner.run_interactive(command)


class MachineCURDFactory(ABC):
    """Creates and enumerates the guest machines of one backend."""

    backend: Provisioner
    machine_class: Type[GuestMachine]

    def __init__(
        self,
        root_dir: str,
        *,
        verbose: bool = True,
        runner: Optional[ProcessRunner] = None,
    ) -> None:
        self.root_dir = root_dir
        self.verbose = verbose
        self.runner = runner or ProcessRunner()

    def _check_spec(self, spec: MachineSpecification) -> None:
        """Reject specifications this backend cannot realize."""

    def new_machine(
        self, name: str, spec: Optional[MachineSpecification] = None
    ) -> GuestMachine:
        """
        Build a handle for machine `name`.

        Raises:
            ConfigurationError: If the name is invalid, disagrees with the
                specification, or the backend cannot realize the specification.
        """
        validate_machine_name(name)
        if spec is not None:
            if spec.name != name:
                raise ConfigurationError(
                    f"specification is for machine {spec.name!r}", machine=name
                )
            self._check_spec(spec)
        return self.machine_class(
            name,
            spec,
            root_dir=self.root_dir,
            runner=self.runner,
            verbose=self.verbose,
        )

    def list_machines(self) -> List[GuestMachine]:
        """Read-only handles for every machine directory under the root."""
        return [self.new_machine(name) for name in list_machine_names(self.root_dir)]
