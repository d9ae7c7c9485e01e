"""
multikf/utils/async_command_runner.py

Provides the process runner every backend uses to drive its native tool
(kind, docker, vagrant, kubectl). A runner takes a command, its arguments and
a working directory, and returns the captured stdout/stderr and exit code.
Backends receive a runner instance rather than spawning processes themselves,
so tests can hand in a recording double instead.

Commands are run exactly once. Provisioning and teardown are explicit user
actions, so a failure is returned to the caller as-is.

Usage example:
    from multikf.utils.async_command_runner import ProcessRunner, CommandError

    def dockerhub_parser(stderr_str: str) -> Optional[str]:
        lower = stderr_str.lower()
        if "toomanyrequests" in lower:
            return "Docker Hub rate limit encountered."
        return None

    runner = ProcessRunner()
    result = await runner.run(["kind", "get", "clusters"])
    try:
        result.check(error_parser=dockerhub_parser)
    except CommandError as err:
        print(f"Command failed: {err}")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Represents a failure when executing a shell command.

    Attributes:
        message (str): The error message describing the command failure.
        return_code (Optional[int]): The exit code if available.
    """

    def __init__(self, message: str, return_code: Optional[int] = None) -> None:
        """
        Initialize a CommandError.

        Args:
            message (str): The error message describing the command failure.
            return_code (Optional[int]): The exit code if known.
        """
        super().__init__(message)
        self.return_code = return_code


class CommandResult(BaseModel):
    """Outcome of one finished command.

    When the command was streamed to the terminal, stdout and stderr are empty.
    """

    command: List[str]
    stdout: str = ""
    stderr: str = ""
    return_code: int

    @property
    def ok(self) -> bool:
        return self.return_code == 0

    def check(
        self,
        *,
        sensitive: bool = False,
        error_parser: Optional[Callable[[str], Optional[str]]] = None,
    ) -> str:
        """
        Raise CommandError unless the command exited with 0.

        If `error_parser` is given, stderr is passed to it, and a non-None return
        value becomes the short error message. Otherwise the message carries the
        tool's own stderr (and the command line, unless `sensitive`).

        Returns:
            str: The captured stdout on success.
        """
        if self.ok:
            return self.stdout

        short_message = error_parser(self.stderr) if error_parser else None
        if short_message is not None:
            raise CommandError(short_message, self.return_code)

        detail = f"\nStderr: {self.stderr}" if self.stderr else ""
        if not sensitive:
            detail = f"\nCommand: {' '.join(self.command)}" + detail

        raise CommandError(
            f"Command failed with return code {self.return_code}.{detail}",
            self.return_code,
        )


class ProcessRunner:
    """Runs local commands in a subprocess, one at a time."""

    async def run(
        self,
        command: List[str],
        *,
        cwd: Optional[str] = None,
        stream: bool = False,
    ) -> CommandResult:
        """
        Execute a command and wait for it to finish.

        A non-zero exit code is not an error at this level: it is reported in the
        returned CommandResult and the caller decides what it means.

        Args:
            command (List[str]):
                The command and arguments to execute.
            cwd (Optional[str]):
                Working directory for the command.
            stream (bool):
                If True, the child inherits our stdout/stderr so the user sees the
                tool's progress; nothing is captured.

        Returns:
            CommandResult: Captured output and the exit code.
        """
        logger.debug("running %s (cwd=%s)", " ".join(command), cwd or ".")

        output = None if stream else asyncio.subprocess.PIPE

        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=output,
            stderr=output,
            cwd=cwd,
        )

        stdout_bytes, stderr_bytes = await proc.communicate()
        return_code = proc.returncode if proc.returncode is not None else -1

        return CommandResult(
            command=list(command),
            stdout=(stdout_bytes or b"").decode(errors="replace").strip(),
            stderr=(stderr_bytes or b"").decode(errors="replace").strip(),
            return_code=return_code,
        )

    async def run_interactive(
        self, command: List[str], *, cwd: Optional[str] = None
    ) -> int:
        """
        Launches the given command attached to local stdin/stdout/stderr.
        Returns the exit code on completion.

        Used for commands that prompt the user (e.g. confirmation prompts) or that
        run until interrupted (e.g. port-forwarding).

        Args:
            command: The command and arguments to run in interactive mode.
            cwd: Working directory for the command.

        Returns:
            The exit code of the child process.
        """
        logger.debug("running interactively %s", " ".join(command))
        proc = await asyncio.create_subprocess_exec(
            *command, stdin=None, stdout=None, stderr=None, cwd=cwd
        )
        return await proc.wait()
