"""
Shared fixtures: a ProcessRunner double that records every command and
answers from canned responses, plus ready-made machine specifications.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from multikf.models.machine import MachineSpecification
from multikf.utils.async_command_runner import CommandResult, ProcessRunner

MEMINFO_RECORD = """\
MemTotal:        8041264 kB
MemFree:         1201312 kB
MemAvailable:    5012884 kB
Buffers:          201340 kB
Cached:          3411720 kB
SwapTotal:             0 kB
"""

KUBECONFIG = """\
apiVersion: v1
kind: Config
clusters:
- cluster:
    server: https://127.0.0.1:6443
  name: kind-m1"""


class FakeRunner(ProcessRunner):
    """
    Records commands instead of running them. Responses are matched by command
    prefix, the most recently registered match wins; anything unmatched
    succeeds with empty output.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.cwds: List[Optional[str]] = []
        self.interactive_calls: List[List[str]] = []
        self.interactive_code = 0
        self._responses: List[Tuple[Tuple[str, ...], str, str, int]] = []

    def on(
        self, *prefix: str, stdout: str = "", stderr: str = "", return_code: int = 0
    ) -> None:
        self._responses.append((prefix, stdout, stderr, return_code))

    async def run(self, command, *, cwd=None, stream=False):
        self.calls.append(list(command))
        self.cwds.append(cwd)
        for prefix, stdout, stderr, code in reversed(self._responses):
            if tuple(command[: len(prefix)]) == prefix:
                return CommandResult(
                    command=list(command),
                    stdout=stdout,
                    stderr=stderr,
                    return_code=code,
                )
        return CommandResult(command=list(command), return_code=0)

    async def run_interactive(self, command, *, cwd=None):
        self.interactive_calls.append(list(command))
        self.cwds.append(cwd)
        return self.interactive_code

    def calls_starting(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def root_dir(tmp_path) -> str:
    return str(tmp_path / "multikfdir")


@pytest.fixture
def spec() -> MachineSpecification:
    return MachineSpecification(
        name="m1",
        api_server_ip="1.2.3.4",
        api_server_port=8443,
        gpu_count=1,
    )


@pytest.fixture
def audit_policy(tmp_path) -> str:
    path = tmp_path / "audit-policy.yaml"
    path.write_text("apiVersion: audit.k8s.io/v1\nkind: Policy\n")
    return str(path)
