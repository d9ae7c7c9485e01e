import os

import pytest

from multikf.utils.async_command_runner import CommandError, CommandResult, ProcessRunner
from multikf.utils.ephemeral_file import ephemeral_manager


def test_check_returns_stdout():
    result = CommandResult(command=["kind", "get", "clusters"], stdout="m1", return_code=0)
    assert result.check() == "m1"


def test_check_reports_command_and_stderr():
    result = CommandResult(command=["kind", "create"], stderr="boom", return_code=2)
    with pytest.raises(CommandError) as excinfo:
        result.check()
    assert excinfo.value.return_code == 2
    assert "Command: kind create" in str(excinfo.value)
    assert "Stderr: boom" in str(excinfo.value)


def test_check_sensitive_hides_command():
    result = CommandResult(command=["secret-tool", "token"], stderr="nope", return_code=1)
    with pytest.raises(CommandError) as excinfo:
        result.check(sensitive=True)
    assert "secret-tool" not in str(excinfo.value)


def test_check_uses_error_parser():
    result = CommandResult(command=["x"], stderr="toomanyrequests", return_code=1)
    with pytest.raises(CommandError, match="^rate limited$"):
        result.check(error_parser=lambda s: "rate limited" if "toomany" in s else None)


@pytest.mark.asyncio
async def test_run_captures_output_and_exit_code(tmp_path):
    result = await ProcessRunner().run(
        ["sh", "-c", "pwd; echo err >&2; exit 3"], cwd=str(tmp_path)
    )
    assert result.return_code == 3
    assert os.path.realpath(result.stdout) == os.path.realpath(str(tmp_path))
    assert result.stderr == "err"
    assert not result.ok


@pytest.mark.asyncio
async def test_run_never_waits_on_stdin():
    result = await ProcessRunner().run(["sh", "-c", "cat; echo done"])
    assert result.ok
    assert result.stdout == "done"


@pytest.mark.asyncio
async def test_ephemeral_file_is_removed(tmp_path):
    async with ephemeral_manager("kubeconfig", parent_dir=str(tmp_path)) as path:
        with open(path, "w") as f:
            f.write("secret")
        assert os.path.isfile(path)
    assert not os.path.exists(path)
    assert os.listdir(tmp_path) == []


@pytest.mark.asyncio
async def test_ephemeral_file_rejects_paths():
    with pytest.raises(ValueError):
        async with ephemeral_manager("a/b"):
            pass
