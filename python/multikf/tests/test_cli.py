import json
import os

import pytest

import multikf
from multikf.cli.main import build_parser, build_settings, build_specification, main
from multikf.errors import ConfigurationError
from multikf.models.provisioner import Provisioner


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("MULTIKF_ROOT_DIR", "MULTIKF_PROVISIONER", "MULTIKF_VERBOSE"):
        monkeypatch.delenv(var, raising=False)


def test_version(capsys):
    assert main(["version"]) == 0
    assert capsys.readouterr().out.strip() == f"multikf {multikf.__version__}"


def test_unknown_provisioner(capsys, tmp_path):
    assert main(["--provisioner", "kvm", "--dir", str(tmp_path), "list"]) == 1
    assert "unknown provisioner" in capsys.readouterr().err


def test_unknown_provisioner_from_environment(monkeypatch):
    monkeypatch.setenv("MULTIKF_PROVISIONER", "kvm")
    args = build_parser().parse_args(["list"])
    with pytest.raises(ConfigurationError):
        build_settings(args)


def test_flags_override_environment(monkeypatch):
    monkeypatch.setenv("MULTIKF_ROOT_DIR", "/from/env")
    args = build_parser().parse_args(
        ["--provisioner", "vagrant", "--no-verbose", "list"]
    )
    settings = build_settings(args)
    assert settings.root_dir == "/from/env"
    assert settings.provisioner is Provisioner.vagrant
    assert settings.verbose is False


def test_list_without_machines(capsys, tmp_path):
    assert main(["--dir", str(tmp_path / "missing"), "--no-verbose", "list"]) == 0
    assert json.loads(capsys.readouterr().out) == []


def test_delete_absent_machine(tmp_path):
    assert main(["--dir", str(tmp_path), "--no-verbose", "delete", "ghost"]) == 0


def test_export_absent_machine_fails(tmp_path):
    assert main(["--dir", str(tmp_path), "--no-verbose", "export", "ghost"]) == 1


def test_vagrant_refuses_gpus(tmp_path):
    argv = ["--dir", str(tmp_path), "--provisioner", "vagrant", "--no-verbose"]
    assert main(argv + ["add", "vm", "--use_gpus", "1"]) == 1
    assert not os.path.exists(tmp_path / "vm")


def test_build_specification(tmp_path):
    args = build_parser().parse_args(
        [
            "add",
            "dev",
            "--cpus",
            "2",
            "--export_ports",
            "8080:80,8443:443",
            "--with_labels",
            "a=b,a=c",
            "--with_workers",
            "2",
            "--use_localpath",
            str(tmp_path),
            "--with_k8s_version",
            "v1.23.12",
        ]
    )
    spec = build_specification(args)
    assert spec.name == "dev"
    assert spec.cpus == 2
    assert [p.host_port for p in spec.exported_ports] == [8080, 8443]
    assert [(l.key, l.value) for l in spec.node_labels] == [("a", "b"), ("a", "c")]
    assert spec.worker_count == 2
    assert spec.local_path == str(tmp_path)
    assert spec.kubernetes_version.version == "v1.23.12"
    assert not spec.audit_enabled


def test_build_specification_rejects_unknown_version():
    args = build_parser().parse_args(["add", "dev", "--with_k8s_version", "v9.9.9"])
    with pytest.raises(ConfigurationError, match="not catalogued"):
        build_specification(args)
