import pytest

from multikf.errors import ConfigurationError
from multikf.machine.docker import DockerMachines
from multikf.machine.factory import new_machine_factory
from multikf.machine.vagrant import VagrantMachines
from multikf.models.provisioner import Provisioner, parse_provisioner
from multikf.models.settings import MultikfSettings


def test_parse_known_tokens():
    assert parse_provisioner("docker") is Provisioner.docker
    assert parse_provisioner(" Vagrant ") is Provisioner.vagrant
    assert parse_provisioner(Provisioner.docker) is Provisioner.docker


@pytest.mark.parametrize("token", ["", "kvm", "container", "dockers"])
def test_unknown_token_never_defaults(token, root_dir):
    with pytest.raises(ConfigurationError, match="unknown provisioner"):
        parse_provisioner(token)
    with pytest.raises(ConfigurationError):
        new_machine_factory(token, root_dir)


def test_factory_selects_backend(root_dir, runner):
    docker = new_machine_factory("docker", root_dir, verbose=False, runner=runner)
    vagrant = new_machine_factory(Provisioner.vagrant, root_dir, runner=runner)
    assert isinstance(docker, DockerMachines)
    assert isinstance(vagrant, VagrantMachines)
    assert docker.runner is runner
    assert not docker.verbose


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("MULTIKF_ROOT_DIR", "/tmp/clusters")
    monkeypatch.setenv("MULTIKF_PROVISIONER", "vagrant")
    monkeypatch.setenv("MULTIKF_VERBOSE", "false")
    settings = MultikfSettings()
    assert settings.root_dir == "/tmp/clusters"
    assert settings.provisioner is Provisioner.vagrant
    assert settings.verbose is False


def test_settings_defaults(monkeypatch):
    for var in ("MULTIKF_ROOT_DIR", "MULTIKF_PROVISIONER", "MULTIKF_VERBOSE"):
        monkeypatch.delenv(var, raising=False)
    settings = MultikfSettings()
    assert settings.root_dir == ".multikfdir"
    assert settings.provisioner is Provisioner.docker
    assert settings.verbose is True
