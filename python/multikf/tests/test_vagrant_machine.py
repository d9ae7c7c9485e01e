import os

import pytest

from multikf.errors import BackendExecutionError, ConfigurationError
from multikf.machine.vagrant import VagrantMachines, parse_machine_readable_state
from multikf.models.guest import MachineState
from multikf.models.machine import ExportPortPair, MachineSpecification
from multikf.template.kind import KIND_CONFIG_FILENAME
from multikf.template.vagrant import VAGRANTFILE_FILENAME, render_vagrantfile
from multikf.tests.conftest import KUBECONFIG, MEMINFO_RECORD

RUNNING = "1700000000,default,metadata,provider,virtualbox\n1700000000,default,state,running\n"
NOT_CREATED = "1700000000,default,state,not_created\n"


@pytest.fixture
def factory(root_dir, runner):
    return VagrantMachines(root_dir, verbose=False, runner=runner)


@pytest.fixture
def vm_spec():
    return MachineSpecification(
        name="vm1",
        cpus=1,
        memory_gigabytes=2,
        exported_ports=(ExportPortPair(host_port=8080, container_port=80),),
    )


def seed_vagrantfile(root_dir, name="vm1"):
    os.makedirs(os.path.join(root_dir, name), exist_ok=True)
    with open(os.path.join(root_dir, name, VAGRANTFILE_FILENAME), "w") as f:
        f.write("Vagrant.configure(\"2\") do |config|\nend\n")


def test_gpu_is_refused(factory):
    spec = MachineSpecification(name="vm1", gpu_count=1)
    with pytest.raises(ConfigurationError, match="gpu"):
        factory.new_machine("vm1", spec)


def test_parse_machine_readable_state():
    assert parse_machine_readable_state(RUNNING) == "running"
    assert parse_machine_readable_state("garbage") is None


@pytest.mark.asyncio
async def test_up_renders_both_files(factory, runner, root_dir, vm_spec):
    assert await factory.new_machine("vm1", vm_spec).up() is True

    state_dir = os.path.join(root_dir, "vm1")
    assert os.path.isfile(os.path.join(state_dir, KIND_CONFIG_FILENAME))
    with open(os.path.join(state_dir, VAGRANTFILE_FILENAME)) as f:
        assert f.read() == render_vagrantfile(vm_spec)
    assert runner.calls == [["vagrant", "up", "--provision"]]
    assert runner.cwds == [state_dir]


def test_vagrantfile_content(vm_spec):
    text = render_vagrantfile(vm_spec)
    assert "vb.cpus = 1" in text
    assert "vb.memory = 2048" in text
    assert 'config.vm.network "forwarded_port", guest: 8080, host: 8080' in text
    assert "kind create cluster --config /multikf/kind-config.yaml" in text
    assert "kind get clusters | grep -qx vm1" in text


@pytest.mark.asyncio
async def test_up_running_vm_is_noop(factory, runner, root_dir, vm_spec):
    seed_vagrantfile(root_dir)
    runner.on("vagrant", "status", stdout=RUNNING)

    assert await factory.new_machine("vm1", vm_spec).up() is False
    assert runner.calls == [["vagrant", "status", "--machine-readable"]]


@pytest.mark.asyncio
async def test_state_not_created(factory, runner, root_dir):
    seed_vagrantfile(root_dir)
    runner.on("vagrant", "status", stdout=NOT_CREATED)
    assert await factory.new_machine("vm1").state() is MachineState.absent


@pytest.mark.asyncio
async def test_state_poweroff(factory, runner, root_dir):
    seed_vagrantfile(root_dir)
    runner.on("vagrant", "status", stdout="1,default,state,poweroff\n")
    assert await factory.new_machine("vm1").state() is MachineState.stopped


@pytest.mark.asyncio
async def test_forced_destroy(factory, runner, root_dir):
    seed_vagrantfile(root_dir)
    runner.on("vagrant", "status", stdout=RUNNING)

    await factory.new_machine("vm1").destroy(force=True)

    assert runner.calls_starting("vagrant", "destroy") == [["vagrant", "destroy", "-f"]]
    assert runner.interactive_calls == []
    assert not os.path.exists(os.path.join(root_dir, "vm1"))


@pytest.mark.asyncio
async def test_destroy_prompts_without_force(factory, runner, root_dir):
    seed_vagrantfile(root_dir)
    runner.on("vagrant", "status", stdout=RUNNING)

    await factory.new_machine("vm1").destroy()

    assert runner.interactive_calls == [["vagrant", "destroy"]]


@pytest.mark.asyncio
async def test_declined_destroy_keeps_state(factory, runner, root_dir):
    seed_vagrantfile(root_dir)
    runner.on("vagrant", "status", stdout=RUNNING)
    runner.interactive_code = 1

    with pytest.raises(BackendExecutionError, match="exited with 1"):
        await factory.new_machine("vm1").destroy()
    assert os.path.isdir(os.path.join(root_dir, "vm1"))


@pytest.mark.asyncio
async def test_info_and_export(factory, runner, root_dir, tmp_path):
    seed_vagrantfile(root_dir)
    runner.on("vagrant", "status", stdout=RUNNING)
    runner.on("vagrant", "ssh", "-c", "nproc", stdout="2")
    runner.on("vagrant", "ssh", "-c", "cat /proc/meminfo", stdout=MEMINFO_RECORD)
    runner.on("vagrant", "ssh", "-c", "cat /home/vagrant/.kube/config", stdout=KUBECONFIG)
    machine = factory.new_machine("vm1")

    info = await machine.info()
    assert info.cpu_info.num_cpus == 2
    assert info.mem_info.free() == "1145.66 Mib"
    assert info.gpu_info is None

    target = tmp_path / "kubeconfig"
    await machine.export_kubeconfig(str(target))
    assert target.read_text() == KUBECONFIG
