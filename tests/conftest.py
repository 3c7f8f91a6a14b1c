"""Shared fakes and fixtures: in-memory hypervisor, key store and image cache."""

import argparse
from pathlib import Path

import pytest

from createvm.hypervisor import HypervisorClient
from createvm.images import ImageCache
from createvm.models import HostCapabilities, NetworkConfig, VmRequest
from createvm.proxmox_utils import HypervisorCommandError
from createvm.ssh_keys import KeyStore


IMPORT_OK = (
    "importing disk '/var/lib/vz/template/iso/ubuntu-24.04-server-cloudimg-amd64.img' to VM 105 ...\n"
    "transferred 3.5 GiB of 3.5 GiB (100.00%)\n"
    "Successfully imported disk as 'unused0:local-lvm:vm-105-disk-0'\n"
)


class FakeHypervisorClient(HypervisorClient):
    """Records every call; fail_on names a method that raises HypervisorCommandError"""

    def __init__(self, capabilities=None, vms=None, import_output=IMPORT_OK, fail_on=None):
        self.capabilities = capabilities or HostCapabilities(
            node='pve', max_ram_gb=16, max_cores=8, storages=('local', 'local-lvm'),
        )
        self.vms = dict(vms or {})
        self.import_output = import_output
        self.fail_on = fail_on
        self.calls = []

    def _record(self, method, *args):
        self.calls.append((method,) + args)
        if method == self.fail_on:
            raise HypervisorCommandError(f"{method} failed")

    @property
    def methods(self):
        return [call[0] for call in self.calls]

    @property
    def write_calls(self):
        return [call for call in self.calls if call[0] not in ('get_host_capabilities',)]

    def get_host_capabilities(self):
        self._record('get_host_capabilities')
        return self.capabilities

    def existing_vm_ids(self):
        return set(self.vms)

    def existing_vm_names(self):
        return set(self.vms.values())

    def create_vm(self, vmid, name, memory_mb, cores, cpu_type, bridge):
        self._record('create_vm', vmid, name, memory_mb, cores, cpu_type, bridge)
        self.vms[vmid] = name

    def import_disk(self, vmid, image_path, storage):
        self._record('import_disk', vmid, image_path, storage)
        return self.import_output

    def attach_disk(self, vmid, disk_id):
        self._record('attach_disk', vmid, disk_id)

    def set_boot_disk(self, vmid, disk='scsi0'):
        self._record('set_boot_disk', vmid, disk)

    def add_cloudinit_drive(self, vmid, storage):
        self._record('add_cloudinit_drive', vmid, storage)

    def resize_disk(self, vmid, disk, size):
        self._record('resize_disk', vmid, disk, size)

    def set_cloudinit_user(self, vmid, user, password):
        self._record('set_cloudinit_user', vmid, user, password)

    def set_ssh_public_key(self, vmid, public_key_path):
        self._record('set_ssh_public_key', vmid, public_key_path)

    def enable_package_upgrade(self, vmid):
        self._record('enable_package_upgrade', vmid)

    def set_ipconfig(self, vmid, ipconfig):
        self._record('set_ipconfig', vmid, ipconfig)

    def set_nameserver(self, vmid, nameserver):
        self._record('set_nameserver', vmid, nameserver)

    def destroy_vm(self, vmid):
        self._record('destroy_vm', vmid)
        self.vms.pop(vmid, None)


class InMemoryKeyStore(KeyStore):
    """Keys as name -> set of present files ('private', 'public')"""

    def __init__(self, keys=None):
        self.keys = {name: set(files) for name, files in (keys or {}).items()}
        self.generated = []

    def list_available_keys(self):
        return sorted(name for name in self.keys if self.has_key(name))

    def has_key(self, name):
        return self.keys.get(name) == {'private', 'public'}

    def exists(self, name):
        return name in self.keys

    def public_key_path(self, name):
        return Path(f"/keys/{name}/id_{name}.pub")

    def generate_key(self, name):
        self.keys[name] = {'private', 'public'}
        self.generated.append(name)
        return self.public_key_path(name)


class InMemoryImageCache(ImageCache):

    def __init__(self, cached=()):
        self.files = set(cached)
        self.downloads = []

    def path_for(self, filename):
        return Path('/cache') / filename

    def contains(self, filename):
        return filename in self.files

    def download(self, url, filename):
        self.downloads.append(url)
        self.files.add(filename)
        return self.path_for(filename)


@pytest.fixture
def hypervisor():
    return FakeHypervisorClient()


@pytest.fixture
def key_store():
    return InMemoryKeyStore({'ops': {'private', 'public'}})


@pytest.fixture
def image_cache():
    return InMemoryImageCache()


@pytest.fixture
def make_args():
    """Build an argparse namespace shaped like the CLI's, with overrides"""

    def _make(**overrides):
        values = dict(
            id=None, name=None, ram=None, cores=None, disk_size=None, storage=None,
            user=None, password=None, upgrade_packages=False, ubuntu_version=None,
            new_ssh_key=False, new_ssh_key_name=None, use_ssh_key=None, dhcp=False,
            ip=None, gateway_ip=None, dns_servers=None, config=None, node=None,
            non_interactive=True, yes=True, no_rollback=False,
        )
        values.update(overrides)
        return argparse.Namespace(**values)

    return _make


@pytest.fixture
def web1_request():
    """Scenario A: DHCP VM 105 'web1'"""
    return VmRequest(
        vmid=105,
        name='web1',
        ram_gb=4.0,
        cores=2,
        disk_size_gb=20.0,
        storage='local-lvm',
        user='admin',
        password='secret',
        upgrade_packages=False,
        os_codename='noble',
        ssh_key_name='ops',
        network=NetworkConfig(dhcp=True, dns_servers=('1.1.1.1', '8.8.8.8')),
    )


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Empty working and home directories, so no createvm.ini is found"""
    home = tmp_path / 'home'
    home.mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('HOME', str(home))
    return home


@pytest.fixture
def config(isolated_home):
    from createvm.proxmox_utils import ProxmoxConfig
    return ProxmoxConfig()


def scripted(*answers):
    """input() replacement returning answers in order and recording prompts"""
    prompts = []
    remaining = list(answers)

    def _input(prompt):
        prompts.append(prompt)
        return remaining.pop(0)

    _input.prompts = prompts
    return _input
