"""Value records shared by the collection, image and orchestration steps."""

from dataclasses import dataclass
from typing import Tuple


UBUNTU_IMAGE_URL = (
    'https://cloud-images.ubuntu.com/releases/{codename}/release/'
    'ubuntu-{version}-server-cloudimg-amd64.img'
)


def format_size(value: float) -> str:
    """Render a GB amount without a trailing '.0' (20.0 -> '20', 20.5 -> '20.5')"""
    value = float(value)
    return str(int(value)) if value.is_integer() else str(value)


@dataclass(frozen=True)
class SupportedOsImage:
    codename: str
    version: str
    label: str

    @property
    def url(self) -> str:
        return UBUNTU_IMAGE_URL.format(codename=self.codename, version=self.version)

    @property
    def filename(self) -> str:
        return self.url.rsplit('/', 1)[-1]


@dataclass(frozen=True)
class HostCapabilities:
    """Snapshot of host limits, fetched fresh on every run"""
    node: str
    max_ram_gb: int
    max_cores: int
    storages: Tuple[str, ...]


@dataclass(frozen=True)
class NetworkConfig:
    dhcp: bool
    ip: str = ''
    gateway_ip: str = ''
    dns_servers: Tuple[str, ...] = ()

    @property
    def ipconfig(self) -> str:
        """Value for the cloud-init ipconfig0 option"""
        if self.dhcp:
            return 'ip=dhcp'
        return f'ip={self.ip}/24,gw={self.gateway_ip}'

    @property
    def nameserver(self) -> str:
        return ' '.join(self.dns_servers)


@dataclass(frozen=True)
class VmRequest:
    """Everything needed to create one VM, built before any side effect happens"""
    vmid: int
    name: str
    ram_gb: float
    cores: int
    disk_size_gb: float
    storage: str
    user: str
    password: str
    upgrade_packages: bool
    os_codename: str
    ssh_key_name: str
    network: NetworkConfig
    generate_ssh_key: bool = False

    @property
    def memory_mb(self) -> int:
        return int(round(self.ram_gb * 1024))

    @property
    def disk_size(self) -> str:
        """Disk size in the form the resize call expects, e.g. '20G'"""
        return f'{format_size(self.disk_size_gb)}G'
