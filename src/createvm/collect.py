"""
Request Collection

Turns command line values, configured defaults and operator answers into a
single validated VmRequest. Nothing here changes the host.
"""

from typing import Optional, Tuple

from createvm.hypervisor import HypervisorClient
from createvm.images import supported_codenames
from createvm.models import HostCapabilities, NetworkConfig, VmRequest
from createvm.prompts import Prompter, resolve
from createvm.proxmox_utils import ProxmoxConfig, logger
from createvm.ssh_keys import KeyStore
from createvm.validators import (
    is_yes,
    validate_cores,
    validate_disk_size,
    validate_dns_servers,
    validate_existing_ssh_key_name,
    validate_ip,
    validate_new_ssh_key_name,
    validate_os_codename,
    validate_ram,
    validate_storage,
    validate_user,
    validate_vm_id,
    validate_vm_name,
    validate_yes_no,
)


def _yes_no(flag: bool, default: bool) -> Tuple[Optional[str], str]:
    """Flag value (or None) and default answer for a yes/no question"""
    return ('Y' if flag else None, 'Y' if default else 'N')


def default_storage(preferred: str, storages) -> str:
    """Preferred storage if the host has it, else the first one available"""
    if preferred in storages:
        return preferred
    return storages[0] if storages else ''


def resolve_ssh_key(args, key_store: KeyStore, prompter: Prompter) -> Tuple[str, bool]:
    """
    Pick the SSH key for the VM

    Returns:
        Tuple of (key name, whether the key still has to be generated)
    """
    def new_key_name(value=None) -> str:
        return resolve(
            prompter,
            value,
            lambda v: validate_new_ssh_key_name(v, key_store),
            "Enter a name for the new SSH key",
        )

    def existing_key_name(value, available) -> str:
        return resolve(
            prompter,
            value,
            lambda v: validate_existing_ssh_key_name(v, key_store),
            f"Select SSH key (Available: {' '.join(available)})",
            available[0],
        )

    if args.new_ssh_key or args.new_ssh_key_name:
        return (new_key_name(args.new_ssh_key_name), True)

    available = key_store.list_available_keys()
    if not available:
        if args.use_ssh_key:
            logger.info("→ There are no existing valid SSH keys, so the provided one is not valid. "
                        "A new SSH key will be created")
        else:
            logger.info("→ There are no existing valid SSH keys. A new SSH key will be created")
        return (new_key_name(), True)

    return (existing_key_name(args.use_ssh_key, available), False)


def resolve_network(args, config: ProxmoxConfig, prompter: Prompter) -> NetworkConfig:
    flag, default = _yes_no(args.dhcp, config.get_default_dhcp())
    dhcp = is_yes(resolve(
        prompter, flag, validate_yes_no,
        f"Get IP through DHCP? ({'Y/n' if default == 'Y' else 'y/N'})",
        default,
    ))
    default_dns = ' '.join(config.get_default_dns_servers())

    if dhcp:
        dns_servers = args.dns_servers if args.dns_servers is not None else default_dns
        dns_servers = resolve(prompter, dns_servers, validate_dns_servers, "Enter DNS servers (space-separated)", default_dns)
        return NetworkConfig(dhcp=True, dns_servers=tuple(dns_servers.split()))

    ip = resolve(prompter, args.ip, validate_ip, "Enter static IP")
    gateway_ip = resolve(prompter, args.gateway_ip, validate_ip, "Enter gateway IP", config.get_default_gateway_ip())
    dns_servers = resolve(prompter, args.dns_servers, validate_dns_servers, "Enter DNS servers (space-separated)", default_dns)
    return NetworkConfig(dhcp=False, ip=ip, gateway_ip=gateway_ip, dns_servers=tuple(dns_servers.split()))


def collect_request(
    args,
    config: ProxmoxConfig,
    client: HypervisorClient,
    capabilities: HostCapabilities,
    key_store: KeyStore,
    prompter: Prompter
) -> VmRequest:
    """
    Validate every value from the command line, asking for the ones that are
    missing or invalid

    Args:
        args: Parsed command line arguments
        config: ProxmoxConfig with the defaults offered at each prompt
        client: HypervisorClient, queried live for in-use ids and names
        capabilities: Host limits the RAM, cores and storage are checked against
        key_store: KeyStore with the available SSH keys
        prompter: Prompter used for missing or invalid values

    Returns:
        VmRequest

    Raises:
        ValidationError if a value is invalid and cannot be asked for
    """
    vmid = resolve(
        prompter, args.id,
        lambda v: validate_vm_id(v, client.existing_vm_ids()),
        "Enter VM ID - Min: 100 - Max: 999",
    )
    name = resolve(
        prompter, args.name,
        lambda v: validate_vm_name(v, client.existing_vm_names()),
        "Enter VM name",
    )

    max_ram = capabilities.max_ram_gb
    ram = resolve(
        prompter, args.ram,
        lambda v: validate_ram(v, max_ram),
        f"Enter RAM size (GB) - Max: {max_ram}",
        config.get_default_ram(),
    )

    max_cores = capabilities.max_cores
    cores = resolve(
        prompter, args.cores,
        lambda v: validate_cores(v, max_cores),
        f"Enter number of CPU cores - Max: {max_cores}",
        config.get_default_cores(),
    )

    disk_size = resolve(
        prompter, args.disk_size, validate_disk_size,
        "Enter total disk size (GB)",
        config.get_default_disk_size(),
    )

    storages = capabilities.storages
    storage = resolve(
        prompter, args.storage,
        lambda v: validate_storage(v, storages),
        f"Enter storage for VM disk (Available: {' '.join(storages)})",
        default_storage(config.get_storage(), storages),
    )

    user = resolve(prompter, args.user, validate_user, "Enter username", config.get_default_user())

    password = args.password
    if not password:
        password = prompter.ask_password("Enter password [same as username]", user)

    flag, default = _yes_no(args.upgrade_packages, config.get_default_upgrade_packages())
    upgrade_packages = is_yes(resolve(
        prompter, flag, validate_yes_no,
        f"Upgrade packages on first boot? ({'Y/n' if default == 'Y' else 'y/N'})",
        default,
    ))

    os_codename = resolve(
        prompter, args.ubuntu_version, validate_os_codename,
        f"Select ubuntu version (Available: {' '.join(supported_codenames())})",
        config.get_default_ubuntu_version(),
    )

    ssh_key_name, generate_ssh_key = resolve_ssh_key(args, key_store, prompter)
    network = resolve_network(args, config, prompter)

    return VmRequest(
        vmid=int(vmid),
        name=name,
        ram_gb=float(ram),
        cores=int(cores),
        disk_size_gb=float(disk_size),
        storage=storage,
        user=user,
        password=password,
        upgrade_packages=upgrade_packages,
        os_codename=os_codename,
        ssh_key_name=ssh_key_name,
        network=network,
        generate_ssh_key=generate_ssh_key,
    )
