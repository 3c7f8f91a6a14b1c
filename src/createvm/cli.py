#!/usr/bin/env python3
"""
createvm CLI Entry Point

Collects the VM parameters from flags and prompts, then creates and
configures the VM with cloud-init on this Proxmox host.
"""

import argparse
import configparser
import subprocess
import sys
from pathlib import Path

from createvm.collect import collect_request
from createvm.hypervisor import HypervisorClient, ProxmoxClient
from createvm.images import (
    FilesystemImageCache,
    ImageCache,
    ensure_image_cached,
    get_os_image,
    supported_codenames,
    UnsupportedOsError,
    DownloadError,
)
from createvm.models import VmRequest, format_size
from createvm.prompts import Prompter
from createvm.proxmox_utils import (
    ProxmoxConfig,
    connect_proxmox,
    logger,
    setup_logging,
    ProxmoxError,
)
from createvm.ssh_keys import FilesystemKeyStore, KeyStore
from createvm.validators import ValidationError
from createvm.vm_create import create_vm


class CreateVMArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on unknown or malformed arguments"""

    def error(self, message):
        self.print_usage(sys.stderr)
        logger.error(message)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = CreateVMArgumentParser(
        prog='createvm',
        description='Create a cloud-init VM on this Proxmox VE host. '
                    'Missing or invalid values are asked for interactively.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Ask for everything
  createvm

  # Fully scripted, DHCP network, new SSH key
  createvm --id 105 --name web1 --ram 4 --cores 2 --disk-size 20 --storage local-lvm \\
           --user admin --pass secret --dhcp --new-ssh-key --new-ssh-key-name web1 \\
           --non-interactive

  # Static address with an existing key
  createvm --id 106 --name db1 --ip 10.0.0.5 --gateway-ip 10.0.0.1 \\
           --dns-servers "1.1.1.1 8.8.8.8" --use-ssh-key ops
        '''
    )

    parser.add_argument('--id', help='ID for the VM (100-999)')
    parser.add_argument('--name', help='Name for the VM')
    parser.add_argument('--ram', help='RAM (in GB) assigned to the VM')
    parser.add_argument('--cores', help='Number of cores of the VM')
    parser.add_argument('--disk-size', dest='disk_size', help='Size (in GB) of the VM disk')
    parser.add_argument('--storage', help='Storage that will host the VM disk')
    parser.add_argument('--user', help='User created in the VM')
    parser.add_argument('--pass', dest='password', help='Password for the user in the VM (default: same as username)')
    parser.add_argument('--upgrade-packages', dest='upgrade_packages', action='store_true',
                        help='Upgrade packages on first boot of the VM')
    parser.add_argument('--ubuntu-version', dest='ubuntu_version',
                        help='Ubuntu codename for the VM. Available: ' + ', '.join(supported_codenames()))
    parser.add_argument('--new-ssh-key', dest='new_ssh_key', action='store_true',
                        help='Generate a new SSH key')
    parser.add_argument('--new-ssh-key-name', dest='new_ssh_key_name', help='Name of the new SSH key')
    parser.add_argument('--use-ssh-key', dest='use_ssh_key', help='Name of an already existing SSH key')
    parser.add_argument('--dhcp', action='store_true', help='Use DHCP in the VM')
    parser.add_argument('--ip', help='Static IP of the VM (a /24 network is assumed)')
    parser.add_argument('--gateway-ip', dest='gateway_ip', help='Gateway IP for the VM')
    parser.add_argument('--dns-servers', dest='dns_servers',
                        help='DNS servers for the VM, space-separated (e.g. "1.1.1.1 8.8.8.8")')

    parser.add_argument('--config', default=None,
                        help='Path to configuration file (default: searches ./createvm.ini, '
                             '~/.config/createvm/createvm.ini, ~/.createvm.ini)')
    parser.add_argument('--node', help='Proxmox node name (default: from config, else this host name)')
    parser.add_argument('--non-interactive', dest='non_interactive', action='store_true',
                        help='Never prompt: use configured defaults for missing values, fail on invalid ones')
    parser.add_argument('-y', '--yes', action='store_true', help='Do not ask for confirmation')
    parser.add_argument('--no-rollback', dest='no_rollback', action='store_true',
                        help='Keep a partially created VM if a step fails (default: destroy it)')
    return parser


def print_request_summary(request: VmRequest, image_path: Path):
    """Print the VM that is about to be created"""
    print("\n" + "=" * 80)
    print("About to create VM with:")
    print("=" * 80)
    print(f"  ID:       {request.vmid}")
    print(f"  Name:     {request.name}")
    print(f"  RAM:      {format_size(request.ram_gb)} GB")
    print(f"  Cores:    {request.cores}")
    print(f"  Disk:     {format_size(request.disk_size_gb)} GB")
    print(f"  Storage:  {request.storage}")
    print(f"  User:     {request.user}")
    print("  Pass:     *****")
    print(f"  Upgrade:  {'Yes' if request.upgrade_packages else 'No'}")
    print(f"  Ubuntu:   {request.os_codename}")
    print(f"  Image:    {image_path}")
    print(f"  SSH key:  {request.ssh_key_name}{' (new)' if request.generate_ssh_key else ''}")
    if request.network.dhcp:
        print("  DHCP:     Yes")
    else:
        print(f"  IP:       {request.network.ip}/24")
        print(f"  Gateway:  {request.network.gateway_ip}")
    print(f"  DNS:      {request.network.nameserver}")
    print("=" * 80 + "\n")


def run(
    args,
    config: ProxmoxConfig,
    client: HypervisorClient,
    key_store: KeyStore,
    image_cache: ImageCache,
    prompter: Prompter
) -> bool:
    """
    Collect, confirm and create the VM

    Returns:
        True if the VM was created, False if the operator declined
    """
    capabilities = client.get_host_capabilities()
    logger.info(
        f"✓ Node {capabilities.node}: {capabilities.max_ram_gb} GB RAM, {capabilities.max_cores} cores, "
        f"storages: {', '.join(capabilities.storages)}"
    )

    request = collect_request(args, config, client, capabilities, key_store, prompter)

    image = get_os_image(request.os_codename)
    print_request_summary(request, image_cache.path_for(image.filename))

    if not args.yes and not prompter.confirm("Create VM with this configuration?"):
        logger.info("→ VM creation cancelled")
        return False

    image_path = ensure_image_cached(image_cache, request.os_codename)

    if request.generate_ssh_key:
        key_store.generate_key(request.ssh_key_name)

    create_vm(
        client,
        request,
        image_path,
        key_store.public_key_path(request.ssh_key_name),
        bridge=config.get_bridge(),
        cpu_type=config.get_cpu_type(),
        rollback=not args.no_rollback,
    )

    print("\n" + "=" * 80)
    logger.info(f"✓ VM {request.vmid} ({request.name}) created and configured with cloud-init.")
    print("=" * 80)
    print(f"  Start it with: qm start {request.vmid}")
    print(f"  Private key:   {key_store.public_key_path(request.ssh_key_name).with_suffix('')}")
    print("=" * 80 + "\n")
    return True


def main(argv=None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load configuration
    try:
        config = ProxmoxConfig(args.config)
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except (configparser.Error, ValueError) as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    setup_logging(config.get_log_level(), config.get_log_file())

    try:
        proxmox = connect_proxmox(config)
        client = ProxmoxClient(proxmox, args.node or config.get_node(), config.get_timeout())
        run(
            args,
            config,
            client,
            FilesystemKeyStore(config.get_ssh_keys_dir()),
            FilesystemImageCache(config.get_image_dir()),
            Prompter(interactive=not args.non_interactive),
        )
    except KeyboardInterrupt:
        print("\n\nOperation cancelled by user")
        sys.exit(1)
    except EOFError:
        logger.error("No input available. Use --non-interactive to run without a terminal")
        sys.exit(1)
    except (ValidationError, UnsupportedOsError, DownloadError, ProxmoxError) as e:
        logger.error(str(e))
        sys.exit(1)
    except (subprocess.CalledProcessError, OSError) as e:
        logger.error(f"SSH key generation failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
