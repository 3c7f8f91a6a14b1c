#!/usr/bin/env python3
"""
Proxmox VM Creation

Create a VM from a cached Ubuntu cloud image and configure it through
cloud-init. The steps run strictly in order; nothing is retried.
"""

import re
from pathlib import Path
from typing import List, Optional

from createvm.hypervisor import HypervisorClient
from createvm.models import VmRequest
from createvm.proxmox_utils import (
    logger,
    ProxmoxError,
    DiskImportError,
)


# e.g. "Successfully imported disk as 'unused0:local-lvm:vm-105-disk-0'"
IMPORTED_DISK_RE = re.compile(r"Successfully imported disk as '([^']*)'")

DEFAULT_BRIDGE = 'vmbr0'
DEFAULT_CPU_TYPE = 'x86-64-v2-AES'


def parse_imported_disk_id(output: str) -> Optional[str]:
    """
    Extract the disk identifier from `qm importdisk` output

    Args:
        output: Combined stdout/stderr of the import

    Returns:
        Disk identifier without the config slot (e.g. 'local-lvm:vm-105-disk-0'),
        or None if the output does not report a successful import
    """
    match = IMPORTED_DISK_RE.search(output or '')
    if not match:
        return None
    _slot, _, disk_id = match.group(1).partition(':')
    return disk_id or None


def _rollback(client: HypervisorClient, vmid: int, completed: List[str], error: BaseException, rollback: bool):
    logger.error(f"Creating VM {vmid} failed: {str(error) or 'interrupted'}")
    logger.info(f"→ Completed steps: {', '.join(completed)}")

    if not rollback:
        logger.info(f"→ VM {vmid} was left in place. Finish the remaining steps manually or remove it with:")
        logger.info(f"→   qm destroy {vmid} --purge")
        return

    logger.info(f"→ Rolling back: destroying VM {vmid}...")
    try:
        client.destroy_vm(vmid)
        logger.info(f"✓ VM {vmid} destroyed")
    except ProxmoxError as destroy_err:
        logger.error(f"Rollback failed, remove VM {vmid} manually (qm destroy {vmid} --purge): {destroy_err}")


def create_vm(
    client: HypervisorClient,
    request: VmRequest,
    image_path: Path,
    ssh_public_key_path: Path,
    bridge: str = DEFAULT_BRIDGE,
    cpu_type: str = DEFAULT_CPU_TYPE,
    rollback: bool = True
) -> List[str]:
    """
    Create and configure a VM

    Args:
        client: HypervisorClient to issue the calls through
        request: Validated VM request
        image_path: Local path of the cloud image to import
        ssh_public_key_path: Public key installed for the cloud-init user
        bridge: Network bridge for net0
        cpu_type: CPU model
        rollback: Destroy the VM again if a step after creation fails

    Returns:
        Descriptions of the completed steps

    Raises:
        DiskImportError if the import does not report a disk
        ProxmoxError if any hypervisor call fails
    """
    vmid = request.vmid
    completed = []

    def done(description: str):
        completed.append(description)
        logger.info(f"✓ {description}")

    logger.info(f"→ Creating VM {vmid} ({request.name})...")
    client.create_vm(vmid, request.name, request.memory_mb, request.cores, cpu_type, bridge)
    done(f"VM {vmid} created")

    try:
        logger.info(f"→ Importing {image_path} into storage '{request.storage}'...")
        output = client.import_disk(vmid, image_path, request.storage)
        disk_id = parse_imported_disk_id(output)
        if not disk_id:
            raise DiskImportError(
                f"Failed to import disk for VM {vmid}. Import output:\n{output.strip()}"
            )
        done(f"Disk imported as {disk_id}")

        client.attach_disk(vmid, disk_id)
        client.set_boot_disk(vmid, 'scsi0')
        done("Disk attached as scsi0 and set as boot disk")

        client.add_cloudinit_drive(vmid, request.storage)
        # Re-assert boot order after adding the drive
        client.set_boot_disk(vmid, 'scsi0')
        done("Cloud-init drive added")

        client.resize_disk(vmid, 'scsi0', request.disk_size)
        done(f"Disk resized to {request.disk_size}")

        client.set_cloudinit_user(vmid, request.user, request.password)
        client.set_ssh_public_key(vmid, ssh_public_key_path)
        done(f"Cloud-init user '{request.user}' configured with SSH key '{request.ssh_key_name}'")

        if request.upgrade_packages:
            client.enable_package_upgrade(vmid)
            done("Package upgrade on first boot enabled")

        client.set_ipconfig(vmid, request.network.ipconfig)
        client.set_nameserver(vmid, request.network.nameserver)
        done(f"Network configured ({request.network.ipconfig})")

    except (ProxmoxError, KeyboardInterrupt) as e:
        _rollback(client, vmid, completed, e, rollback)
        raise

    logger.info(f"✓ VM {vmid} ({request.name}) created and configured with cloud-init")
    return completed
