#!/usr/bin/env python3
"""
Hypervisor Client

Typed calls into Proxmox VE. ProxmoxClient talks to the local API through
proxmoxer and uses `qm importdisk` for the one operation the API does not
report a disk identifier for.
"""

import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Set
from urllib.parse import quote

from proxmoxer.core import ResourceException

from createvm.models import HostCapabilities
from createvm.proxmox_utils import (
    logger,
    is_task_id,
    wait_for_proxmox_task,
    HostQueryError,
    HypervisorCommandError,
)


class HypervisorClient(ABC):
    """Everything the VM creation flow needs from the hypervisor"""

    @abstractmethod
    def get_host_capabilities(self) -> HostCapabilities:
        """
        Raises:
            HostQueryError if the host cannot be queried or answers with garbage
        """

    @abstractmethod
    def existing_vm_ids(self) -> Set[int]:
        pass

    @abstractmethod
    def existing_vm_names(self) -> Set[str]:
        pass

    @abstractmethod
    def create_vm(self, vmid: int, name: str, memory_mb: int, cores: int, cpu_type: str, bridge: str):
        pass

    @abstractmethod
    def import_disk(self, vmid: int, image_path: Path, storage: str) -> str:
        """Import image_path as an unused disk of vmid and return the tool output"""

    @abstractmethod
    def attach_disk(self, vmid: int, disk_id: str):
        """Attach disk_id as scsi0 behind a virtio SCSI controller"""

    @abstractmethod
    def set_boot_disk(self, vmid: int, disk: str = 'scsi0'):
        pass

    @abstractmethod
    def add_cloudinit_drive(self, vmid: int, storage: str):
        pass

    @abstractmethod
    def resize_disk(self, vmid: int, disk: str, size: str):
        pass

    @abstractmethod
    def set_cloudinit_user(self, vmid: int, user: str, password: str):
        pass

    @abstractmethod
    def set_ssh_public_key(self, vmid: int, public_key_path: Path):
        pass

    @abstractmethod
    def enable_package_upgrade(self, vmid: int):
        pass

    @abstractmethod
    def set_ipconfig(self, vmid: int, ipconfig: str):
        pass

    @abstractmethod
    def set_nameserver(self, vmid: int, nameserver: str):
        pass

    @abstractmethod
    def destroy_vm(self, vmid: int):
        pass


class ProxmoxClient(HypervisorClient):
    """HypervisorClient for the Proxmox node this tool runs on"""

    def __init__(self, proxmox, node: str, task_timeout: int = 600, qm_binary: str = 'qm'):
        """
        Args:
            proxmox: ProxmoxAPI instance
            node: Node name VMs are created on
            task_timeout: Maximum time to wait for a Proxmox worker task in seconds
            qm_binary: qm executable used for disk imports
        """
        self.proxmox = proxmox
        self.node = node
        self.task_timeout = task_timeout
        self.qm_binary = qm_binary

    def get_host_capabilities(self) -> HostCapabilities:
        try:
            status = self.proxmox.nodes(self.node).status.get()
            storages = self.proxmox.nodes(self.node).storage.get(content='images')
        except (ResourceException, OSError) as e:
            raise HostQueryError(f"Could not query node '{self.node}': {e}") from e

        try:
            total_memory = int(status['memory']['total'])
            total_cpus = int(status['cpuinfo']['cpus'])
        except (KeyError, TypeError, ValueError) as e:
            raise HostQueryError(f"Malformed status for node '{self.node}': {e!r}") from e

        max_ram_gb = total_memory // (1024 ** 3)
        if max_ram_gb < 1 or total_cpus < 1:
            raise HostQueryError(
                f"Node '{self.node}' reported {total_memory} bytes of memory and {total_cpus} CPUs"
            )

        storage_ids = tuple(
            s['storage'] for s in storages or []
            if isinstance(s, dict) and s.get('storage') and s.get('active', 1)
        )
        if not storage_ids:
            raise HostQueryError(f"Node '{self.node}' has no active storage for VM disks")

        return HostCapabilities(
            node=self.node,
            max_ram_gb=max_ram_gb,
            max_cores=total_cpus,
            storages=storage_ids,
        )

    def _list_vms(self) -> list:
        # VM ids are unique cluster-wide, so check the whole cluster, not only this node
        try:
            resources = self.proxmox.cluster.resources.get(type='vm')
        except (ResourceException, OSError) as e:
            raise HostQueryError(f"Could not list existing VMs: {e}") from e
        if not isinstance(resources, list):
            raise HostQueryError(f"Unexpected VM list response: {resources!r}")
        return resources

    def existing_vm_ids(self) -> Set[int]:
        try:
            return {int(vm['vmid']) for vm in self._list_vms()}
        except (KeyError, TypeError, ValueError) as e:
            raise HostQueryError(f"Malformed VM list: {e!r}") from e

    def existing_vm_names(self) -> Set[str]:
        return {vm['name'] for vm in self._list_vms() if vm.get('name')}

    def _run(self, description: str, func, **params):
        """Call a proxmoxer endpoint and wait for the worker task it starts, if any"""
        try:
            result = func(**params)
        except (ResourceException, OSError) as e:
            raise HypervisorCommandError(f"{description} failed: {e}") from e

        if is_task_id(result):
            if not wait_for_proxmox_task(self.proxmox, self.node, result, description, self.task_timeout):
                raise HypervisorCommandError(f"{description} failed (task {result})")
        return result

    def _vm(self, vmid: int):
        return self.proxmox.nodes(self.node).qemu(vmid)

    def _set_config(self, vmid: int, description: str, **options):
        self._run(f"{description} on VM {vmid}", self._vm(vmid).config.post, **options)

    def create_vm(self, vmid: int, name: str, memory_mb: int, cores: int, cpu_type: str, bridge: str):
        self._run(
            f"Creating VM {vmid}",
            self.proxmox.nodes(self.node).qemu.post,
            vmid=vmid,
            name=name,
            memory=memory_mb,
            cores=cores,
            cpu=cpu_type,
            net0=f"virtio,bridge={bridge},firewall=1",
        )

    def import_disk(self, vmid: int, image_path: Path, storage: str) -> str:
        cmd = [self.qm_binary, 'importdisk', str(vmid), str(image_path), storage]
        try:
            result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as e:
            raise HypervisorCommandError(f"Could not run {' '.join(cmd)}: {e}") from e
        if result.returncode != 0:
            logger.error(f"{' '.join(cmd)} exited with status {result.returncode}")
        return result.stdout or ''

    def attach_disk(self, vmid: int, disk_id: str):
        self._set_config(vmid, "Attaching disk", scsihw='virtio-scsi-pci', scsi0=disk_id)

    def set_boot_disk(self, vmid: int, disk: str = 'scsi0'):
        self._set_config(vmid, "Setting boot order", boot='c', bootdisk=disk)

    def add_cloudinit_drive(self, vmid: int, storage: str):
        self._set_config(vmid, "Adding cloud-init drive", ide2=f"{storage}:cloudinit")

    def resize_disk(self, vmid: int, disk: str, size: str):
        self._run(f"Resizing {disk} of VM {vmid}", self._vm(vmid).resize.put, disk=disk, size=size)

    def set_cloudinit_user(self, vmid: int, user: str, password: str):
        self._set_config(vmid, "Setting cloud-init user", ciuser=user, cipassword=password)

    def set_ssh_public_key(self, vmid: int, public_key_path: Path):
        try:
            public_key = Path(public_key_path).read_text().strip()
        except OSError as e:
            raise HypervisorCommandError(f"Could not read SSH public key {public_key_path}: {e}") from e
        # The API expects the key URL-encoded
        self._set_config(vmid, "Setting SSH key", sshkeys=quote(public_key, safe=''))

    def enable_package_upgrade(self, vmid: int):
        self._set_config(vmid, "Enabling package upgrade", ciupgrade=1)

    def set_ipconfig(self, vmid: int, ipconfig: str):
        self._set_config(vmid, "Setting network", ipconfig0=ipconfig)

    def set_nameserver(self, vmid: int, nameserver: str):
        self._set_config(vmid, "Setting nameserver", nameserver=nameserver)

    def destroy_vm(self, vmid: int):
        self._run(
            f"Destroying VM {vmid}",
            self._vm(vmid).delete,
            purge=1,
            **{'destroy-unreferenced-disks': 1},
        )
