#!/usr/bin/env python3
"""
Proxmox Host Utilities

Common functions for logging, configuration loading, connecting to the
local Proxmox API and waiting on Proxmox worker tasks.
"""

import configparser
import logging
import os
import socket
import sys
import time
from pathlib import Path
from typing import List, Optional
from proxmoxer import ProxmoxAPI
from proxmoxer.core import ResourceException

# Configure logging
# Use a logger named after the module
logger = logging.getLogger(__name__)

# Set up default logging configuration if not already configured
if not logger.handlers:
    # Handler for INFO/WARNING (stdout) - filters out ERROR and above
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.addFilter(lambda record: record.levelno < logging.ERROR)
    console_formatter = logging.Formatter('%(message)s')
    console_handler.setFormatter(console_formatter)

    # Handler for ERROR/CRITICAL (stderr)
    error_handler = logging.StreamHandler(sys.stderr)
    error_handler.setLevel(logging.ERROR)
    error_formatter = logging.Formatter('Error: %(message)s')
    error_handler.setFormatter(error_formatter)

    logger.addHandler(console_handler)
    logger.addHandler(error_handler)
    logger.setLevel(logging.INFO)


# Custom exceptions for better error handling

class ProxmoxError(Exception):
    """Base exception for Proxmox-related errors"""
    pass


class ProxmoxConnectionError(ProxmoxError):
    """Raised when connection to Proxmox fails"""
    pass


class HostQueryError(ProxmoxError):
    """Raised when host status, storage or VM list queries fail or return garbage"""
    pass


class HypervisorCommandError(ProxmoxError):
    """Raised when a VM create/configure/resize/destroy call fails"""
    pass


class DiskImportError(ProxmoxError):
    """Raised when the disk import does not report an imported disk"""
    pass


class TaskTimeoutError(ProxmoxError):
    """Raised when a Proxmox worker task does not finish in time"""
    pass


DEFAULT_DNS_SERVERS = ['1.1.1.1', '8.8.8.8']


def find_config_file(config_file: Optional[str] = None) -> Optional[str]:
    """
    Find configuration file in standard locations.

    Search order:
    1. Explicit path (if provided)
    2. Current directory: ./createvm.ini
    3. XDG config directory: ~/.config/createvm/createvm.ini
    4. Home directory: ~/.createvm.ini

    Args:
        config_file: Explicit path to config file, or None to search

    Returns:
        Path to found config file, or None when no file exists (built-in defaults apply)

    Raises:
        FileNotFoundError: If an explicit config file does not exist
    """
    if config_file:
        if os.path.isfile(config_file):
            return config_file
        raise FileNotFoundError(f"Configuration file '{config_file}' not found")

    search_paths = [
        Path.cwd() / "createvm.ini",
        Path.home() / ".config" / "createvm" / "createvm.ini",
        Path.home() / ".createvm.ini",
    ]

    for path in search_paths:
        if path.is_file():
            return str(path)

    return None


class ProxmoxConfig:
    """Load and parse createvm configuration from an optional INI file"""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize ProxmoxConfig.

        Args:
            config_file: Path to config file, or None to search in standard locations
        """
        self.config_file = find_config_file(config_file)
        self.config = configparser.ConfigParser()

        if self.config_file and not self.config.read(self.config_file):
            raise FileNotFoundError(f"Configuration file '{self.config_file}' not found")

    def get_node(self) -> str:
        """Get the Proxmox node name (defaults to this host's name)"""
        node = self.config.get('proxmox', 'node', fallback='').strip()
        return node if node else socket.gethostname()

    def get_timeout(self) -> int:
        """Get the maximum time to wait for a Proxmox task in seconds (default: 600)"""
        return self.config.getint('proxmox', 'timeout', fallback=600)

    def get_default_ram(self) -> str:
        """Get default RAM in GB"""
        return self.config.get('defaults', 'ram', fallback='2').strip()

    def get_default_cores(self) -> str:
        """Get default CPU cores"""
        return self.config.get('defaults', 'cores', fallback='1').strip()

    def get_default_disk_size(self) -> str:
        """Get default disk size in GB"""
        return self.config.get('defaults', 'disk_size', fallback='10').strip()

    def get_default_user(self) -> str:
        """Get default cloud-init user"""
        return self.config.get('defaults', 'user', fallback='root').strip()

    def get_storage(self) -> str:
        """Get preferred storage name"""
        return self.config.get('defaults', 'storage', fallback='local-lvm').strip()

    def get_default_upgrade_packages(self) -> bool:
        """Whether packages are upgraded on first boot by default"""
        return self.config.getboolean('defaults', 'upgrade_packages', fallback=True)

    def get_default_ubuntu_version(self) -> str:
        """Get default Ubuntu codename"""
        return self.config.get('defaults', 'ubuntu_version', fallback='noble').strip()

    def get_default_dhcp(self) -> bool:
        """Whether DHCP is the default network mode"""
        return self.config.getboolean('defaults', 'dhcp', fallback=False)

    def get_default_gateway_ip(self) -> str:
        """Get default gateway IP"""
        return self.config.get('defaults', 'gateway_ip', fallback='192.168.86.1').strip()

    def get_default_dns_servers(self) -> List[str]:
        """Get DNS servers as list (space-separated in config)"""
        dns_servers = self.config.get('defaults', 'dns_servers', fallback='').strip()
        if not dns_servers:
            return list(DEFAULT_DNS_SERVERS)
        return dns_servers.split()

    def get_bridge(self) -> str:
        """Get network bridge"""
        return self.config.get('defaults', 'bridge', fallback='vmbr0').strip()

    def get_cpu_type(self) -> str:
        """Get CPU model for new VMs"""
        return self.config.get('defaults', 'cpu_type', fallback='x86-64-v2-AES').strip()

    def get_ssh_keys_dir(self) -> str:
        """Get directory holding generated SSH key pairs"""
        return os.path.expanduser(self.config.get('paths', 'ssh_keys_dir', fallback='sshkeys').strip())

    def get_image_dir(self) -> str:
        """Get directory where cloud images are cached"""
        return os.path.expanduser(
            self.config.get('paths', 'image_dir', fallback='/var/lib/vz/template/iso').strip()
        )

    def get_log_level(self) -> str:
        """Get log level (default: INFO)"""
        return self.config.get('logging', 'level', fallback='INFO').strip()

    def get_log_file(self) -> Optional[str]:
        """Get optional log file path"""
        log_file = self.config.get('logging', 'file', fallback='').strip()
        return os.path.expanduser(log_file) if log_file else None


def connect_proxmox(config: ProxmoxConfig) -> ProxmoxAPI:
    """
    Connect to the Proxmox API of the host this tool runs on

    The local backend drives pvesh directly, so no credentials are needed.

    Args:
        config: ProxmoxConfig instance

    Returns:
        ProxmoxAPI instance
    """
    try:
        proxmox = ProxmoxAPI(backend='local', service='PVE')

        # Test connection
        proxmox.version.get()
        return proxmox

    except Exception as e:
        raise ProxmoxConnectionError(
            f"Error connecting to Proxmox on node '{config.get_node()}': {e}. "
            "This tool must run on a Proxmox VE host."
        ) from e


def is_task_id(result) -> bool:
    """Check whether an API result is a Proxmox task UPID"""
    return isinstance(result, str) and result.startswith('UPID:')


def wait_for_proxmox_task(proxmox, node: str, upid: str, task_description: str = "task", max_wait: int = 600) -> bool:
    """
    Wait for a Proxmox task (identified by UPID) to complete

    Args:
        proxmox: ProxmoxAPI instance
        node: Node name
        upid: Task UPID
        task_description: Description of the task
        max_wait: Maximum time to wait in seconds

    Returns:
        True if task completed successfully, False if it failed

    Raises:
        TaskTimeoutError if the task is still running after max_wait seconds
        HypervisorCommandError if the task status cannot be read
    """
    elapsed = 0
    check_interval = 2

    while elapsed < max_wait:
        try:
            task_status = proxmox.nodes(node).tasks(upid).status.get()
        except (ResourceException, OSError) as e:
            raise HypervisorCommandError(f"Could not read status of {task_description} (task {upid}): {e}") from e
        current_status = task_status.get('status', 'unknown')

        if current_status == 'stopped':
            exitstatus = task_status.get('exitstatus', '')
            if exitstatus == 'OK':
                return True
            logger.error(f"{task_description} failed with exit status: {exitstatus}")
            return False

        if elapsed % 10 == 0 and elapsed > 0:
            logger.info(f"→ {task_description} in progress... ({elapsed}s elapsed)")

        time.sleep(check_interval)
        elapsed += check_interval

    raise TaskTimeoutError(f"{task_description} timed out after {max_wait} seconds (task {upid})")


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None):
    """
    Configure logging for the application

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. Console output is always kept
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Remove existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(lambda record: record.levelno < logging.ERROR)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(console_handler)

    error_handler = logging.StreamHandler(sys.stderr)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter('Error: %(message)s'))
    logger.addHandler(error_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        logger.addHandler(file_handler)

    logger.setLevel(log_level)
