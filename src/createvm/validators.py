"""
Input Validators

Each validator takes the raw value (as typed or passed on the command line)
plus whatever bound it is checked against, and returns (ok, reason).
"""

import re
from typing import Collection, Optional, Tuple

from createvm.images import IMAGES, supported_codenames
from createvm.ssh_keys import KeyStore


Result = Tuple[bool, Optional[str]]

VMID_MIN = 100
VMID_MAX = 999
MIN_MEMORY_MB = 16

_INTEGER_RE = re.compile(r'^[0-9]+$')
_NUMBER_RE = re.compile(r'^[0-9]+(\.[0-9]+)?$')
_IP_RE = re.compile(r'^[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+$')
_YES_NO = ('y', 'Y', 'n', 'N')


class ValidationError(Exception):
    """Raised when an input value is invalid and cannot be asked for again"""
    pass


def _text(value) -> str:
    return '' if value is None else str(value)


def is_yes(value) -> bool:
    return _text(value) in ('y', 'Y')


def validate_vm_id(value, existing_ids: Collection[int]) -> Result:
    value = _text(value)
    if not _INTEGER_RE.match(value) or not VMID_MIN <= int(value) <= VMID_MAX:
        return (False, f"Invalid input. Id has to be a number between {VMID_MIN} and {VMID_MAX}.")
    if int(value) in existing_ids:
        return (False, f"Id '{value}' already in use. Please choose a different id.")
    return (True, None)


def validate_vm_name(value, existing_names: Collection[str]) -> Result:
    value = _text(value)
    if not value:
        return (False, "VM name cannot be empty.")
    if value in existing_names:
        return (False, f"VM name '{value}' is already in use. Please choose a different name.")
    return (True, None)


def validate_ram(value, max_ram) -> Result:
    value = _text(value)
    if not (_NUMBER_RE.match(value) and 0 < float(value) <= max_ram):
        return (False, f"Invalid input. RAM has to be an integer or decimal number > 0 and <= {max_ram}.")
    # memory is passed to Proxmox in whole MB
    if int(round(float(value) * 1024)) < MIN_MEMORY_MB:
        return (False, f"Invalid input. RAM has to be at least {MIN_MEMORY_MB} MB ({MIN_MEMORY_MB / 1024:g} GB).")
    return (True, None)


def validate_cores(value, max_cores: int) -> Result:
    value = _text(value)
    if _INTEGER_RE.match(value) and 1 <= int(value) <= max_cores:
        return (True, None)
    return (False, f"Invalid input. CPU cores has to be a number >= 1 and <= {max_cores}.")


def validate_disk_size(value) -> Result:
    value = _text(value)
    if _NUMBER_RE.match(value) and float(value) > 0:
        return (True, None)
    return (False, "Invalid input. Disk size has to be an integer or decimal number > 0.")


def validate_storage(value, storages: Collection[str]) -> Result:
    value = _text(value)
    if not value:
        return (False, "Storage cannot be empty. Please provide one of the available storages.")
    if value not in storages:
        return (False, f"Storage '{value}' not valid. Available: {', '.join(storages)}")
    return (True, None)


def validate_user(value) -> Result:
    if not _text(value):
        return (False, "User name cannot be empty.")
    return (True, None)


def validate_yes_no(value) -> Result:
    if _text(value) in _YES_NO:
        return (True, None)
    return (False, "Invalid answer. Please answer y or n.")


def validate_os_codename(value) -> Result:
    if _text(value) in IMAGES:
        return (True, None)
    return (False, f"Invalid Ubuntu version '{_text(value)}'. Available: {', '.join(supported_codenames())}")


def validate_existing_ssh_key_name(value, key_store: KeyStore) -> Result:
    value = _text(value)
    if not value:
        return (False, "Key name cannot be empty. Please provide one of the available keys.")
    if not key_store.has_key(value):
        return (False, f"SSH key '{value}' does not exist. Please provide one of the available keys.")
    return (True, None)


def validate_new_ssh_key_name(value, key_store: KeyStore) -> Result:
    value = _text(value)
    if not value:
        return (False, "Key name cannot be empty. Please provide a new key name.")
    if '/' in value or value in ('.', '..'):
        return (False, f"Key name '{value}' cannot contain '/' or be '.' or '..'.")
    if key_store.exists(value):
        return (False, f"SSH key '{value}' already exists. Please provide a new key name.")
    return (True, None)


def validate_ip(value) -> Result:
    value = _text(value)
    if _IP_RE.match(value):
        return (True, None)
    return (False, f"Wrong format for IP '{value}'.")


def validate_dns_servers(value) -> Result:
    """DNS servers are whitespace separated, e.g. '1.1.1.1 8.8.8.8'"""
    servers = _text(value).split()
    if not servers:
        return (False, "No DNS servers provided.")
    for server in servers:
        if not _IP_RE.match(server):
            return (False, f"Wrong format for DNS server '{server}'.")
    return (True, None)
