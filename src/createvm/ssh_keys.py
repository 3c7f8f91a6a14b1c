"""
SSH Key Store

Key pairs live under <root>/<name>/id_<name> and <root>/<name>/id_<name>.pub.
A key only counts as available when both files are present.
"""

import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from createvm.proxmox_utils import logger


DEFAULT_SSH_KEYS_DIR = 'sshkeys'


class KeyStore(ABC):

    @abstractmethod
    def list_available_keys(self) -> List[str]:
        """Names of keys with both private and public files, sorted"""

    @abstractmethod
    def has_key(self, name: str) -> bool:
        """True if both key files exist for name"""

    @abstractmethod
    def exists(self, name: str) -> bool:
        """True if anything (even a half-written key) is stored under name"""

    @abstractmethod
    def public_key_path(self, name: str) -> Path:
        pass

    @abstractmethod
    def generate_key(self, name: str) -> Path:
        """Create a new key pair and return the public key path"""


class FilesystemKeyStore(KeyStore):

    def __init__(self, root: str = DEFAULT_SSH_KEYS_DIR):
        self.root = Path(root)

    def key_dir(self, name: str) -> Path:
        return self.root / name

    def private_key_path(self, name: str) -> Path:
        return self.key_dir(name) / f"id_{name}"

    def public_key_path(self, name: str) -> Path:
        return self.key_dir(name) / f"id_{name}.pub"

    def has_key(self, name: str) -> bool:
        if not name:
            return False
        return self.private_key_path(name).is_file() and self.public_key_path(name).is_file()

    def exists(self, name: str) -> bool:
        return bool(name) and self.key_dir(name).exists()

    def list_available_keys(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(entry.name for entry in self.root.iterdir() if entry.is_dir() and self.has_key(entry.name))

    def generate_key(self, name: str) -> Path:
        """
        Generate a 4096-bit RSA key pair without passphrase

        Raises:
            subprocess.CalledProcessError if ssh-keygen fails
        """
        self.key_dir(name).mkdir(parents=True, exist_ok=True)
        subprocess.run(
            ['ssh-keygen', '-t', 'rsa', '-b', '4096', '-f', str(self.private_key_path(name)), '-q', '-N', ''],
            check=True,
        )
        logger.info(f"✓ SSH key '{name}' generated in {self.key_dir(name)}")
        return self.public_key_path(name)
