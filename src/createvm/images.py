"""
Cloud Image Management

Maps supported OS codenames to Ubuntu cloud image URLs and keeps a local
cache of downloaded images that disk imports read from.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

import requests

from createvm.models import SupportedOsImage
from createvm.proxmox_utils import logger


class UnsupportedOsError(Exception):
    """Raised when an OS codename is not in the supported image table"""
    pass


class DownloadError(Exception):
    """Raised when a cloud image could not be downloaded"""
    pass


# Supported cloud images, keyed by codename
IMAGES = {
    'noble': SupportedOsImage(codename='noble', version='24.04', label='Ubuntu 24.04 LTS (Noble Numbat)'),
}

DEFAULT_IMAGE_DIR = '/var/lib/vz/template/iso'


def supported_codenames() -> List[str]:
    return sorted(IMAGES.keys())


def get_os_image(codename: str) -> SupportedOsImage:
    """
    Look up a supported OS image

    Raises:
        UnsupportedOsError if the codename is unknown
    """
    if codename not in IMAGES:
        raise UnsupportedOsError(
            f"Unsupported Ubuntu codename '{codename}'. Supported: {', '.join(supported_codenames())}"
        )
    return IMAGES[codename]


def resolve_image_url(codename: str) -> str:
    """Get the download URL of the cloud image for a codename"""
    return get_os_image(codename).url


class ImageCache(ABC):
    """Where downloaded cloud images are kept, keyed by filename"""

    @abstractmethod
    def path_for(self, filename: str) -> Path:
        """Local path an image with this filename is (or would be) cached at"""

    @abstractmethod
    def contains(self, filename: str) -> bool:
        pass

    @abstractmethod
    def download(self, url: str, filename: str) -> Path:
        """
        Fetch url into the cache

        Raises:
            DownloadError if the transfer does not complete
        """


class FilesystemImageCache(ImageCache):
    """Image cache backed by a directory, by default the host's ISO storage"""

    def __init__(self, directory: str = DEFAULT_IMAGE_DIR, chunk_size: int = 1024 * 1024, timeout: int = 60):
        self.directory = Path(directory)
        self.chunk_size = chunk_size
        self.timeout = timeout

    def path_for(self, filename: str) -> Path:
        return self.directory / filename

    def contains(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    def download(self, url: str, filename: str) -> Path:
        filepath = self.path_for(filename)
        partial = filepath.with_name(filepath.name + '.part')

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get('content-length', 0))
                downloaded = 0
                last_percent = -10

                with open(partial, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            downloaded += len(chunk)
                            if total_size > 0:
                                percent = int(downloaded * 100 / total_size)
                                if percent >= last_percent + 10:
                                    logger.info(f"→ Download progress: {percent}%")
                                    last_percent = percent

            os.replace(partial, filepath)
        except (requests.RequestException, OSError) as e:
            # Never leave a partial file where a later run would treat it as cached
            if partial.exists():
                partial.unlink()
            raise DownloadError(f"Failed to download image from {url}: {e}") from e

        return filepath


def ensure_image_cached(cache: ImageCache, codename: str) -> Path:
    """
    Make sure the cloud image for codename is in the cache

    A cached file is trusted as-is; no checksum is verified.

    Args:
        cache: ImageCache to look in and download into
        codename: Supported OS codename (e.g. noble)

    Returns:
        Local path of the image

    Raises:
        UnsupportedOsError if the codename is unknown
        DownloadError if the download fails
    """
    image = get_os_image(codename)

    if cache.contains(image.filename):
        path = cache.path_for(image.filename)
        logger.info(f"✓ Image '{image.filename}' already exists at {path}")
        return path

    logger.info(f"→ Downloading '{image.filename}'...")
    logger.info(f"→ URL: {image.url}")
    path = cache.download(image.url, image.filename)
    logger.info(f"✓ Image downloaded successfully: {path}")
    return path
