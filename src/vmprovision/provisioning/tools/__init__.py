"""
Collaborator implementations backed by host tools.
"""

# libvirt_launcher is imported on demand so libvirt-python is only needed
# when that backend is selected
from .disk import QemuImgFormatter
from .fetcher import UrlImageFetcher
from .seed import CloudInitSeedGenerator
from .virt_install import VirtInstallLauncher

__all__ = ["CloudInitSeedGenerator", "QemuImgFormatter", "UrlImageFetcher", "VirtInstallLauncher"]
