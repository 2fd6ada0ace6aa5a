"""
Disk formatter backed by qemu-img.
"""

import logging
from pathlib import Path
from typing import List, Optional

from ...errors import FormatError
from ...utils import run_tool
from ..collaborators import DiskFormatter
from ..request import DiskSize


class QemuImgFormatter(DiskFormatter):
    """Resize and create qcow2 images with qemu-img."""

    def __init__(self, binary: str = "qemu-img", timeout: Optional[float] = None):
        self.binary = binary
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @property
    def required_tools(self) -> List[str]:
        return [self.binary]

    def resize(self, path: Path, size: DiskSize) -> None:
        self.logger.info(f"Resizing disk image {path} to {size}")
        run_tool([self.binary, "resize", str(path), str(size)],
                 error_cls=FormatError, timeout=self.timeout)

    def create_empty(self, path: Path, size: DiskSize) -> None:
        if Path(path).exists():
            # qemu-img create would truncate an installed disk
            self.logger.info(f"Disk {path} already exists, keeping it.")
            return
        self.logger.info(f"Creating {size} qcow2 disk {path}")
        run_tool([self.binary, "create", "-f", "qcow2", str(path), str(size)],
                 error_cls=FormatError, timeout=self.timeout)
