"""
Hypervisor launcher backed by virt-install.
"""

import logging
from typing import List, Optional, Sequence

from ...errors import LaunchError
from ...utils import run_tool
from ..collaborators import DiskAttachment, GraphicsConfig, HypervisorLauncher, NetworkConfig


class VirtInstallLauncher(HypervisorLauncher):
    """Define and boot guests by running virt-install."""

    def __init__(self, binary: str = "virt-install", connect_uri: Optional[str] = None,
                 graphics: Optional[GraphicsConfig] = None, timeout: Optional[float] = None):
        self.binary = binary
        self.connect_uri = connect_uri
        self.graphics = graphics or GraphicsConfig()
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @property
    def required_tools(self) -> List[str]:
        return [self.binary]

    @staticmethod
    def disk_argument(disk: DiskAttachment) -> str:
        parts = [f"path={disk.path}", f"format={disk.format}"]
        if disk.is_cdrom:
            parts.append("device=cdrom")
        parts.append(f"bus={disk.bus}")
        return ",".join(parts)

    @staticmethod
    def network_argument(network: NetworkConfig) -> str:
        return f"{network.kind}={network.source},model={network.model}"

    def graphics_argument(self) -> str:
        if self.graphics.kind == "none":
            return "none"
        return f"{self.graphics.kind},listen={self.graphics.listen}"

    def build_command(
        self,
        name: str,
        memory_mb: int,
        vcpu_count: int,
        disks: Sequence[DiskAttachment],
        variant_tag: str,
        network: NetworkConfig,
    ) -> List[str]:
        """Assemble the virt-install argument list."""
        args = [self.binary]
        if self.connect_uri:
            args += ["--connect", self.connect_uri]
        args += [
            "--name", name,
            "--memory", str(memory_mb),
            "--vcpus", str(vcpu_count),
        ]

        installer = None
        for disk in disks:
            if disk.installer and installer is None:
                installer = disk
                continue
            args += ["--disk", self.disk_argument(disk)]

        if installer is not None:
            args += ["--cdrom", str(installer.path)]
        else:
            # Boot the existing disk image instead of running an installer
            args.append("--import")

        args += [
            "--os-variant", variant_tag,
            "--network", self.network_argument(network),
            "--graphics", self.graphics_argument(),
            "--noautoconsole",
        ]
        return args

    def launch(
        self,
        name: str,
        memory_mb: int,
        vcpu_count: int,
        disks: Sequence[DiskAttachment],
        variant_tag: str,
        network: NetworkConfig,
    ) -> None:
        command = self.build_command(name, memory_mb, vcpu_count, disks, variant_tag, network)
        self.logger.info(f"Launching VM {name} with virt-install")
        run_tool(command, error_cls=LaunchError, timeout=self.timeout)
