"""
Collaborator Interfaces for VM Provisioning

The orchestrator never touches images, disks or the hypervisor itself. It
drives four collaborators through the interfaces below. Implementations
return on success and raise a ToolError subclass on failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence

from ..errors import ConfigurationError
from .os_profile import Credentials
from .request import DiskSize

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class DiskAttachment:
    """A disk or optical image attached to the guest."""

    path: Path
    device: str = "disk"  # "disk" or "cdrom"
    format: str = "qcow2"
    bus: str = "virtio"
    installer: bool = False  # boot media for an installer ISO

    @property
    def is_cdrom(self) -> bool:
        return self.device == "cdrom"


@dataclass(frozen=True)
class NetworkConfig:
    """Guest network attachment."""

    kind: str = "bridge"  # "bridge" or "network"
    source: str = "br0"
    model: str = "virtio"

    @classmethod
    def from_config(cls, data: Optional[Mapping[str, Any]]) -> "NetworkConfig":
        data = data or {}
        kind = str(data.get("type", cls.kind))
        if kind not in ("bridge", "network"):
            raise ConfigurationError(f"Unsupported network type: {kind!r}")
        return cls(
            kind=kind,
            source=str(data.get("source", cls.source)),
            model=str(data.get("model", cls.model)),
        )


@dataclass(frozen=True)
class GraphicsConfig:
    """Guest console."""

    kind: str = "vnc"
    listen: str = "0.0.0.0"

    @classmethod
    def from_config(cls, data: Optional[Mapping[str, Any]]) -> "GraphicsConfig":
        data = data or {}
        return cls(
            kind=str(data.get("type", cls.kind)),
            listen=str(data.get("listen", cls.listen)),
        )


class Collaborator(ABC):
    """Common base: every collaborator declares the host tools it runs."""

    @property
    def required_tools(self) -> List[str]:
        """Executables that must be on PATH for this collaborator to work."""
        return []


class ImageFetcher(Collaborator):
    """Materializes a base image or ISO at a local path."""

    @abstractmethod
    def fetch(self, locator: str, destination: Path,
              progress_callback: Optional[ProgressCallback] = None) -> None:
        """Fetch locator (URL or path) into destination."""
        pass


class DiskFormatter(Collaborator):
    """Resizes or creates disk images."""

    @abstractmethod
    def resize(self, path: Path, size: DiskSize) -> None:
        """Grow an existing image to size."""
        pass

    @abstractmethod
    def create_empty(self, path: Path, size: DiskSize) -> None:
        """Create an empty image of size."""
        pass


class SeedImageGenerator(Collaborator):
    """Builds the first-boot configuration volume for cloud images."""

    @abstractmethod
    def build_seed_image(self, vm_name: str, credentials: Credentials, output_path: Path) -> None:
        """Write a seed image carrying hostname and login for vm_name."""
        pass


class HypervisorLauncher(Collaborator):
    """Defines and boots the guest."""

    @abstractmethod
    def launch(
        self,
        name: str,
        memory_mb: int,
        vcpu_count: int,
        disks: Sequence[DiskAttachment],
        variant_tag: str,
        network: NetworkConfig,
    ) -> None:
        """Define and start a guest named name."""
        pass


@dataclass
class Collaborators:
    """The set of external collaborators one orchestrator drives."""

    fetcher: ImageFetcher
    formatter: DiskFormatter
    seed_generator: SeedImageGenerator
    launcher: HypervisorLauncher

    def required_tools(self, cloud_image: bool) -> List[str]:
        """Tools needed for one provisioning path, without duplicates."""
        members = [self.fetcher, self.formatter, self.launcher]
        if cloud_image:
            members.append(self.seed_generator)
        tools: List[str] = []
        for member in members:
            for tool in member.required_tools:
                if tool not in tools:
                    tools.append(tool)
        return tools
