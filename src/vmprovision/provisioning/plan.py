"""
Provisioning plans.

build_plan derives every path a session will touch from the profile, the
validated request and the storage directory. It is a pure computation and
never looks at the filesystem.
"""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple
from urllib.parse import unquote, urlparse

from ..constants import StepName
from .collaborators import DiskAttachment
from .os_profile import Credentials, OSFamily, OSProfile
from .request import ResourceSpec


@dataclass(frozen=True)
class ProvisionPlan:
    """Everything needed to realize one VM, built once and consumed once."""

    profile: OSProfile
    spec: ResourceSpec
    vm_dir: Path
    disk_path: Path
    seed_path: Optional[Path] = None
    installer_iso_path: Optional[Path] = None
    driver_iso_locator: Optional[str] = None
    driver_iso_path: Optional[Path] = None
    credentials: Optional[Credentials] = None
    steps: Tuple[str, ...] = ()

    @property
    def vm_name(self) -> str:
        return self.spec.vm_name

    @property
    def family(self) -> OSFamily:
        return self.profile.family

    def disks(self) -> List[DiskAttachment]:
        """Ordered attachments handed to the hypervisor launcher."""
        if self.family is OSFamily.LINUX_CLOUD_IMAGE:
            return [
                DiskAttachment(self.disk_path, device="disk", format="qcow2", bus="virtio"),
                DiskAttachment(self.seed_path, device="cdrom", format="raw", bus="sata"),
            ]

        disks = [
            DiskAttachment(self.disk_path, device="disk", format="qcow2", bus="virtio"),
            DiskAttachment(self.installer_iso_path, device="cdrom", format="raw",
                           bus="sata", installer=True),
        ]
        if self.driver_iso_path is not None:
            disks.append(DiskAttachment(self.driver_iso_path, device="cdrom", format="raw", bus="sata"))
        return disks

    def describe(self) -> List[str]:
        """Human readable lines summarizing the plan."""
        lines = [
            f"Profile:  {self.profile.label} ({self.family.value}, variant {self.profile.variant_tag})",
            f"VM:       {self.vm_name}, {self.spec.memory_mb} MB, {self.spec.vcpu_count} vCPU, "
            f"disk {self.spec.disk_size}",
            f"Source:   {self.profile.source_locator}",
            f"Disk:     {self.disk_path}",
        ]
        if self.seed_path is not None:
            lines.append(f"Seed ISO: {self.seed_path}")
        if self.installer_iso_path is not None:
            lines.append(f"Installer ISO: {self.installer_iso_path}")
        if self.driver_iso_path is not None:
            lines.append(f"Driver ISO: {self.driver_iso_path}")
        if self.credentials is not None:
            lines.append(f"Login:    {self.credentials.username}")
        lines.append(f"Steps:    {' -> '.join(self.steps)}")
        return lines


def locator_filename(locator: str) -> str:
    """Return the file name a URL or path points at."""
    parsed = urlparse(locator)
    if parsed.scheme in ("http", "https", "ftp", "file"):
        name = PurePosixPath(unquote(parsed.path)).name
    else:
        name = PurePosixPath(locator).name
    return name or "download.iso"


def resolve_credentials(profile: OSProfile, spec: ResourceSpec) -> Optional[Credentials]:
    """Merge per-request overrides over the profile's default login."""
    if profile.default_credentials is None:
        return None
    defaults = profile.default_credentials
    return Credentials(
        username=spec.username or defaults.username,
        password=spec.password if spec.password is not None else defaults.password,
    )


def build_plan(profile: OSProfile, spec: ResourceSpec, vm_dir,
               driver_iso: Optional[str] = None) -> ProvisionPlan:
    """
    Derive the provisioning plan for a validated request.

    Args:
        profile: The resolved OS profile
        spec: The validated request
        vm_dir: Storage directory holding disks and ISOs
        driver_iso: Optional URL or path of a driver ISO for installer guests

    Returns:
        ProvisionPlan: Paths and ordered step names for this session
    """
    vm_dir = Path(vm_dir)
    name = spec.vm_name

    if profile.family is OSFamily.LINUX_CLOUD_IMAGE:
        return ProvisionPlan(
            profile=profile,
            spec=spec,
            vm_dir=vm_dir,
            disk_path=vm_dir / f"{name}.img",
            seed_path=vm_dir / f"{name}-seed.iso",
            credentials=resolve_credentials(profile, spec),
            steps=(StepName.FETCH, StepName.RESIZE, StepName.SEED, StepName.LAUNCH),
        )

    if profile.family is OSFamily.WINDOWS_INSTALLER:
        steps = [StepName.FETCH]
        driver_path = None
        if driver_iso:
            driver_path = vm_dir / locator_filename(driver_iso)
            steps.append(StepName.FETCH_DRIVERS)
        steps.extend([StepName.CREATE, StepName.LAUNCH])
        return ProvisionPlan(
            profile=profile,
            spec=spec,
            vm_dir=vm_dir,
            disk_path=vm_dir / f"{name}.qcow2",
            installer_iso_path=vm_dir / locator_filename(profile.source_locator),
            driver_iso_locator=driver_iso or None,
            driver_iso_path=driver_path,
            steps=tuple(steps),
        )

    raise ValueError(f"Unhandled OS family: {profile.family}")
