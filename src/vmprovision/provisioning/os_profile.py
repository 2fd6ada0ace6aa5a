"""
OS Profile definitions for VM Provisioning

This module defines the provisioning families and the immutable profile
records the registry hands out.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from ..errors import ConfigurationError


class OSFamily(Enum):
    """Provisioning paths. Each profile belongs to exactly one."""

    LINUX_CLOUD_IMAGE = "linux-cloud-image"
    WINDOWS_INSTALLER = "windows-installer"

    @classmethod
    def parse(cls, value: Any) -> "OSFamily":
        """Decode a family name, accepting the distribution aliases of older configs."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        alias = _FAMILY_ALIASES.get(key)
        if alias is not None:
            return alias
        try:
            return cls(key)
        except ValueError:
            raise ConfigurationError(f"Unknown OS family: {value!r}") from None


_FAMILY_ALIASES = {
    "ubuntu": OSFamily.LINUX_CLOUD_IMAGE,
    "debian": OSFamily.LINUX_CLOUD_IMAGE,
    "linux": OSFamily.LINUX_CLOUD_IMAGE,
    "windows": OSFamily.WINDOWS_INSTALLER,
}


@dataclass(frozen=True)
class Credentials:
    """Login created on first boot of a cloud image."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class OSProfile:
    """A named recipe for materializing a VM of one operating system."""

    label: str
    family: OSFamily
    variant_tag: str  # passed through to the hypervisor, e.g. "ubuntu22.04"
    source_locator: str  # cloud image or installer ISO URL/path
    default_credentials: Optional[Credentials] = None
    codename: Optional[str] = None

    def __post_init__(self):
        if not self.label:
            raise ConfigurationError("OS profile label must not be empty")
        if not isinstance(self.family, OSFamily):
            raise ConfigurationError(f"Profile {self.label!r} has no valid family")
        if not self.source_locator:
            raise ConfigurationError(f"Profile {self.label!r} has no source locator")
        if not self.variant_tag:
            raise ConfigurationError(f"Profile {self.label!r} has no variant tag")
        if self.family is OSFamily.LINUX_CLOUD_IMAGE and self.default_credentials is None:
            raise ConfigurationError(f"Cloud image profile {self.label!r} needs default credentials")
        if self.family is OSFamily.WINDOWS_INSTALLER and self.default_credentials is not None:
            raise ConfigurationError(f"Installer profile {self.label!r} cannot carry credentials")

    @property
    def is_cloud_image(self) -> bool:
        return self.family is OSFamily.LINUX_CLOUD_IMAGE

    def __str__(self) -> str:
        return self.label


def profile_from_dict(label: str, data: Mapping[str, Any]) -> OSProfile:
    """
    Decode a profile from its configuration mapping.

    Expected keys: family, variant, source, and for cloud images username
    and password. codename is optional.

    Raises:
        ConfigurationError: If the mapping is malformed or names an unknown family
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Profile {label!r} must be a mapping")

    missing = [key for key in ("family", "variant", "source") if not data.get(key)]
    if missing:
        raise ConfigurationError(f"Profile {label!r} is missing: {', '.join(missing)}")

    family = OSFamily.parse(data["family"])

    credentials = None
    if family is OSFamily.LINUX_CLOUD_IMAGE:
        username = data.get("username")
        password = data.get("password")
        if not username or password is None:
            raise ConfigurationError(f"Cloud image profile {label!r} needs username and password")
        credentials = Credentials(str(username), str(password))

    return OSProfile(
        label=str(label),
        family=family,
        variant_tag=str(data["variant"]),
        source_locator=str(data["source"]),
        default_credentials=credentials,
        codename=data.get("codename"),
    )
