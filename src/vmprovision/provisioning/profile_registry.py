"""
Profile Registry for OS Provisioning

This module holds the fixed set of OS profiles offered in the menu. The
registry is built once at startup from the built-in profiles and the user's
configuration, and is read-only afterwards.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from ..errors import ConfigurationError, ProfileNotFound
from .os_profile import OSProfile, profile_from_dict

# Built-in profiles, in the same shape as the "profiles" config section
BUILTIN_PROFILES: Dict[str, Dict[str, Any]] = {
    "Ubuntu 22.04": {
        "family": "linux-cloud-image",
        "codename": "jammy",
        "variant": "ubuntu22.04",
        "source": "https://cloud-images.ubuntu.com/jammy/current/jammy-server-cloudimg-amd64.img",
        "username": "ubuntu",
        "password": "ubuntu",
    },
    "Ubuntu 24.04": {
        "family": "linux-cloud-image",
        "codename": "noble",
        "variant": "ubuntu24.04",
        "source": "https://cloud-images.ubuntu.com/noble/current/noble-server-cloudimg-amd64.img",
        "username": "ubuntu",
        "password": "ubuntu",
    },
    "Debian 12": {
        "family": "linux-cloud-image",
        "codename": "bookworm",
        "variant": "debian12",
        "source": "https://cloud.debian.org/images/cloud/bookworm/latest/debian-12-generic-amd64.qcow2",
        "username": "debian",
        "password": "debian",
    },
    "Windows 10": {
        "family": "windows-installer",
        "codename": "win10",
        "variant": "win10",
        "source": "https://software-download.microsoft.com/db/Win10_22H2_English_x64.iso",
    },
    "Windows Server": {
        "family": "windows-installer",
        "codename": "winserver",
        "variant": "win2k19",
        "source": "https://software-download.microsoft.com/pr/Windows_Server_2019_Updated_Dec_2021.iso",
    },
}


class ProfileRegistry:
    """Read-only registry of OS profiles keyed by label."""

    def __init__(self, profiles: Iterable[OSProfile] = ()):
        self._logger = logging.getLogger(__name__)
        self._profiles: Dict[str, OSProfile] = {}
        for profile in profiles:
            if profile.label in self._profiles:
                raise ConfigurationError(f"Duplicate OS profile label: {profile.label!r}")
            self._profiles[profile.label] = profile
        self._labels = sorted(self._profiles)
        self._logger.debug(f"Registry holds {len(self._labels)} profiles")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Mapping[str, Any]]) -> "ProfileRegistry":
        """Build a registry by decoding a label -> profile-mapping dictionary."""
        return cls(profile_from_dict(label, data) for label, data in mapping.items())

    def lookup(self, label: str) -> OSProfile:
        """Return the profile for label, raising ProfileNotFound if unknown."""
        try:
            return self._profiles[label]
        except (KeyError, TypeError):
            raise ProfileNotFound(label) from None

    def labels(self) -> List[str]:
        """Return all labels in stable, sorted menu order."""
        return list(self._labels)

    def profiles(self) -> List[OSProfile]:
        """Return all profiles in menu order."""
        return [self._profiles[label] for label in self._labels]

    def select(self, choice) -> OSProfile:
        """
        Resolve a menu choice: a 1-based index into the sorted labels or an exact label.
        """
        if isinstance(choice, str) and choice in self._profiles:
            return self._profiles[choice]

        text = str(choice).strip()
        if text.isdigit():
            index = int(text)
            if 1 <= index <= len(self._labels):
                return self._profiles[self._labels[index - 1]]
        elif text in self._profiles:
            return self._profiles[text]

        raise ProfileNotFound(choice)

    def __contains__(self, label) -> bool:
        return label in self._profiles

    def __iter__(self) -> Iterator[OSProfile]:
        return iter(self.profiles())

    def __len__(self) -> int:
        return len(self._profiles)


def load_registry(config: Optional[Mapping[str, Any]] = None) -> ProfileRegistry:
    """
    Build the registry from built-in profiles merged with user-defined ones.

    User profiles from the "profiles" config section replace built-ins with
    the same label. Any malformed entry aborts loading with ConfigurationError.
    """
    merged: Dict[str, Mapping[str, Any]] = dict(BUILTIN_PROFILES)
    user_profiles = (config or {}).get("profiles") or {}
    if not isinstance(user_profiles, Mapping):
        raise ConfigurationError("The 'profiles' configuration must be a mapping")

    for label, data in user_profiles.items():
        if label in merged:
            logging.info(f"Overriding built-in profile {label!r} from configuration")
        merged[str(label)] = data

    return ProfileRegistry.from_mapping(merged)
