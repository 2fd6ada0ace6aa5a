"""
Provision KVM guests from named OS profiles.
"""

from .constants import AppInfo

__version__ = AppInfo.version
