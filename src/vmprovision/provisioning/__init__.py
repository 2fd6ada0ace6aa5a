"""
VM Provisioning System

This package turns a named OS profile and a resource request into a running
VM by driving external tools: an image fetcher, a disk formatter, a
cloud-init seed generator and a hypervisor launcher.
"""

from .collaborators import Collaborators, NetworkConfig
from .orchestrator import ProvisioningOrchestrator, ProvisionOutcome, SessionState
from .os_profile import Credentials, OSFamily, OSProfile
from .plan import ProvisionPlan, build_plan
from .profile_registry import ProfileRegistry, load_registry
from .request import ProvisionRequest, ResourceSpec, validate_request

__all__ = [
    "Collaborators",
    "Credentials",
    "NetworkConfig",
    "OSFamily",
    "OSProfile",
    "ProfileRegistry",
    "ProvisionOutcome",
    "ProvisionPlan",
    "ProvisionRequest",
    "ProvisioningOrchestrator",
    "ResourceSpec",
    "SessionState",
    "build_plan",
    "load_registry",
    "validate_request",
]
