"""
Error taxonomy for VM provisioning.

Every failure surfaced to the operator is a ProvisionError carrying the exit
code of its category. Collaborators raise ToolError subclasses, which the
orchestrator wraps into ExternalToolFailure naming the failing step.
"""

from typing import List, Optional

from .constants import ExitCode


class ProvisionError(Exception):
    """Base class for every categorized provisioning failure."""

    category = "error"
    exit_code = 1


class ValidationError(ProvisionError):
    """A single malformed input field."""

    category = "validation"
    exit_code = ExitCode.VALIDATION

    def __init__(self, field: str, reason: str, value=None, message: Optional[str] = None):
        self.field = field
        self.reason = reason
        self.value = value
        self.message = message or reason
        super().__init__(f"{field}: {self.message}")


class RequestValidationError(ProvisionError):
    """All field violations found in one request."""

    category = "validation"
    exit_code = ExitCode.VALIDATION

    def __init__(self, errors: List[ValidationError]):
        self.errors = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))

    @property
    def reasons(self) -> List[str]:
        return [e.reason for e in self.errors]

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]


class ProfileNotFound(ProvisionError, LookupError):
    """Unknown OS profile selection."""

    category = "lookup"
    exit_code = ExitCode.NOT_FOUND

    def __init__(self, label):
        self.label = label
        super().__init__(f"Unknown OS profile: {label!r}")


class ConfigurationError(ProvisionError):
    """Broken configuration or host prerequisites; fatal before any step runs."""

    category = "configuration"
    exit_code = ExitCode.CONFIGURATION


class ExternalToolFailure(ProvisionError):
    """A delegated step exited abnormally or was unreachable."""

    category = "external-tool"
    exit_code = ExitCode.TOOL_FAILURE

    def __init__(self, step: str, cause):
        self.step = step
        self.cause = cause
        super().__init__(f"Step '{step}' failed: {cause}")


class StepTimeout(ExternalToolFailure):
    """A delegated step did not finish within its timeout."""

    category = "timeout"
    exit_code = ExitCode.TIMEOUT

    def __init__(self, step: str, timeout, cause=None):
        self.timeout = timeout
        super().__init__(step, cause or f"Timeout after {timeout}s")


class ToolError(Exception):
    """Raised by a collaborator when its underlying tool fails."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class ToolTimeout(ToolError):
    """Raised by a collaborator when its underlying tool times out."""

    def __init__(self, message: str, timeout):
        self.timeout = timeout
        super().__init__(message)


class FetchError(ToolError):
    pass


class FormatError(ToolError):
    pass


class SeedError(ToolError):
    pass


class LaunchError(ToolError):
    pass
