"""
Provisioning requests and their validation.

A ProvisionRequest holds the raw values typed by the user. validate_request
checks every field, reports every violation at once and, when all pass,
returns a ResourceSpec with typed values. Validation has no side effects.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional

from ..errors import RequestValidationError, ValidationError

VM_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
NUMBER_PATTERN = re.compile(r"^[0-9]+$")
DISK_SIZE_PATTERN = re.compile(r"^([0-9]+)([MG])$")
USERNAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]*$")

INVALID_NAME = "InvalidName"
INVALID_NUMBER = "InvalidNumber"
INVALID_SIZE = "InvalidSize"
INVALID_USERNAME = "InvalidUsername"
INVALID_PASSWORD = "InvalidPassword"


@dataclass(frozen=True)
class DiskSize:
    """A disk size as accepted by qemu-img, e.g. 20G."""

    amount: int
    unit: str  # "M" or "G"

    @property
    def megabytes(self) -> int:
        return self.amount * 1024 if self.unit == "G" else self.amount

    def __str__(self) -> str:
        return f"{self.amount}{self.unit}"


@dataclass(frozen=True)
class ProvisionRequest:
    """Raw, unvalidated user input for one provisioning session."""

    vm_name: Any
    memory_mb: Any
    vcpu_count: Any
    disk_size: Any
    username: Optional[str] = None
    password: Optional[str] = None

    def __repr__(self) -> str:
        password = None if self.password is None else "***"
        return (
            f"ProvisionRequest(vm_name={self.vm_name!r}, memory_mb={self.memory_mb!r}, "
            f"vcpu_count={self.vcpu_count!r}, disk_size={self.disk_size!r}, "
            f"username={self.username!r}, password={password!r})"
        )


@dataclass(frozen=True)
class ResourceSpec:
    """A validated request."""

    vm_name: str
    memory_mb: int
    vcpu_count: int
    disk_size: DiskSize
    username: Optional[str] = None
    password: Optional[str] = None

    def __repr__(self) -> str:
        password = None if self.password is None else "***"
        return (
            f"ResourceSpec(vm_name={self.vm_name!r}, memory_mb={self.memory_mb}, "
            f"vcpu_count={self.vcpu_count}, disk_size='{self.disk_size}', "
            f"username={self.username!r}, password={password!r})"
        )


def validate_vm_name(value: Any) -> str:
    """Accept only non-empty names made of letters, digits, '-' and '_'."""
    if not isinstance(value, str) or not VM_NAME_PATTERN.fullmatch(value):
        raise ValidationError(
            "vm_name", INVALID_NAME, value,
            "VM name can only contain letters, numbers, hyphens, and underscores",
        )
    return value


def validate_positive_int(field_name: str, value: Any) -> int:
    """Accept positive ints, or strings of digits whose value is positive."""
    number = None
    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, str) and NUMBER_PATTERN.fullmatch(value):
        number = int(value)

    if number is None or number <= 0:
        raise ValidationError(field_name, INVALID_NUMBER, value, "Must be a positive number")
    return number


def validate_disk_size(value: Any) -> DiskSize:
    """Accept sizes such as 512M or 40G; the unit is a single upper-case M or G."""
    match = DISK_SIZE_PATTERN.fullmatch(value) if isinstance(value, str) else None
    if match is None or int(match.group(1)) <= 0:
        raise ValidationError(
            "disk_size", INVALID_SIZE, value,
            "Must be a size with unit (e.g., 100G, 512M)",
        )
    return DiskSize(int(match.group(1)), match.group(2))


def validate_username(value: Any) -> str:
    if not isinstance(value, str) or not USERNAME_PATTERN.fullmatch(value):
        raise ValidationError(
            "username", INVALID_USERNAME, value,
            "Username must start with a letter or underscore, and contain only "
            "letters, numbers, hyphens, and underscores",
        )
    return value


def validate_password(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError("password", INVALID_PASSWORD, None, "Password must not be empty")
    return value


def validate_request(request: ProvisionRequest) -> ResourceSpec:
    """
    Validate every field of a request.

    All checks run even after a failure so the caller can report every
    problem at once.

    Raises:
        RequestValidationError: Listing each invalid field
    """
    errors: List[ValidationError] = []

    def check(func, *args):
        try:
            return func(*args)
        except ValidationError as e:
            errors.append(e)
            return None

    vm_name = check(validate_vm_name, request.vm_name)
    memory_mb = check(validate_positive_int, "memory_mb", request.memory_mb)
    vcpu_count = check(validate_positive_int, "vcpu_count", request.vcpu_count)
    disk_size = check(validate_disk_size, request.disk_size)
    username = None
    password = None
    if request.username is not None:
        username = check(validate_username, request.username)
    if request.password is not None:
        password = check(validate_password, request.password)

    if errors:
        raise RequestValidationError(errors)

    return ResourceSpec(
        vm_name=vm_name,
        memory_mb=memory_mb,
        vcpu_count=vcpu_count,
        disk_size=disk_size,
        username=username,
        password=password,
    )
