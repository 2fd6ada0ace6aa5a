"""
the Cmd line tool

Asks for an OS profile and the VM resources (or takes them as flags),
validates them, then provisions the VM. Every failure prints a categorized
message and exits with the code of its category.
"""

import argparse
import getpass
import logging
import sys
from typing import Callable, Optional

from .config import get_log_path, get_step_timeout, get_vm_dir, load_config
from .constants import BANNER, AppInfo, ExitCode, StatusLevel, WINDOWS_DRIVER_HINT
from .errors import (
    ConfigurationError,
    ExternalToolFailure,
    ProfileNotFound,
    ProvisionError,
    RequestValidationError,
    StepTimeout,
)
from .provisioning.collaborators import Collaborators, GraphicsConfig, NetworkConfig
from .provisioning.orchestrator import ProvisioningOrchestrator
from .provisioning.os_profile import OSFamily, OSProfile
from .provisioning.profile_registry import ProfileRegistry, load_registry
from .provisioning.request import ProvisionRequest
from .provisioning.tools import (
    CloudInitSeedGenerator,
    QemuImgFormatter,
    UrlImageFetcher,
    VirtInstallLauncher,
)
from .utils import print_status, setup_logging, supports_colors

LAUNCHERS = ("virt-install", "libvirt")

INSTALL_HINT = (
    "On Ubuntu/Debian: sudo apt install qemu-utils virtinst genisoimage openssl"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=AppInfo.name,
        description="Create a KVM virtual machine from a cloud image or installer ISO.",
    )
    parser.add_argument("--os", dest="os_choice", metavar="LABEL|N",
                        help="OS profile label or its number in the menu")
    parser.add_argument("--name", dest="vm_name", help="VM name")
    parser.add_argument("--memory", help="Memory in MB (e.g., 2048)")
    parser.add_argument("--cpus", help="CPU count (e.g., 2)")
    parser.add_argument("--disk-size", help="Disk size (e.g., 20G)")
    parser.add_argument("--username", help="Login created on cloud images")
    parser.add_argument("--password", help="Password for the cloud image login")
    parser.add_argument("--ask-password", action="store_true",
                        help="Prompt for the cloud image password without echo")
    parser.add_argument("--vm-dir", help="Directory holding VM disks and ISOs")
    parser.add_argument("--launcher", choices=LAUNCHERS,
                        help="How to define and boot the VM")
    parser.add_argument("--list", action="store_true", help="List OS profiles and exit")
    parser.add_argument("--dry-run", action="store_true",
                        help="Validate and print the plan without running it")
    parser.add_argument("--no-banner", action="store_true", help="Do not print the banner")
    parser.add_argument("--version", action="version",
                        version=f"{AppInfo.name} {AppInfo.version}")
    return parser


def build_collaborators(config, launcher_name: Optional[str] = None,
                        timeout: Optional[float] = None) -> Collaborators:
    """Create the tool-backed collaborators selected by the configuration."""
    launcher_name = launcher_name or config.get("LAUNCHER") or "virt-install"
    graphics = GraphicsConfig.from_config(config.get("GRAPHICS"))

    if launcher_name == "virt-install":
        launcher = VirtInstallLauncher(connect_uri=config.get("LIBVIRT_URI"),
                                       graphics=graphics, timeout=timeout)
    elif launcher_name == "libvirt":
        try:
            from .provisioning.tools.libvirt_launcher import LibvirtLauncher
        except ImportError as e:
            raise ConfigurationError(
                f"The libvirt launcher needs libvirt-python: {e}"
            ) from e
        launcher = LibvirtLauncher(uri=config.get("LIBVIRT_URI") or "qemu:///system",
                                   graphics=graphics)
    else:
        raise ConfigurationError(
            f"Unknown launcher {launcher_name!r}, expected one of: {', '.join(LAUNCHERS)}"
        )

    return Collaborators(
        fetcher=UrlImageFetcher(timeout=timeout),
        formatter=QemuImgFormatter(timeout=timeout),
        seed_generator=CloudInitSeedGenerator(timeout=timeout),
        launcher=launcher,
    )


def prompt(message: str, input_func: Callable[[str], str] = input) -> str:
    """Ask for one value; end of input counts as an empty answer."""
    color = supports_colors(sys.stdout)
    label = f"\033[{StatusLevel.COLORS[StatusLevel.INPUT]}m[INPUT]\033[0m " if color else "[INPUT] "
    try:
        return input_func(label + message).strip()
    except EOFError:
        return ""


def print_menu(registry: ProfileRegistry, stream=None) -> None:
    stream = stream or sys.stdout
    print_status(StatusLevel.INFO, "Select an OS to set up:", stream)
    for index, profile in enumerate(registry.profiles(), start=1):
        print(f"  {index}) {profile.label}", file=stream)


def choose_profile(registry: ProfileRegistry, choice: Optional[str],
                   input_func: Callable[[str], str] = input, stream=None) -> OSProfile:
    """Resolve --os, or show the menu and ask."""
    if choice:
        return registry.select(choice)
    print_menu(registry, stream)
    answer = prompt(f"Enter choice 1-{len(registry)}: ", input_func)
    return registry.select(answer)


def gather_request(args, input_func: Callable[[str], str] = input) -> ProvisionRequest:
    """Take the resource values from flags, prompting for the missing ones."""
    vm_name = args.vm_name if args.vm_name is not None else prompt("VM Name: ", input_func)
    memory = args.memory if args.memory is not None else prompt(
        "Memory in MB (e.g., 2048): ", input_func)
    cpus = args.cpus if args.cpus is not None else prompt("CPU count (e.g., 2): ", input_func)
    disk_size = args.disk_size if args.disk_size is not None else prompt(
        "Disk size (e.g., 20G): ", input_func)

    password = args.password
    if args.ask_password and password is None:
        password = getpass.getpass("Password for the VM login: ")

    return ProvisionRequest(
        vm_name=vm_name,
        memory_mb=memory,
        vcpu_count=cpus,
        disk_size=disk_size,
        username=args.username,
        password=password,
    )


class ConsoleProgress:
    """Print step changes as status lines and download progress in place."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self.inline = supports_colors(self.stream)
        self._pending = False

    def __call__(self, stage: str, percent: int) -> None:
        if stage.startswith("Step "):
            self._end_inline()
            print_status(StatusLevel.INFO, stage, self.stream)
        elif self.inline and "%" in stage:
            self.stream.write(f"\r  {stage} ")
            self.stream.flush()
            self._pending = True
        else:
            self._end_inline()

    def _end_inline(self) -> None:
        if self._pending:
            self.stream.write("\n")
            self._pending = False


def report_error(error: ProvisionError, stream=None) -> int:
    """Print a categorized failure and return its exit code."""
    stream = stream or sys.stdout
    if isinstance(error, RequestValidationError):
        for item in error.errors:
            print_status(StatusLevel.ERROR, f"{item.field}: {item.message}", stream)
    elif isinstance(error, StepTimeout):
        print_status(StatusLevel.ERROR, f"Timeout during step '{error.step}': {error.cause}", stream)
    elif isinstance(error, ExternalToolFailure):
        print_status(StatusLevel.ERROR, f"Step '{error.step}' failed: {error.cause}", stream)
        print_status(StatusLevel.INFO, "Files created by earlier steps were left in place.", stream)
    elif isinstance(error, ProfileNotFound):
        print_status(StatusLevel.ERROR, f"Invalid option: {error.label!r}", stream)
    elif isinstance(error, ConfigurationError):
        print_status(StatusLevel.ERROR, str(error), stream)
        if "Missing dependencies" in str(error):
            print_status(StatusLevel.INFO, INSTALL_HINT, stream)
    else:
        print_status(StatusLevel.ERROR, str(error), stream)
    return error.exit_code


def main(argv=None, input_func: Callable[[str], str] = input, stream=None) -> int:
    """Entry point for the vmprovision command-line interface."""
    stream = stream or sys.stdout
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ConfigurationError as e:
        return report_error(e, stream)

    try:
        setup_logging(get_log_path(), config.get("LOG_LEVEL", "INFO"))
    except OSError as e:
        print(f"Failed to setup logging: {e}", file=sys.stderr)

    try:
        registry = load_registry(config)
        if args.list:
            print_menu(registry, stream)
            return ExitCode.SUCCESS

        if not args.no_banner:
            print(BANNER, file=stream)

        profile = choose_profile(registry, args.os_choice, input_func, stream)
        request = gather_request(args, input_func)

        timeout = get_step_timeout(config)
        orchestrator = ProvisioningOrchestrator(
            build_collaborators(config, args.launcher, timeout),
            vm_dir=get_vm_dir(config, args.vm_dir),
            driver_iso=config.get("DRIVER_ISO"),
            network=NetworkConfig.from_config(config.get("NETWORK")),
            progress_callback=ConsoleProgress(stream),
        )

        if args.dry_run:
            plan = orchestrator.prepare(profile, request)
            print_status(StatusLevel.INFO, "Dry run, nothing will be created:", stream)
            for line in plan.describe():
                print(f"  {line}", file=stream)
            return ExitCode.SUCCESS

        if profile.family is OSFamily.LINUX_CLOUD_IMAGE:
            print_status(StatusLevel.INFO, f"Using cloud-image: {profile.source_locator}", stream)
        else:
            print_status(StatusLevel.INFO, f"Using ISO: {profile.source_locator}", stream)

        outcome = orchestrator.provision(profile, request)
    except ProvisionError as e:
        logging.error(f"{e.category}: {e}")
        return report_error(e, stream)
    except KeyboardInterrupt:
        print("", file=stream)
        print_status(StatusLevel.WARN, "Interrupted", stream)
        return ExitCode.INTERRUPTED

    if not outcome.succeeded:
        return report_error(outcome.error, stream)

    if profile.family is OSFamily.WINDOWS_INSTALLER:
        print_status(StatusLevel.SUCCESS,
                     f"VM {outcome.plan.vm_name} created (Windows: {profile.label})", stream)
        print_status(StatusLevel.WARN, WINDOWS_DRIVER_HINT, stream)
    else:
        print_status(StatusLevel.SUCCESS,
                     f"VM {outcome.plan.vm_name} created (type: {profile.label})", stream)
        credentials = outcome.plan.credentials
        if credentials is not None:
            print_status(StatusLevel.INFO, f"Login: {credentials.username}", stream)
    return ExitCode.SUCCESS


if __name__ == "__main__":
    sys.exit(main())
