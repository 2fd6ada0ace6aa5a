"""
Hypervisor launcher talking to libvirt directly.

Generates a KVM domain definition for the planned disks, defines it on the
configured connection and starts it.
"""

import logging
import xml.etree.ElementTree as ET
from typing import Optional, Sequence

import libvirt

from ...errors import LaunchError
from ...libvirt_error_handler import register_error_handler
from ..collaborators import DiskAttachment, GraphicsConfig, HypervisorLauncher, NetworkConfig

METADATA_NS = "https://github.com/vmprovision/xmlns/domain/1.0"


def _target_names(prefix: str):
    for letter in "abcdefghijklmnopqrstuvwxyz":
        yield f"{prefix}{letter}"


class LibvirtLauncher(HypervisorLauncher):
    """Define and start guests through libvirt-python."""

    def __init__(self, uri: str = "qemu:///system", graphics: Optional[GraphicsConfig] = None,
                 machine: str = "q35"):
        self.uri = uri
        self.graphics = graphics or GraphicsConfig()
        self.machine = machine
        self.logger = logging.getLogger(__name__)
        self._conn = None

    def _connect(self) -> libvirt.virConnect:
        if self._conn is None:
            register_error_handler()
            self.logger.info(f"Opening libvirt connection to {self.uri}")
            try:
                conn = libvirt.open(self.uri)
            except libvirt.libvirtError as e:
                raise LaunchError(f"Cannot connect to {self.uri}: {e}") from e
            if conn is None:
                raise LaunchError(f"libvirt.open('{self.uri}') returned None")
            self._conn = conn
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except libvirt.libvirtError as e:
                self.logger.warning(f"Error closing connection to {self.uri}: {e}")
            self._conn = None

    def generate_xml(
        self,
        name: str,
        memory_mb: int,
        vcpu_count: int,
        disks: Sequence[DiskAttachment],
        variant_tag: str,
        network: NetworkConfig,
    ) -> str:
        """
        Generates the libvirt XML for the VM.
        """
        domain = ET.Element("domain", type="kvm")
        ET.SubElement(domain, "name").text = name

        ET.register_namespace("vmprovision", METADATA_NS)
        metadata = ET.SubElement(domain, "metadata")
        ET.SubElement(metadata, f"{{{METADATA_NS}}}profile", {"variant": variant_tag})

        ET.SubElement(domain, "memory", unit="KiB").text = str(memory_mb * 1024)
        ET.SubElement(domain, "currentMemory", unit="KiB").text = str(memory_mb * 1024)
        ET.SubElement(domain, "vcpu", placement="static").text = str(vcpu_count)

        os_elem = ET.SubElement(domain, "os")
        ET.SubElement(os_elem, "type", arch="x86_64", machine=self.machine).text = "hvm"
        has_installer = any(disk.installer for disk in disks)
        boot_order = ["cdrom", "hd"] if has_installer else ["hd"]
        for dev in boot_order:
            ET.SubElement(os_elem, "boot", dev=dev)

        features = ET.SubElement(domain, "features")
        ET.SubElement(features, "acpi")
        ET.SubElement(features, "apic")

        ET.SubElement(domain, "cpu", mode="host-passthrough", check="none", migratable="on")
        ET.SubElement(domain, "clock", offset="utc")
        ET.SubElement(domain, "on_poweroff").text = "destroy"
        ET.SubElement(domain, "on_reboot").text = "restart"
        ET.SubElement(domain, "on_crash").text = "destroy"

        devices = ET.SubElement(domain, "devices")
        sd_names = _target_names("sd")
        targets = {"virtio": _target_names("vd"), "sata": sd_names,
                   "scsi": sd_names, "ide": _target_names("hd")}
        for disk in disks:
            names = targets.get(disk.bus)
            if names is None:
                raise LaunchError(f"Unsupported disk bus: {disk.bus}")
            disk_elem = ET.SubElement(devices, "disk", type="file", device=disk.device)
            ET.SubElement(disk_elem, "driver", name="qemu", type=disk.format)
            ET.SubElement(disk_elem, "source", file=str(disk.path))
            ET.SubElement(disk_elem, "target", dev=next(names), bus=disk.bus)
            if disk.is_cdrom:
                ET.SubElement(disk_elem, "readonly")

        interface = ET.SubElement(devices, "interface", type=network.kind)
        if network.kind == "bridge":
            ET.SubElement(interface, "source", bridge=network.source)
        else:
            ET.SubElement(interface, "source", network=network.source)
        ET.SubElement(interface, "model", type=network.model)

        if self.graphics.kind != "none":
            graphics = ET.SubElement(devices, "graphics", type=self.graphics.kind,
                                     port="-1", autoport="yes", listen=self.graphics.listen)
            ET.SubElement(graphics, "listen", type="address", address=self.graphics.listen)
            video = ET.SubElement(devices, "video")
            ET.SubElement(video, "model", type="virtio")

        console = ET.SubElement(devices, "console", type="pty")
        ET.SubElement(console, "target", type="serial", port="0")
        ET.SubElement(devices, "input", type="tablet", bus="usb")

        return ET.tostring(domain, encoding="unicode")

    def launch(
        self,
        name: str,
        memory_mb: int,
        vcpu_count: int,
        disks: Sequence[DiskAttachment],
        variant_tag: str,
        network: NetworkConfig,
    ) -> None:
        conn = self._connect()
        try:
            conn.lookupByName(name)
        except libvirt.libvirtError:
            pass  # no such domain yet
        else:
            raise LaunchError(f"A domain named {name} already exists on {self.uri}")

        xml_desc = self.generate_xml(name, memory_mb, vcpu_count, disks, variant_tag, network)
        self.logger.debug(f"Domain XML for {name}:\n{xml_desc}")
        try:
            dom = conn.defineXML(xml_desc)
            dom.create()
        except libvirt.libvirtError as e:
            raise LaunchError(f"Failed to start {name}: {e}") from e
        self.logger.info(f"Started domain {name} on {self.uri}")
