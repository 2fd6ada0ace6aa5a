"""
Tests for the libvirt-python hypervisor launcher
"""

import unittest
from unittest.mock import patch, MagicMock
import sys
import os
import xml.etree.ElementTree as ET
from pathlib import Path

# Add the src directory to the path to import vmprovision modules
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

try:
    import libvirt
except ImportError:
    libvirt = None

from vmprovision.errors import LaunchError
from vmprovision.provisioning.collaborators import DiskAttachment, GraphicsConfig, NetworkConfig


@unittest.skipIf(libvirt is None, "libvirt-python is not installed")
class TestLibvirtLauncher(unittest.TestCase):
    def setUp(self):
        from vmprovision.provisioning.tools.libvirt_launcher import LibvirtLauncher, METADATA_NS
        self.metadata_ns = METADATA_NS
        self.launcher = LibvirtLauncher(uri="qemu:///system")
        self.cloud_disks = [
            DiskAttachment(Path("/vms/test1.img")),
            DiskAttachment(Path("/vms/test1-seed.iso"), device="cdrom", format="raw", bus="sata"),
        ]
        self.network = NetworkConfig("bridge", "br0", "virtio")

    def test_generate_xml_for_cloud_image(self):
        xml = self.launcher.generate_xml("test1", 2048, 2, self.cloud_disks, "ubuntu22.04",
                                         self.network)
        root = ET.fromstring(xml)
        self.assertEqual(root.get("type"), "kvm")
        self.assertEqual(root.find("name").text, "test1")
        self.assertEqual(root.find("memory").text, str(2048 * 1024))
        self.assertEqual(root.find("vcpu").text, "2")
        self.assertEqual([b.get("dev") for b in root.findall("os/boot")], ["hd"])

        disks = root.findall("devices/disk")
        self.assertEqual([d.find("target").get("dev") for d in disks], ["vda", "sda"])
        self.assertIsNotNone(disks[1].find("readonly"))
        self.assertEqual(disks[0].find("driver").get("type"), "qcow2")

        interface = root.find("devices/interface")
        self.assertEqual(interface.get("type"), "bridge")
        self.assertEqual(interface.find("source").get("bridge"), "br0")

        profile = root.find(f"metadata/{{{self.metadata_ns}}}profile")
        self.assertEqual(profile.get("variant"), "ubuntu22.04")

    def test_generate_xml_for_installer(self):
        disks = [
            DiskAttachment(Path("/vms/win1.qcow2")),
            DiskAttachment(Path("/vms/win.iso"), device="cdrom", format="raw", bus="sata", installer=True),
            DiskAttachment(Path("/vms/virtio-win.iso"), device="cdrom", format="raw", bus="sata"),
        ]
        xml = self.launcher.generate_xml("win1", 4096, 4, disks, "win10",
                                         NetworkConfig("network", "default", "e1000"))
        root = ET.fromstring(xml)
        self.assertEqual([b.get("dev") for b in root.findall("os/boot")], ["cdrom", "hd"])
        targets = [d.find("target").get("dev") for d in root.findall("devices/disk")]
        self.assertEqual(targets, ["vda", "sda", "sdb"])
        self.assertEqual(root.find("devices/interface/source").get("network"), "default")

    def test_headless_graphics(self):
        from vmprovision.provisioning.tools.libvirt_launcher import LibvirtLauncher
        launcher = LibvirtLauncher(graphics=GraphicsConfig("none"))
        root = ET.fromstring(launcher.generate_xml("t", 512, 1, self.cloud_disks, "debian12",
                                                   self.network))
        self.assertIsNone(root.find("devices/graphics"))

    def test_unsupported_bus(self):
        disks = [DiskAttachment(Path("/vms/t.img"), bus="floppy")]
        with self.assertRaises(LaunchError):
            self.launcher.generate_xml("t", 512, 1, disks, "debian12", self.network)

    @patch("vmprovision.provisioning.tools.libvirt_launcher.register_error_handler")
    @patch("vmprovision.provisioning.tools.libvirt_launcher.libvirt.open")
    def test_launch_defines_and_starts(self, mock_open, mock_register):
        conn = MagicMock()
        conn.lookupByName.side_effect = libvirt.libvirtError("Domain not found")
        mock_open.return_value = conn

        self.launcher.launch("test1", 2048, 2, self.cloud_disks, "ubuntu22.04", self.network)

        mock_register.assert_called_once()
        mock_open.assert_called_once_with("qemu:///system")
        conn.defineXML.assert_called_once()
        self.assertIn("<name>test1</name>", conn.defineXML.call_args[0][0])
        conn.defineXML.return_value.create.assert_called_once()

    @patch("vmprovision.provisioning.tools.libvirt_launcher.register_error_handler")
    @patch("vmprovision.provisioning.tools.libvirt_launcher.libvirt.open")
    def test_launch_refuses_existing_domain(self, mock_open, mock_register):
        conn = MagicMock()
        mock_open.return_value = conn
        with self.assertRaises(LaunchError):
            self.launcher.launch("test1", 2048, 2, self.cloud_disks, "ubuntu22.04", self.network)
        conn.defineXML.assert_not_called()

    @patch("vmprovision.provisioning.tools.libvirt_launcher.register_error_handler")
    @patch("vmprovision.provisioning.tools.libvirt_launcher.libvirt.open")
    def test_connection_failure(self, mock_open, mock_register):
        mock_open.side_effect = libvirt.libvirtError("Failed to connect socket")
        with self.assertRaises(LaunchError):
            self.launcher.launch("test1", 2048, 2, self.cloud_disks, "ubuntu22.04", self.network)

    @patch("vmprovision.provisioning.tools.libvirt_launcher.register_error_handler")
    @patch("vmprovision.provisioning.tools.libvirt_launcher.libvirt.open")
    def test_define_failure(self, mock_open, mock_register):
        conn = MagicMock()
        conn.lookupByName.side_effect = libvirt.libvirtError("Domain not found")
        conn.defineXML.side_effect = libvirt.libvirtError("invalid argument")
        mock_open.return_value = conn
        with self.assertRaises(LaunchError):
            self.launcher.launch("test1", 2048, 2, self.cloud_disks, "ubuntu22.04", self.network)


@unittest.skipIf(libvirt is None, "libvirt-python is not installed")
class TestLibvirtErrorHandler(unittest.TestCase):
    def test_errors_go_to_log(self):
        from vmprovision.libvirt_error_handler import libvirt_error_handler
        with self.assertLogs(level="ERROR") as logs:
            libvirt_error_handler(None, (42, 10, "Domain not found", libvirt.VIR_ERR_ERROR))
        self.assertIn("Domain not found", logs.output[0])

    def test_warnings_logged_as_warnings(self):
        from vmprovision.libvirt_error_handler import libvirt_error_handler
        with self.assertLogs(level="WARNING") as logs:
            libvirt_error_handler(None, (1, 2, "careful", libvirt.VIR_ERR_WARNING))
        self.assertTrue(logs.output[0].startswith("WARNING"))


if __name__ == "__main__":
    unittest.main()
