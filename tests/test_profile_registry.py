import unittest
import sys
import os

# Add the src directory to the path to import vmprovision modules
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from vmprovision.errors import ConfigurationError, ProfileNotFound
from vmprovision.provisioning.os_profile import (
    Credentials,
    OSFamily,
    OSProfile,
    profile_from_dict,
)
from vmprovision.provisioning.profile_registry import (
    BUILTIN_PROFILES,
    ProfileRegistry,
    load_registry,
)


class TestOSProfile(unittest.TestCase):
    def test_decode_cloud_profile(self):
        profile = profile_from_dict("Ubuntu 22.04", BUILTIN_PROFILES["Ubuntu 22.04"])
        self.assertEqual(profile.family, OSFamily.LINUX_CLOUD_IMAGE)
        self.assertEqual(profile.variant_tag, "ubuntu22.04")
        self.assertEqual(profile.codename, "jammy")
        self.assertEqual(profile.default_credentials, Credentials("ubuntu", "ubuntu"))
        self.assertTrue(profile.is_cloud_image)

    def test_decode_windows_profile(self):
        profile = profile_from_dict("Windows 10", BUILTIN_PROFILES["Windows 10"])
        self.assertEqual(profile.family, OSFamily.WINDOWS_INSTALLER)
        self.assertIsNone(profile.default_credentials)
        self.assertFalse(profile.is_cloud_image)

    def test_family_aliases(self):
        self.assertIs(OSFamily.parse("ubuntu"), OSFamily.LINUX_CLOUD_IMAGE)
        self.assertIs(OSFamily.parse("Windows"), OSFamily.WINDOWS_INSTALLER)
        self.assertIs(OSFamily.parse("linux-cloud-image"), OSFamily.LINUX_CLOUD_IMAGE)

    def test_unknown_family_rejected_at_load(self):
        with self.assertRaises(ConfigurationError):
            profile_from_dict("BSD", {"family": "freebsd", "variant": "freebsd14", "source": "x"})

    def test_cloud_profile_requires_credentials(self):
        with self.assertRaises(ConfigurationError):
            profile_from_dict("Fedora", {"family": "linux-cloud-image", "variant": "f40", "source": "x"})

    def test_missing_fields(self):
        with self.assertRaises(ConfigurationError):
            profile_from_dict("Broken", {"family": "windows-installer"})
        with self.assertRaises(ConfigurationError):
            profile_from_dict("Broken", "not a mapping")

    def test_windows_profile_cannot_carry_credentials(self):
        with self.assertRaises(ConfigurationError):
            OSProfile("Win", OSFamily.WINDOWS_INSTALLER, "win10", "x.iso", Credentials("a", "b"))

    def test_credentials_repr_hides_password(self):
        self.assertNotIn("topsecret", repr(Credentials("ubuntu", "topsecret")))


class TestProfileRegistry(unittest.TestCase):
    def setUp(self):
        self.registry = load_registry({})

    def test_builtin_profiles_loaded(self):
        self.assertEqual(len(self.registry), len(BUILTIN_PROFILES))
        self.assertIn("Debian 12", self.registry)

    def test_lookup(self):
        profile = self.registry.lookup("Debian 12")
        self.assertEqual(profile.variant_tag, "debian12")

    def test_lookup_unknown(self):
        with self.assertRaises(ProfileNotFound) as ctx:
            self.registry.lookup("Plan 9")
        self.assertIsInstance(ctx.exception, LookupError)
        self.assertEqual(ctx.exception.label, "Plan 9")

    def test_labels_sorted_and_stable(self):
        labels = self.registry.labels()
        self.assertEqual(labels, sorted(labels))
        self.assertEqual(labels, load_registry({}).labels())
        self.assertEqual([p.label for p in self.registry.profiles()], labels)
        self.assertEqual([p.label for p in self.registry], labels)

    def test_order_independent_of_insertion(self):
        items = list(BUILTIN_PROFILES.items())
        forward = ProfileRegistry.from_mapping(dict(items))
        backward = ProfileRegistry.from_mapping(dict(reversed(items)))
        self.assertEqual(forward.labels(), backward.labels())

    def test_select_by_number_and_label(self):
        labels = self.registry.labels()
        self.assertEqual(self.registry.select("1").label, labels[0])
        self.assertEqual(self.registry.select(len(labels)).label, labels[-1])
        self.assertEqual(self.registry.select("Windows 10").label, "Windows 10")

    def test_select_out_of_range(self):
        for choice in ["0", str(len(self.registry) + 1), "", "abc", "-1"]:
            with self.assertRaises(ProfileNotFound):
                self.registry.select(choice)

    def test_duplicate_labels_rejected(self):
        profile = profile_from_dict("Debian 12", BUILTIN_PROFILES["Debian 12"])
        with self.assertRaises(ConfigurationError):
            ProfileRegistry([profile, profile])

    def test_user_profiles_override_and_extend(self):
        config = {
            "profiles": {
                "Debian 12": dict(BUILTIN_PROFILES["Debian 12"], password="changed"),
                "Alma 9": {
                    "family": "linux-cloud-image",
                    "variant": "almalinux9",
                    "source": "/srv/images/alma9.qcow2",
                    "username": "alma",
                    "password": "alma",
                },
            }
        }
        registry = load_registry(config)
        self.assertEqual(registry.lookup("Debian 12").default_credentials.password, "changed")
        self.assertEqual(registry.labels()[0], "Alma 9")

    def test_bad_user_profile_aborts_load(self):
        with self.assertRaises(ConfigurationError):
            load_registry({"profiles": {"Bad": {"family": "beos", "variant": "x", "source": "y"}}})
        with self.assertRaises(ConfigurationError):
            load_registry({"profiles": ["not", "a", "mapping"]})


if __name__ == "__main__":
    unittest.main()
