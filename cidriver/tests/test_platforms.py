import unittest
from dataclasses import fields

from cidriver.src.errors import ConfigurationError
from cidriver.src.platforms import (
    BUILTIN_PLATFORMS,
    ConfigureMode,
    Platform,
    PlatformRegistry,
    lookup,
)


class PlatformLookupTests(unittest.TestCase):
    def test_every_platform_has_a_distinct_complete_record(self):
        records = [lookup(platform.value) for platform in Platform]
        self.assertEqual(len(records), len(set(records)))
        for platform, record in zip(Platform, records):
            self.assertIs(record.platform, platform)
            for item in fields(record):
                if item.name == "toolchain_bits":
                    continue
                self.assertIsNotNone(getattr(record, item.name), f"{platform.value}.{item.name}")
            self.assertTrue(record.make_binary)
            self.assertIn("{{run_id}}", record.install_path_template)

    def test_table_covers_posix_and_windows_variants(self):
        posix = [p for p, r in BUILTIN_PLATFORMS.items() if not r.posix_emulation]
        windows = [p for p, r in BUILTIN_PLATFORMS.items() if r.posix_emulation]
        self.assertEqual(len(posix), 3)
        self.assertEqual(len(windows), 4)
        bits = sorted(r.toolchain_bits for r in BUILTIN_PLATFORMS.values() if r.toolchain_bits)
        self.assertEqual(bits, [32, 64])

    def test_unknown_tags_are_rejected(self):
        for tag in ["", "  ", "solaris", "Linux", "mingw32", "*"]:
            with self.subTest(tag=tag):
                with self.assertRaises(ConfigurationError):
                    lookup(tag)

    def test_missing_tag_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            lookup(None)

    def test_records_are_immutable(self):
        record = lookup("linux")
        with self.assertRaises(Exception):
            record.make_binary = "gmake"  # type: ignore[misc]

    def test_known_quirks(self):
        self.assertEqual(lookup("bsd").make_binary, "gmake")
        self.assertTrue(lookup("linux").needs_dependency_check)
        self.assertFalse(lookup("linux").needs_process_cleanup)
        mingw = lookup("mingw")
        self.assertIs(mingw.configure_mode, ConfigureMode.WINDOWS_NATIVE)
        self.assertTrue(mingw.needs_binary_relocation)
        self.assertTrue(mingw.needs_process_cleanup)
        self.assertIs(lookup("cygwin").configure_mode, ConfigureMode.POSIX)

    def test_only_mingw_rebases_shared_stubs(self):
        relocating = [platform.value for platform in Platform if lookup(platform).needs_binary_relocation]
        self.assertEqual(relocating, ["mingw"])


class InstallDirTests(unittest.TestCase):
    def test_windows_install_dir(self):
        self.assertEqual(lookup("mingw").render_install_dir(run_id="77", home="/home/ci"), "C:/ocamlmgw-77")
        self.assertEqual(lookup("msvc64").render_install_dir(run_id="8", home="/home/ci"), "C:/ocamlms64-8")

    def test_home_install_dir(self):
        path = lookup("linux").render_install_dir(run_id="42", home="/home/ci/")
        self.assertEqual(path, "/home/ci/ocaml-tmp-install-42")

    def test_install_dirs_differ_between_runs(self):
        record = lookup("macos")
        self.assertNotEqual(
            record.render_install_dir(run_id="1", home="/h"),
            record.render_install_dir(run_id="2", home="/h"),
        )


class RegistryOverrideTests(unittest.TestCase):
    def setUp(self):
        self.registry = PlatformRegistry.with_builtins()

    def test_override_existing_platform(self):
        self.registry.apply_overrides({"bsd": {"make": "bmake", "install_dir": "/tmp/ocaml-{{run_id}}"}})
        record = self.registry.lookup("bsd")
        self.assertEqual(record.make_binary, "bmake")
        self.assertEqual(record.render_install_dir(run_id="5", home="/h"), "/tmp/ocaml-5")
        # The module-level table is untouched.
        self.assertEqual(lookup("bsd").make_binary, "gmake")

    def test_override_cannot_add_platforms(self):
        with self.assertRaises(ConfigurationError):
            self.registry.apply_overrides({"haiku": {"make": "make"}})

    def test_override_rejects_unknown_keys(self):
        with self.assertRaises(ConfigurationError):
            self.registry.apply_overrides({"linux": {"configure_mode": "windows-native"}})

    def test_unknown_placeholder_is_reported(self):
        self.registry.apply_overrides({"linux": {"install_dir": "{{prefix}}/x-{{run_id}}"}})
        with self.assertRaises(ConfigurationError):
            self.registry.lookup("linux").render_install_dir(run_id="1", home="/h")


if __name__ == "__main__":
    unittest.main()
