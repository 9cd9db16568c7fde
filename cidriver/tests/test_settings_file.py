import tempfile
import unittest
from pathlib import Path

from cidriver.src.errors import StageFailure
from cidriver.src.platforms import lookup
from cidriver.src.settings_file import SettingRewrite, WindowsSettings

from .fakes import SETTINGS_TEMPLATE, ScriptedCommandRunner, make_context, write_settings_tree


class SettingRewriteTests(unittest.TestCase):
    def test_only_whole_setting_lines_change(self):
        text, count = SettingRewrite("PREFIX", "C:/x-1").apply(SETTINGS_TEMPLATE)
        self.assertEqual(count, 1)
        self.assertIn("PREFIX=C:/x-1\n", text)
        self.assertIn("BINDIR=$(PREFIX)/bin", text)
        self.assertIn("WITH_PREFIX=keep", text)

    def test_replacement_value_is_literal(self):
        text, _ = SettingRewrite("PREFIX", r"C:\ocaml\1").apply(SETTINGS_TEMPLATE)
        self.assertIn("PREFIX=C:\\ocaml\\1\n", text)


class WindowsSettingsTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def _settings(self, *, dry_run: bool = False) -> WindowsSettings:
        ctx = make_context(ScriptedCommandRunner(), self.root, dry_run=dry_run)
        return WindowsSettings(ctx, self.root)

    def test_copies_headers_and_rewrites_settings(self):
        write_settings_tree(self.root)
        self._settings().apply(lookup("mingw"), "C:/ocamlmgw-99", flambda=False)

        self.assertEqual((self.root / "runtime" / "caml" / "m.h").read_text(), "#define ARCH_M\n")
        self.assertEqual((self.root / "runtime" / "caml" / "s.h").read_text(), "#define ARCH_S\n")
        settings = (self.root / "config" / "Makefile").read_text()
        self.assertIn("PREFIX=C:/ocamlmgw-99\n", settings)
        self.assertIn("RUNTIMED=true\n", settings)
        self.assertIn("FLAMBDA=false\n", settings)
        # The template itself is left untouched.
        self.assertEqual((self.root / "config" / "Makefile.mingw").read_text(), SETTINGS_TEMPLATE)

    def test_flambda_enables_third_setting(self):
        write_settings_tree(self.root, tag="msvc64")
        self._settings().apply(lookup("msvc64"), "C:/ocamlms64-1", flambda=True)
        self.assertIn("FLAMBDA=true\n", (self.root / "config" / "Makefile").read_text())

    def test_missing_template_is_a_configure_failure(self):
        write_settings_tree(self.root, tag="mingw")
        with self.assertRaises(StageFailure) as caught:
            self._settings().apply(lookup("msvc"), "C:/ocamlms-1", flambda=False)
        self.assertEqual(caught.exception.stage, "configure")

    def test_missing_setting_is_a_configure_failure(self):
        write_settings_tree(self.root, settings="PREFIX=C:/ocamlmgw\n")
        with self.assertRaises(StageFailure):
            self._settings().apply(lookup("mingw"), "C:/ocamlmgw-1", flambda=False)

    def test_dry_run_touches_nothing(self):
        self._settings(dry_run=True).apply(lookup("mingw"), "C:/ocamlmgw-1", flambda=True)
        self.assertFalse((self.root / "config").exists())
        self.assertFalse((self.root / "runtime").exists())


if __name__ == "__main__":
    unittest.main()
