from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from core.config_loader import find_config_file, load_config_file, normalize_string_list


class LoadConfigFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_toml(self) -> None:
        path = self.root / "ci.toml"
        path.write_text(
            textwrap.dedent(
                """
                [global]
                platform = "linux"

                [platforms.bsd]
                make = "gmake"
                """
            )
        )
        data = load_config_file(path)
        self.assertEqual(data["global"]["platform"], "linux")
        self.assertEqual(data["platforms"]["bsd"]["make"], "gmake")

    def test_yaml_and_yml(self) -> None:
        for name in ("ci.yaml", "ci.yml"):
            with self.subTest(name=name):
                path = self.root / name
                path.write_text("cleanup:\n  processes:\n    - a.exe\n    - b.exe\n")
                self.assertEqual(load_config_file(path), {"cleanup": {"processes": ["a.exe", "b.exe"]}})

    def test_json(self) -> None:
        path = self.root / "ci.json"
        path.write_text('{"global": {"flambda": true}}')
        self.assertEqual(load_config_file(path), {"global": {"flambda": True}})

    def test_empty_yaml_is_an_empty_mapping(self) -> None:
        path = self.root / "empty.yaml"
        path.write_text("")
        self.assertEqual(load_config_file(path), {})

    def test_unsupported_suffix(self) -> None:
        path = self.root / "ci.ini"
        path.write_text("[global]\n")
        with self.assertRaises(ValueError):
            load_config_file(path)

    def test_root_must_be_a_mapping(self) -> None:
        path = self.root / "list.yaml"
        path.write_text("- one\n- two\n")
        with self.assertRaises(TypeError):
            load_config_file(path)


class HelperTests(unittest.TestCase):
    def test_find_config_file_skips_missing_candidates(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            present = Path(temp_dir) / "cidriver.toml"
            present.write_text("")
            found = find_config_file([None, Path(temp_dir) / "absent.toml", present])
            self.assertEqual(found, present)
            self.assertIsNone(find_config_file([None, Path(temp_dir) / "absent.toml"]))

    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list(None), [])
        self.assertEqual(normalize_string_list(" one.exe "), ["one.exe"])
        self.assertEqual(normalize_string_list(["a.exe", " ", "b.exe "]), ["a.exe", "b.exe"])
        with self.assertRaises(TypeError):
            normalize_string_list([1, 2], field_name="cleanup.processes")
        with self.assertRaises(TypeError):
            normalize_string_list(3)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
