"""Platform registry: the closed set of supported targets and their build quirks."""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, Mapping
import re

from .errors import ConfigurationError


_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([a-z_]+)\s*\}\}")


class Platform(str, Enum):
    LINUX = "linux"
    MACOS = "macos"
    BSD = "bsd"
    CYGWIN = "cygwin"
    MINGW = "mingw"
    MSVC = "msvc"
    MSVC64 = "msvc64"


class ConfigureMode(str, Enum):
    POSIX = "posix"
    WINDOWS_NATIVE = "windows-native"


@dataclass(frozen=True, slots=True)
class PlatformRecord:
    platform: Platform
    make_binary: str
    install_path_template: str
    configure_mode: ConfigureMode
    builds_native_by_default: bool = True
    needs_process_cleanup: bool = False
    needs_binary_relocation: bool = False
    needs_dependency_check: bool = False
    posix_emulation: bool = False
    toolchain_bits: int | None = None

    @property
    def tag(self) -> str:
        return self.platform.value

    def render_install_dir(self, *, run_id: str, home: PurePosixPath | str) -> str:
        """Expand ``{{home}}`` and ``{{run_id}}`` in the install path template."""
        values = {"home": str(home).rstrip("/") or "/", "run_id": str(run_id)}

        def replacement(match: re.Match[str]) -> str:
            key = match.group(1)
            if key not in values:
                raise ConfigurationError(
                    f"Unknown placeholder '{{{{{key}}}}}' in install path for '{self.tag}'"
                )
            return values[key]

        return _PLACEHOLDER_PATTERN.sub(replacement, self.install_path_template)


_HOME_INSTALL = "{{home}}/ocaml-tmp-install-{{run_id}}"


def _build_builtin_records() -> Dict[Platform, PlatformRecord]:
    records = [
        PlatformRecord(
            platform=Platform.LINUX,
            make_binary="make",
            install_path_template=_HOME_INSTALL,
            configure_mode=ConfigureMode.POSIX,
            needs_dependency_check=True,
        ),
        PlatformRecord(
            platform=Platform.MACOS,
            make_binary="make",
            install_path_template=_HOME_INSTALL,
            configure_mode=ConfigureMode.POSIX,
        ),
        PlatformRecord(
            platform=Platform.BSD,
            make_binary="gmake",
            install_path_template=_HOME_INSTALL,
            configure_mode=ConfigureMode.POSIX,
        ),
        PlatformRecord(
            platform=Platform.CYGWIN,
            make_binary="make",
            install_path_template=_HOME_INSTALL,
            configure_mode=ConfigureMode.POSIX,
            needs_process_cleanup=True,
            needs_dependency_check=True,
            posix_emulation=True,
        ),
        PlatformRecord(
            platform=Platform.MINGW,
            make_binary="make",
            install_path_template="C:/ocamlmgw-{{run_id}}",
            configure_mode=ConfigureMode.WINDOWS_NATIVE,
            needs_process_cleanup=True,
            needs_binary_relocation=True,
            needs_dependency_check=True,
            posix_emulation=True,
        ),
        PlatformRecord(
            platform=Platform.MSVC,
            make_binary="make",
            install_path_template="C:/ocamlms-{{run_id}}",
            configure_mode=ConfigureMode.WINDOWS_NATIVE,
            needs_process_cleanup=True,
            posix_emulation=True,
            toolchain_bits=32,
        ),
        PlatformRecord(
            platform=Platform.MSVC64,
            make_binary="make",
            install_path_template="C:/ocamlms64-{{run_id}}",
            configure_mode=ConfigureMode.WINDOWS_NATIVE,
            needs_process_cleanup=True,
            posix_emulation=True,
            toolchain_bits=64,
        ),
    ]
    table = {record.platform: record for record in records}
    missing = set(Platform) - set(table)
    if missing:
        names = ", ".join(sorted(platform.value for platform in missing))
        raise RuntimeError(f"Platform table is missing records for: {names}")
    return table


def parse_platform(tag: str | None) -> Platform:
    if tag is None or not str(tag).strip():
        raise ConfigurationError("No platform given (set CIDRIVER_ARCH or global.platform)")
    try:
        return Platform(str(tag).strip())
    except ValueError:
        known = ", ".join(platform.value for platform in Platform)
        raise ConfigurationError(f"Unknown platform '{tag}' (known: {known})") from None


class PlatformRegistry:
    """Total mapping from :class:`Platform` to :class:`PlatformRecord`."""

    _OVERRIDE_KEYS = {"make": "make_binary", "install_dir": "install_path_template"}

    def __init__(self, records: Mapping[Platform, PlatformRecord]) -> None:
        self._records: Dict[Platform, PlatformRecord] = dict(records)

    @classmethod
    def with_builtins(cls) -> "PlatformRegistry":
        return cls(_build_builtin_records())

    def lookup(self, tag: str | Platform) -> PlatformRecord:
        platform = tag if isinstance(tag, Platform) else parse_platform(tag)
        try:
            return self._records[platform]
        except KeyError:
            raise ConfigurationError(f"No record for platform '{platform.value}'") from None

    def apply_overrides(self, mapping: Mapping[str, Any]) -> None:
        """Apply ``[platforms.<tag>]`` overrides from a configuration file.

        Only existing tags can be adjusted, and only their make binary and
        install path template; the registry never grows new platforms.
        """
        for raw_tag, raw_values in mapping.items():
            platform = parse_platform(str(raw_tag))
            if not isinstance(raw_values, Mapping):
                raise ConfigurationError(f"platforms.{raw_tag} must be a table")
            unknown = {str(key) for key in raw_values} - set(self._OVERRIDE_KEYS)
            if unknown:
                joined = ", ".join(sorted(unknown))
                raise ConfigurationError(f"platforms.{raw_tag} contains unknown keys: {joined}")
            changes: Dict[str, str] = {}
            for key, value in raw_values.items():
                text = str(value).strip()
                if not text:
                    raise ConfigurationError(f"platforms.{raw_tag}.{key} must not be empty")
                changes[self._OVERRIDE_KEYS[str(key)]] = text
            self._records[platform] = replace(self._records[platform], **changes)


BUILTIN_PLATFORMS = _build_builtin_records()


def lookup(tag: str | Platform) -> PlatformRecord:
    """Look ``tag`` up in the built-in table; unknown tags are a :class:`ConfigurationError`."""
    platform = tag if isinstance(tag, Platform) else parse_platform(tag)
    return BUILTIN_PLATFORMS[platform]


__all__ = [
    "BUILTIN_PLATFORMS",
    "ConfigureMode",
    "Platform",
    "PlatformRecord",
    "PlatformRegistry",
    "lookup",
    "parse_platform",
]
