"""Optional configuration file for the driver."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from core.config_loader import find_config_file, load_config_file, normalize_string_list

from .errors import ConfigurationError
from .options import LOG_LEVELS


CONFIG_ENV = "CIDRIVER_CONFIG"
DEFAULT_CONFIG_NAME = "cidriver.toml"

_TRUE_VALUES = {"1", "true", "yes", "on"}

_ALLOWED_SECTIONS = {"global", "cleanup", "platforms"}
_ALLOWED_GLOBAL_KEYS = {"log_level", "flambda", "platform"}
_ALLOWED_CLEANUP_KEYS = {"processes"}


def is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _check_keys(section: str, data: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = {str(key) for key in data} - allowed
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigurationError(f"Section [{section}] contains unknown keys: {joined}")


@dataclass(slots=True)
class DriverConfig:
    log_level: str | None = None
    flambda: bool = False
    platform: str | None = None
    cleanup_processes: List[str] | None = None
    platform_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    path: Path | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, path: Path | None = None) -> "DriverConfig":
        _check_keys("<root>", data, _ALLOWED_SECTIONS)

        global_section = data.get("global", {})
        if not isinstance(global_section, Mapping):
            raise ConfigurationError("[global] must be a table")
        _check_keys("global", global_section, _ALLOWED_GLOBAL_KEYS)

        log_level = global_section.get("log_level")
        if log_level is not None:
            log_level = str(log_level).strip().lower()
            if log_level not in LOG_LEVELS:
                raise ConfigurationError(f"global.log_level must be one of: {', '.join(LOG_LEVELS)}")

        platform = global_section.get("platform")

        cleanup_section = data.get("cleanup", {})
        if not isinstance(cleanup_section, Mapping):
            raise ConfigurationError("[cleanup] must be a table")
        _check_keys("cleanup", cleanup_section, _ALLOWED_CLEANUP_KEYS)
        processes: List[str] | None = None
        if "processes" in cleanup_section:
            try:
                processes = normalize_string_list(cleanup_section["processes"], field_name="cleanup.processes")
            except TypeError as exc:
                raise ConfigurationError(str(exc)) from exc

        platforms_section = data.get("platforms", {})
        if not isinstance(platforms_section, Mapping):
            raise ConfigurationError("[platforms] must be a table")

        return cls(
            log_level=log_level,
            flambda=is_truthy(global_section.get("flambda", False)),
            platform=str(platform).strip() if platform else None,
            cleanup_processes=processes,
            platform_overrides={str(key): dict(value) if isinstance(value, Mapping) else value
                                for key, value in platforms_section.items()},
            path=path,
        )


def load_driver_config(
    *,
    explicit: Path | None,
    environ: Mapping[str, str],
    source_dir: Path,
) -> DriverConfig:
    """Locate and load the configuration file: ``--config``, then ``$CIDRIVER_CONFIG``, then the source tree.

    An explicitly named file must exist; the source-tree default is optional.
    """
    env_value = environ.get(CONFIG_ENV)
    required = explicit if explicit is not None else (Path(env_value) if env_value else None)
    if required is not None and not required.expanduser().is_file():
        raise ConfigurationError(f"Configuration file not found: {required}")

    path = find_config_file([required, source_dir / DEFAULT_CONFIG_NAME])
    if path is None:
        return DriverConfig()

    try:
        data = load_config_file(path)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Failed to load configuration '{path}': {exc}") from exc
    return DriverConfig.from_mapping(data, path=path)


__all__ = ["CONFIG_ENV", "DEFAULT_CONFIG_NAME", "DriverConfig", "is_truthy", "load_driver_config"]
