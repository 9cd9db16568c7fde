"""Shared core utilities: command execution, configuration loading and Git access."""

from .command_runner import (
    COMMAND_NOT_FOUND,
    CommandError,
    CommandResult,
    CommandRunner,
    RecordingCommandRunner,
    SubprocessCommandRunner,
)
from .config_loader import (
    FILE_LOADERS,
    find_config_file,
    load_config_file,
    normalize_string_list,
)

__all__ = [
    "COMMAND_NOT_FOUND",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "FILE_LOADERS",
    "find_config_file",
    "load_config_file",
    "normalize_string_list",
]
