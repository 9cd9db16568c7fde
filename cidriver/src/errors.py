"""Error kinds raised by the build driver."""
from __future__ import annotations


CONFIGURATION_ERROR_EXIT = 3
"""Exit status for any configuration error (bad platform, option or config file)."""


class ConfigurationError(Exception):
    """The driver was set up wrongly; no stage runs."""


class ParseError(ConfigurationError):
    """A command-line token was not recognised or lacked its value."""


class StageFailure(Exception):
    """A trusted stage exited non-zero; the remaining stages are abandoned."""

    def __init__(self, stage: str, returncode: int, command: str | None = None) -> None:
        message = f"Stage '{stage}' failed with exit code {returncode}"
        if command:
            message = f"{message}: {command}"
        super().__init__(message)
        self.stage = stage
        self.returncode = returncode
        self.command = command


__all__ = ["CONFIGURATION_ERROR_EXIT", "ConfigurationError", "ParseError", "StageFailure"]
