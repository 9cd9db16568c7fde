"""
cidriver - platform-aware clean/configure/build/install/test driver
"""

from .cli import main
from .errors import CONFIGURATION_ERROR_EXIT, ConfigurationError, ParseError, StageFailure
from .options import BuildOptions, parse
from .pipeline import PipelineDriver, PipelineState, StageKind
from .platforms import ConfigureMode, Platform, PlatformRecord, PlatformRegistry, lookup
