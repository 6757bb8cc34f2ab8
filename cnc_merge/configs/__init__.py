"""Machine profiles, heuristic tuning, and run options."""

from cnc_merge.configs.loader import (
    CommandSet,
    ConfigError,
    MachineProfile,
    MergeConfig,
    SafeHeightConfig,
    load_config,
)
from cnc_merge.configs.options import MergeOptions, build_options

__all__ = [
    "CommandSet",
    "ConfigError",
    "MachineProfile",
    "MergeConfig",
    "MergeOptions",
    "SafeHeightConfig",
    "build_options",
    "load_config",
]
