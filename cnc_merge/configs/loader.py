"""Configuration loader for cnc_merge.

Loads and validates ``profiles.yaml`` into typed, frozen dataclasses.
Machine limits, safe-height heuristic thresholds and the fixed command
strings emitted between files all come from the config -- nothing is
hardcoded in the transformation modules.

Feed rates are stored in **length units per minute**, the same unit as the
G-code ``F`` parameter, so no conversion happens anywhere in the pipeline.

Usage::

    from cnc_merge.configs.loader import load_config
    cfg = load_config()                        # default path
    cfg = load_config("/custom/profiles.yaml") # explicit path
    profile = cfg.get_profile("shapeoko")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cnc_merge.utils.fs import load_yaml

logger = logging.getLogger(__name__)

PROFILE_NAMES = ("generic", "shapeoko", "xcarve", "nomad3")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """profiles.yaml or a run option is missing or inconsistent."""

    pass


# ---------------------------------------------------------------------------
# Config records, one per profiles.yaml section
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MachineProfile:
    """Physical limits of one machine model.  Feeds in units/min."""

    name: str
    max_feedrate: float
    default_safe_height: float
    rapid_feedrate: float


@dataclass(frozen=True)
class SafeHeightConfig:
    """Tunable thresholds for the safe-height heuristics.

    ``min_safe_height`` / ``max_safe_height`` bound every resolved height.
    ``min_z_floor`` is the Z a candidate must exceed before the feedrate-drop
    and max-Z methods consider it.  The two percentiles are fractions of the
    sorted candidate list length.
    """

    min_safe_height: float
    max_safe_height: float
    min_z_floor: float
    feedrate_threshold: float
    max_z_percentile: float
    pool_percentile: float
    retract_keywords: tuple[str, ...]

    def clamp(self, z: float) -> float:
        """Clamp *z* into ``[min_safe_height, max_safe_height]``."""
        return min(max(z, self.min_safe_height), self.max_safe_height)


@dataclass(frozen=True)
class CommandSet:
    """Fixed command strings emitted by the sequencer and assembler."""

    program_marker: str
    program_end: str
    spindle_stop: str
    pause: str
    absolute_mode: str
    home_z: str


@dataclass(frozen=True)
class MergeConfig:
    """Top-level configuration object."""

    profiles: dict[str, MachineProfile]
    default_profile: str
    safe_height: SafeHeightConfig
    commands: CommandSet

    def get_profile(self, name: str | None) -> MachineProfile:
        """Look up a machine profile.

        Unknown names fall back to the default profile with a warning
        instead of failing the run.
        """
        if name is None:
            return self.profiles[self.default_profile]
        key = name.strip().lower()
        if key not in self.profiles:
            logger.warning(
                "Unknown machine profile '%s', falling back to '%s'",
                name,
                self.default_profile,
            )
            return self.profiles[self.default_profile]
        return self.profiles[key]


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------


def _parse_profile(name: str, data: dict[str, Any]) -> MachineProfile:
    return MachineProfile(
        name=name,
        max_feedrate=float(data["max_feedrate"]),
        default_safe_height=float(data["default_safe_height"]),
        rapid_feedrate=float(data["rapid_feedrate"]),
    )


def _parse_safe_height(data: dict[str, Any]) -> SafeHeightConfig:
    keywords = data.get("retract_keywords", ["retract", "clearance"])
    if isinstance(keywords, str):
        keywords = [keywords]
    return SafeHeightConfig(
        min_safe_height=float(data.get("min_safe_height", 1.0)),
        max_safe_height=float(data.get("max_safe_height", 100.0)),
        min_z_floor=float(data.get("min_z_floor", 1.0)),
        feedrate_threshold=float(data.get("feedrate_threshold", 0.75)),
        max_z_percentile=float(data.get("max_z_percentile", 0.75)),
        pool_percentile=float(data.get("pool_percentile", 0.75)),
        retract_keywords=tuple(str(k).lower() for k in keywords),
    )


def _parse_commands(data: dict[str, Any]) -> CommandSet:
    return CommandSet(
        program_marker=str(data.get("program_marker", "%")),
        program_end=str(data.get("program_end", "M30")),
        spindle_stop=str(data.get("spindle_stop", "M5")),
        pause=str(data.get("pause", "M0")),
        absolute_mode=str(data.get("absolute_mode", "G90")),
        home_z=str(data.get("home_z", "G91 G28 Z0")),
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_config(cfg: MergeConfig) -> None:
    """Validate cross-field consistency.

    Raises
    ------
    ConfigError
        On any invalid combination.
    """
    if cfg.default_profile not in cfg.profiles:
        raise ConfigError(
            f"default_profile '{cfg.default_profile}' is not defined in "
            f"profiles {sorted(cfg.profiles)}"
        )

    sh = cfg.safe_height
    if not (0 < sh.min_safe_height < sh.max_safe_height):
        raise ConfigError(
            f"safe_height bounds must satisfy 0 < min < max, got "
            f"[{sh.min_safe_height}, {sh.max_safe_height}]"
        )
    if not (0 < sh.feedrate_threshold <= 1):
        raise ConfigError(
            f"feedrate_threshold must be in (0, 1], got {sh.feedrate_threshold}"
        )
    for label, value in (
        ("max_z_percentile", sh.max_z_percentile),
        ("pool_percentile", sh.pool_percentile),
    ):
        if not (0 <= value <= 1):
            raise ConfigError(f"{label} must be in [0, 1], got {value}")
    if not sh.retract_keywords:
        raise ConfigError("safe_height.retract_keywords must not be empty")

    # -- Profile limits ---------------------------------------------------
    for name, p in cfg.profiles.items():
        if p.max_feedrate <= 0 or p.rapid_feedrate <= 0:
            raise ConfigError(
                f"Profile '{name}' feed rates must be > 0, got "
                f"max_feedrate={p.max_feedrate}, rapid_feedrate={p.rapid_feedrate}"
            )
        if p.rapid_feedrate > p.max_feedrate:
            raise ConfigError(
                f"Profile '{name}' rapid_feedrate ({p.rapid_feedrate}) "
                f"exceeds max_feedrate ({p.max_feedrate})"
            )
        if not (sh.min_safe_height <= p.default_safe_height <= sh.max_safe_height):
            raise ConfigError(
                f"Profile '{name}' default_safe_height "
                f"({p.default_safe_height}) outside "
                f"[{sh.min_safe_height}, {sh.max_safe_height}]"
            )

    missing = [n for n in PROFILE_NAMES if n not in cfg.profiles]
    if missing:
        logger.warning("Configuration does not define profiles: %s", missing)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> MergeConfig:
    """Load and validate merge configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``profiles.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    MergeConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "profiles.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.debug("Loading configuration from %s", path)

    data: dict[str, Any] = load_yaml(path)
    if not data:
        raise ConfigError(f"Empty configuration file: {path}")

    try:
        profiles = {
            str(name).lower(): _parse_profile(str(name).lower(), cfg)
            for name, cfg in data["profiles"].items()
        }
        config = MergeConfig(
            profiles=profiles,
            default_profile=str(data.get("default_profile", "generic")).lower(),
            safe_height=_parse_safe_height(data.get("safe_height") or {}),
            commands=_parse_commands(data.get("commands") or {}),
        )

        _validate_config(config)
        return config

    except KeyError as exc:
        raise ConfigError(
            f"Missing required configuration key: {exc}"
        ) from exc
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(
            f"Invalid configuration value: {exc}"
        ) from exc
