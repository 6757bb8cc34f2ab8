"""Safe travel height inference.

Three independent heuristics look at the **first** input program and each
propose Z candidates:

    feedrate_drop    the Z held just before the feed rate falls below
                     ``previous * feedrate_threshold`` -- the moment a
                     travel move turns into a cutting move
    max_z            rapid-move Z values in the top quartile, favouring a
                     consistent travel plane over one-off outliers
    retract_comment  Z values on lines mentioning retract / clearance

The candidates are pooled, anything outside ``[min_safe_height,
max_safe_height]`` is dropped, and the value at the ``pool_percentile``
index of the sorted pool is rounded **up** to a whole unit.  An empty pool
falls back to the machine profile default.  An explicit override bypasses
all of this and is only clamped.

All thresholds come from :class:`cnc_merge.configs.loader.SafeHeightConfig`.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from cnc_merge.configs.loader import MachineProfile, SafeHeightConfig
from cnc_merge.gcode.lines import RAPID, LineKind, ParsedLine

logger = logging.getLogger(__name__)

FEEDRATE_DROP = "feedrate_drop"
MAX_Z = "max_z"
RETRACT_COMMENT = "retract_comment"

_LOOSE_Z_RE = re.compile(r"\bZ\s*[=:]?\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+))", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class SafeHeightCandidate:
    """One proposed height and the heuristic that produced it."""

    z: float
    method: str


@dataclass(frozen=True)
class SafeHeightResult:
    """Resolved safe height.

    ``source`` is ``"override"``, ``"heuristic"`` or ``"profile_default"``.
    """

    height: float
    source: str
    candidates: tuple[SafeHeightCandidate, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Candidate generators
# ---------------------------------------------------------------------------


def feedrate_drop_candidates(
    lines: Sequence[ParsedLine],
    feedrate_threshold: float,
    min_z_floor: float,
) -> list[SafeHeightCandidate]:
    """Z values held immediately before a sharp feed-rate drop.

    Examples
    --------
    (Z, F) pairs ``(5, 1000), (20, 1000), (2, 600)`` with threshold 0.75
    yield one candidate at Z=20, since 600 < 1000 * 0.75.
    """
    out: list[SafeHeightCandidate] = []
    current_z: float | None = None
    last_feed: float | None = None
    for line in lines:
        z, f = line.z, line.feed
        if z is not None and f is not None:
            if (
                last_feed is not None
                and f < last_feed * feedrate_threshold
                and current_z is not None
                and current_z > min_z_floor
            ):
                out.append(SafeHeightCandidate(current_z, FEEDRATE_DROP))
        if z is not None:
            current_z = z
        if f is not None:
            last_feed = f
    return out


def max_z_candidates(
    lines: Sequence[ParsedLine],
    min_z_floor: float,
    percentile: float,
) -> list[SafeHeightCandidate]:
    """Top-quartile Z values of rapid moves above the floor.

    Axis-only lines continue the modal motion, so ``Z15`` after
    ``G0 X0 Y0`` counts as a rapid.
    """
    motion: str | None = None
    rapid_z: list[float] = []
    for line in lines:
        if line.kind is not LineKind.MOTION:
            continue
        motion = line.motion_code or motion
        if motion == RAPID and line.z is not None and line.z > min_z_floor:
            rapid_z.append(line.z)
    zs = np.array(rapid_z, dtype=float)
    if zs.size == 0:
        return []
    zs.sort()
    start = int(zs.size * percentile)
    return [SafeHeightCandidate(float(z), MAX_Z) for z in zs[start:]]


def retract_comment_candidates(
    lines: Sequence[ParsedLine],
    keywords: Sequence[str],
) -> list[SafeHeightCandidate]:
    """Z values on lines whose text mentions a retract keyword."""
    out: list[SafeHeightCandidate] = []
    for line in lines:
        lowered = line.raw.lower()
        if not any(k in lowered for k in keywords):
            continue
        z = line.z
        if z is None:
            m = _LOOSE_Z_RE.search(line.raw)
            if m is None:
                continue
            z = float(m.group(1))
        out.append(SafeHeightCandidate(z, RETRACT_COMMENT))
    return out


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_override(override: float, cfg: SafeHeightConfig) -> float:
    clamped = cfg.clamp(float(override))
    if clamped != override:
        logger.warning(
            "Safe height override %.3f outside [%g, %g], clamped to %g",
            override,
            cfg.min_safe_height,
            cfg.max_safe_height,
            clamped,
        )
    return clamped


def pick_from_pool(
    candidates: Sequence[SafeHeightCandidate],
    cfg: SafeHeightConfig,
) -> float | None:
    """Percentile pick over the valid pool, rounded up; None if empty."""
    pool = np.array([c.z for c in candidates], dtype=float)
    pool = pool[(pool >= cfg.min_safe_height) & (pool <= cfg.max_safe_height)]
    if pool.size == 0:
        return None
    pool.sort()
    idx = min(int(pool.size * cfg.pool_percentile), pool.size - 1)
    return float(math.ceil(pool[idx]))


def estimate_safe_height(
    first_file: Sequence[ParsedLine],
    cfg: SafeHeightConfig,
    profile: MachineProfile,
    override: float | None = None,
    feedrate_threshold: float | None = None,
) -> SafeHeightResult:
    """Resolve the global safe Z for a merge.

    Parameters
    ----------
    first_file : Sequence[ParsedLine]
        Lines of the first input program.  Other files are never consulted.
    cfg : SafeHeightConfig
        Heuristic thresholds and bounds.
    profile : MachineProfile
        Supplies the fallback height.
    override : float | None
        Explicit height; clamped and returned without running heuristics.
    feedrate_threshold : float | None
        Overrides ``cfg.feedrate_threshold`` when given.

    Returns
    -------
    SafeHeightResult
        Height within ``[cfg.min_safe_height, cfg.max_safe_height]``.
    """
    if override is not None:
        return SafeHeightResult(resolve_override(override, cfg), "override")

    threshold = cfg.feedrate_threshold if feedrate_threshold is None else feedrate_threshold
    candidates = (
        feedrate_drop_candidates(first_file, threshold, cfg.min_z_floor)
        + max_z_candidates(first_file, cfg.min_z_floor, cfg.max_z_percentile)
        + retract_comment_candidates(first_file, cfg.retract_keywords)
    )
    logger.debug(
        "Safe height candidates: %s",
        ", ".join(f"{c.method}={c.z:g}" for c in candidates) or "none",
    )

    height = pick_from_pool(candidates, cfg)
    if height is None:
        fallback = cfg.clamp(profile.default_safe_height)
        logger.warning(
            "No usable safe height candidates, using %s profile default Z%g",
            profile.name,
            fallback,
        )
        return SafeHeightResult(fallback, "profile_default", tuple(candidates))

    logger.info("Safe height Z%g from %d candidates", height, len(candidates))
    return SafeHeightResult(height, "heuristic", tuple(candidates))
