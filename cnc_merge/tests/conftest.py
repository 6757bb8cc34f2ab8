"""Shared fixtures: bundled config and small CAM-style programs on disk."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from cnc_merge.configs.loader import MergeConfig, load_config

# Typical post-processor output: tool comment, setup, homing, retract,
# spindle start, two plunge-and-cut passes, spindle stop, program end.
PROGRAM_T1 = """\
%
(T1 D=6.35 - flat end mill)
G90 G21
G17
G28
G0 Z15
T1 M6
M3 S12000
G0 X0 Y0
G1 Z-1 F300
G1 X50 F1000
G0 Z15
G0 X60 Y10
G1 Z-1 F300
G1 X70 F1000
G0 Z15
M5
M30
%
"""

PROGRAM_T2 = """\
%
(Tool: 2 - 1/8in ball nose)
G90 G21
G28
G0 Z15
T2 M6
M3 S18000
G0 X5 Y5
G1 Z-0.5 F200
G1 X40 Y5 F800
G0 Z15
M5
M30
%
"""

# Last pass leaves the spindle running.
PROGRAM_T2_NO_STOP = """\
%
(Tool: 2 - 1/8in ball nose)
T2 M6
M3 S18000
G0 X5 Y5
G1 Z-0.5 F200
G1 X40 Y5 F800
G0 Z15
M30
%
"""


@pytest.fixture()
def config() -> MergeConfig:
    """Bundled profiles.yaml."""
    return load_config()


@pytest.fixture()
def write_program(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write *text* to ``tmp_path / name`` and return the path."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write
