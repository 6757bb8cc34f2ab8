"""Sanity checks on the assembled program, run before anything is written.

Hard failures (raise :class:`cnc_merge.errors.OutputValidationError`):
    - output is empty
    - no line carries an executable command

Warnings (logged, collected in the report, run continues):
    - comment parentheses unbalanced
    - leading / trailing ``%`` marker missing
    - a feed rate above the machine profile ceiling
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from cnc_merge.configs.loader import MachineProfile
from cnc_merge.errors import OutputValidationError
from cnc_merge.gcode.lines import PROGRAM_MARKER, parse_lines

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """Outcome of :func:`validate_output`."""

    command_lines: int
    max_feedrate: float | None
    warnings: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.warnings


def _paren_balance(lines: Sequence[str]) -> tuple[int, int]:
    """Return (unclosed opens, unmatched closes) over the whole text."""
    depth = unmatched = 0
    for line in lines:
        for ch in line:
            if ch == "(":
                depth += 1
            elif ch == ")":
                if depth == 0:
                    unmatched += 1
                else:
                    depth -= 1
    return depth, unmatched


def validate_output(
    lines: Sequence[str],
    profile: MachineProfile,
    marker: str = PROGRAM_MARKER,
) -> ValidationReport:
    """Check an assembled program.

    Parameters
    ----------
    lines : Sequence[str]
        Output program, one entry per line.
    profile : MachineProfile
        Supplies the feed rate ceiling.
    marker : str
        Program start/end marker, default ``%``.

    Returns
    -------
    ValidationReport
        Command count, highest feed rate, and any warnings.

    Raises
    ------
    OutputValidationError
        If the output is empty or contains no command line.
    """
    content = [line for line in lines if line.strip()]
    if not content:
        raise OutputValidationError("Assembled output is empty")

    parsed = parse_lines(list(lines))
    command_lines = sum(1 for p in parsed if p.is_command)
    if command_lines == 0:
        raise OutputValidationError(
            "Assembled output contains no G-code command lines"
        )

    feeds = [p.feed for p in parsed if p.feed is not None]
    report = ValidationReport(
        command_lines=command_lines,
        max_feedrate=max(feeds) if feeds else None,
    )

    unclosed, unmatched = _paren_balance(lines)
    if unclosed or unmatched:
        report.warnings.append(
            f"Unbalanced comment parentheses: {unclosed} unclosed '(', "
            f"{unmatched} unmatched ')'"
        )

    if content[0].strip() != marker:
        report.warnings.append(f"Output does not start with '{marker}'")
    if content[-1].strip() != marker:
        report.warnings.append(f"Output does not end with '{marker}'")

    if report.max_feedrate is not None and report.max_feedrate > profile.max_feedrate:
        report.warnings.append(
            f"Feed rate F{report.max_feedrate:g} exceeds {profile.name} "
            f"maximum F{profile.max_feedrate:g}"
        )

    for w in report.warnings:
        logger.warning(w)
    logger.debug(
        "Validated output: %d lines, %d commands", len(lines), command_lines
    )
    return report
