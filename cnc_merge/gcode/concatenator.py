"""Merge driver -- input programs in order to one validated output.

Steps:
    1. Read every input through the :class:`FileCatalog` (access errors are
       raised here, before any transformation)
    2. Resolve the safe height from the first file
    3. For each file in order: emit the inter-file block, then stream the
       file through the line pipeline
    4. Assemble: ``%``, body, spindle stop if still running, ``M30``, ``%``
    5. Validate the assembled program

Files must be processed strictly in order: the block before file *i*
depends on the tool of file *i-1*, and the spindle state carries across
lightweight boundaries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from cnc_merge.configs.loader import CommandSet, MachineProfile, MergeConfig
from cnc_merge.configs.options import MergeOptions
from cnc_merge.errors import MergeError, OutputValidationError
from cnc_merge.gcode.lines import LineKind, parse_line
from cnc_merge.gcode.pipeline import FileContext, RunState, initial_state, process_file
from cnc_merge.gcode.safe_height import SafeHeightResult, estimate_safe_height
from cnc_merge.gcode.sequencer import needs_tool_change, retract_block, tool_change_block
from cnc_merge.gcode.tool_info import FileCatalog, FileRecord
from cnc_merge.gcode.validator import ValidationReport, validate_output
from cnc_merge.utils.logging_config import log_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileSummary:
    """How one input file was stitched in."""

    record: FileRecord
    tool_change: bool
    kept_lines: int
    command_lines: int = 0


@dataclass
class MergeResult:
    """Everything the writer and the summary report need."""

    lines: list[str]
    safe_height: SafeHeightResult
    profile: MachineProfile
    files: list[FileSummary] = field(default_factory=list)
    report: ValidationReport | None = None

    @property
    def text(self) -> str:
        return "\n".join(self.lines) + "\n"


def assemble(body: Sequence[str], spindle_on: bool, commands: CommandSet) -> list[str]:
    """Wrap the merged body with markers and a single program end.

    Program-end lines kept from the last file are moved so that exactly
    one sits immediately before the trailing marker.
    """
    kept = [line for line in body if parse_line(line).kind is not LineKind.PROGRAM_END]
    out = [commands.program_marker, *kept]
    if spindle_on:
        logger.info("Spindle still running at end of program, appending %s", commands.spindle_stop)
        out.append(commands.spindle_stop)
    out += [commands.program_end, commands.program_marker]
    return out


def count_commands(lines: Sequence[str]) -> int:
    """Executable lines in *lines*, not counting program-end codes."""
    parsed = (parse_line(line) for line in lines)
    return sum(1 for p in parsed if p.is_command and p.kind is not LineKind.PROGRAM_END)


def merge(
    paths: Sequence[str | Path],
    options: MergeOptions,
    config: MergeConfig,
    catalog: FileCatalog | None = None,
) -> MergeResult:
    """Merge *paths* into one program.

    Parameters
    ----------
    paths : Sequence[str | Path]
        Input programs in execution order.
    options : MergeOptions
        Run options (fast mode, override, profile name, ...).
    config : MergeConfig
        Profiles, heuristic tuning and command strings.
    catalog : FileCatalog | None
        Record cache; a fresh one reading from disk by default.

    Returns
    -------
    MergeResult
        Assembled and validated output.

    Raises
    ------
    AccessError
        If any input is missing, unreadable or empty.
    OutputValidationError
        If no input program contributes an executable line, or the
        assembled program fails validation.
    """
    if not paths:
        raise MergeError("No input files given")

    catalog = catalog if catalog is not None else FileCatalog()
    records = [catalog.get(p) for p in paths]
    profile = config.get_profile(options.machine_profile)

    safe = estimate_safe_height(
        records[0].parsed,
        config.safe_height,
        profile,
        override=options.safe_height_override,
        feedrate_threshold=options.feedrate_threshold,
    )

    body: list[str] = []
    summaries: list[FileSummary] = []
    state: RunState | None = None
    last = len(records) - 1

    for i, record in enumerate(records):
        tool_change = False
        if i > 0:
            prev = records[i - 1].tool_info
            cur = record.tool_info
            tool_change = needs_tool_change(prev, cur, options.force_tool_change)
            if tool_change:
                body += tool_change_block(
                    i, record.name, prev, cur, safe.height, config.commands
                )
            else:
                body += retract_block(i, record.name, safe.height)

        ctx = FileContext(
            index=i,
            is_first=i == 0,
            is_last=i == last,
            tool_change=tool_change,
            safe_height=safe.height,
            fast=options.fast,
            rapid_feedrate=profile.rapid_feedrate,
        )
        spindle_on = state is not None and state.spindle_on and not tool_change

        with log_context(file=record.name):
            lines, state = process_file(
                record.parsed, ctx, initial_state(ctx, spindle_on=spindle_on)
            )

        logger.info(
            "File %d/%d %s: %s, %s, %d lines kept",
            i + 1,
            len(records),
            record.name,
            record.tool_info.label(),
            "first file" if i == 0 else ("tool change" if tool_change else "same tool"),
            len(lines),
        )
        body += lines
        summaries.append(
            FileSummary(record, tool_change, len(lines), count_commands(lines))
        )

    if not any(s.command_lines for s in summaries):
        raise OutputValidationError("Input programs produced no G-code command lines")

    output = assemble(body, state.spindle_on, config.commands)
    report = validate_output(output, profile, config.commands.program_marker)

    return MergeResult(
        lines=output,
        safe_height=safe,
        profile=profile,
        files=summaries,
        report=report,
    )
