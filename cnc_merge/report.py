"""Plain-text summary of a merge run, written next to the output.

Lists the input files, aggregate line and command counts, per-file tool
usage, the resolved safe height, and any validation warnings.  The summary
is a secondary artifact; the caller decides what to do if writing fails.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from cnc_merge.gcode.concatenator import MergeResult
from cnc_merge.gcode.lines import format_number
from cnc_merge.utils import fs


def summary_path(output_path: str | Path) -> Path:
    """``out/merged.nc`` -> ``out/merged_summary.txt``."""
    p = Path(output_path)
    return p.with_name(f"{p.stem}_summary.txt")


def build_summary(
    result: MergeResult,
    output_path: str | Path | None = None,
    now: datetime | None = None,
) -> str:
    now = now or datetime.now()
    sh = result.safe_height
    lines = [
        "cnc-merge summary",
        f"Generated: {now.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if output_path is not None:
        lines.append(f"Output: {output_path}")
    lines += [
        f"Machine profile: {result.profile.name}",
        f"Safe height: Z{format_number(sh.height)} ({sh.source}, "
        f"{len(sh.candidates)} candidates)",
        "",
        f"Input files ({len(result.files)}):",
    ]

    total_in = total_moves = total_spindle = 0
    tools: dict[str, list[str]] = {}
    for i, item in enumerate(result.files):
        rec = item.record
        meta = rec.metadata
        total_in += meta.line_count
        total_moves += meta.motion_count
        total_spindle += meta.spindle_count
        boundary = "first file" if i == 0 else (
            "tool change" if item.tool_change else "same tool"
        )
        lines.append(
            f"  {i + 1}. {rec.name}: {meta.line_count} lines, "
            f"{meta.motion_count} moves, {item.kept_lines} kept, {boundary}"
        )
        tools.setdefault(rec.tool_info.label(), []).append(rec.name)

    report = result.report
    lines += [
        "",
        "Totals:",
        f"  input lines: {total_in}",
        f"  output lines: {len(result.lines)}",
        f"  command lines: {report.command_lines if report else 'n/a'}",
        f"  motion commands (input): {total_moves}",
        f"  spindle commands (input): {total_spindle}",
        "",
        "Tool usage:",
    ]
    for label, names in tools.items():
        lines.append(f"  {label}: {', '.join(names)}")

    if report and report.warnings:
        lines += ["", "Warnings:"]
        lines += [f"  - {w}" for w in report.warnings]

    return "\n".join(lines) + "\n"


def write_summary(result: MergeResult, path: str | Path, output_path: str | Path | None = None) -> Path:
    path = Path(path)
    fs.atomic_write_text(path, build_summary(result, output_path), encoding="utf-8")
    return path
