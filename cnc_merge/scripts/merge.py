#!/usr/bin/env python3
"""
Merge CAM G-code programs into one unattended job.

Usage:
    cnc-merge roughing.nc finishing.nc -o job.nc
    cnc-merge a.nc b.nc c.nc -o job.nc --fast --machine shapeoko
    cnc-merge a.nc b.nc -o job.nc --safe-height 12 --dry-run -v
    python -m cnc_merge.scripts.merge a.nc b.nc -o job.nc

Exit codes:
    0  output written (or validated, with --dry-run)
    1  configuration, access or validation error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from cnc_merge.configs.loader import PROFILE_NAMES, ConfigError, MergeConfig, load_config
from cnc_merge.configs.options import MergeOptions, build_options
from cnc_merge.errors import MergeError
from cnc_merge.gcode.concatenator import MergeResult, merge
from cnc_merge.report import summary_path, write_summary
from cnc_merge.utils import fs
from cnc_merge.utils.logging_config import install_excepthook, setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cnc-merge",
        description="Merge G-code programs with safe tool-change and retract blocks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"Machine profiles: {', '.join(PROFILE_NAMES)}",
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="Input G-code files, in execution order",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        required=True,
        help="Merged output file",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Debug logging",
    )
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Rewrite cutting moves at or above the safe height as rapids",
    )
    parser.add_argument(
        "--safe-height",
        type=float,
        dest="safe_height_override",
        help="Use this safe Z instead of inferring one (clamped to 1..100)",
    )
    parser.add_argument(
        "--feedrate-threshold",
        type=float,
        help="Feed drop ratio that marks a travel -> cut transition (default 0.75)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run and validate, but don't write any file",
    )
    parser.add_argument(
        "--machine",
        "-m",
        dest="machine_profile",
        default="generic",
        help="Machine profile (default: generic)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Write the output into this directory",
    )
    parser.add_argument(
        "--no-backup",
        dest="backup",
        action="store_false",
        help="Overwrite an existing output without a backup copy",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also log to this file",
    )
    parser.add_argument(
        "--force-tool-change",
        action="store_true",
        help="Emit a full tool-change block at every file boundary",
    )
    parser.add_argument(
        "--no-summary",
        dest="summary",
        action="store_false",
        help="Don't write the summary report",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Profiles YAML (default: bundled profiles.yaml)",
    )
    return parser


def resolve_output_path(output: Path, output_dir: Path | None) -> Path:
    """``--output-dir`` keeps the output file name and replaces its folder."""
    if output_dir is None:
        return output
    return Path(output_dir) / Path(output).name


def run(
    inputs: Sequence[Path],
    output: Path,
    options: MergeOptions,
    config: MergeConfig,
) -> MergeResult:
    """Merge, then write the output and its side artifacts.

    Raises
    ------
    AccessError
        If an input is unusable or the output location is not writable;
        raised before any transformation.
    OutputValidationError
        If the merged program has no executable content; nothing is written.
    """
    output = resolve_output_path(output, options.output_dir)
    if not options.dry_run:
        fs.check_writable(output)

    result = merge(inputs, options, config)

    if options.dry_run:
        logger.info(
            "Dry run: %d lines validated, nothing written", len(result.lines)
        )
        return result

    if options.backup and output.exists():
        try:
            backup = fs.backup_file(output)
            logger.info("Backed up existing output to %s", backup)
        except (OSError, MergeError) as e:
            logger.warning("Backup of %s failed: %s", output, e)

    fs.atomic_write_text(output, result.text)
    logger.info("Wrote %d lines to %s", len(result.lines), output)

    if options.summary:
        try:
            path = write_summary(result, summary_path(output), output)
            logger.info("Summary written to %s", path)
        except (OSError, MergeError) as e:
            logger.warning("Summary write failed: %s", e)

    return result


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(
        log_level="DEBUG" if args.verbose else "INFO",
        log_file=args.log_file,
        context={"app": "merge"},
    )
    install_excepthook()

    try:
        options = build_options(
            verbose=args.verbose,
            fast=args.fast,
            safe_height_override=args.safe_height_override,
            feedrate_threshold=args.feedrate_threshold,
            dry_run=args.dry_run,
            machine_profile=args.machine_profile,
            output_dir=args.output_dir,
            backup=args.backup,
            log_file=args.log_file,
            force_tool_change=args.force_tool_change,
            summary=args.summary,
        )
        config = load_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        logger.error("Configuration error: %s", e)
        return 1

    try:
        run(args.inputs, args.output, options, config)
    except MergeError as e:
        logger.error("Merge failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
