"""
G-code transformation engine.

Classifies input lines, infers a safe travel height, filters and
optimizes each program, and stitches programs together with tool-change
or retract blocks.
"""

from cnc_merge.gcode.concatenator import MergeResult, assemble, merge
from cnc_merge.gcode.safe_height import SafeHeightResult, estimate_safe_height
from cnc_merge.gcode.tool_info import FileCatalog, FileRecord, ToolInfo, extract_tool_info
from cnc_merge.gcode.validator import ValidationReport, validate_output

__all__ = [
    "FileCatalog",
    "FileRecord",
    "MergeResult",
    "SafeHeightResult",
    "ToolInfo",
    "ValidationReport",
    "assemble",
    "estimate_safe_height",
    "extract_tool_info",
    "merge",
    "validate_output",
]
