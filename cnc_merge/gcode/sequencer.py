"""Inter-file blocks: full tool change or lightweight retract.

Full tool change (tool numbers known and different)::

    <blank>
    (=== File 2: pocket.nc ===)
    M5
    G0 Z15
    G91 G28 Z0
    (Tool change: T1 - flat end mill -> T2 - ball nose)
    M0 (Load tool T2)
    G90
    <blank>

Lightweight retract (same tool, or either tool unknown)::

    (=== File 2: pocket.nc - same tool ===)
    G0 Z15
    <blank>

Command strings come from :class:`cnc_merge.configs.loader.CommandSet`.
"""

from __future__ import annotations

from cnc_merge.configs.loader import CommandSet
from cnc_merge.gcode.lines import RAPID, format_number
from cnc_merge.gcode.tool_info import ToolInfo


def needs_tool_change(prev: ToolInfo, cur: ToolInfo, force: bool = False) -> bool:
    """True iff both tool numbers are known and differ, or *force* is set."""
    if force:
        return True
    return prev.known and cur.known and prev.number != cur.number


def _comment_safe(text: str) -> str:
    return text.replace("(", "[").replace(")", "]")


def _retract(safe_height: float) -> str:
    return f"{RAPID} Z{format_number(safe_height)}"


def tool_change_block(
    file_index: int,
    file_name: str,
    prev: ToolInfo,
    cur: ToolInfo,
    safe_height: float,
    commands: CommandSet,
) -> list[str]:
    """Spindle stop, retract, home Z, pause for the operator, restore G90.

    Parameters
    ----------
    file_index : int
        Zero-based index of the incoming file; printed one-based.
    """
    block = [
        "",
        f"(=== File {file_index + 1}: {_comment_safe(file_name)} ===)",
        commands.spindle_stop,
        _retract(safe_height),
        commands.home_z,
    ]
    if prev.known and cur.known:
        block.append(
            f"(Tool change: {_comment_safe(prev.label())} -> "
            f"{_comment_safe(cur.label())})"
        )
    load = f"Load tool T{cur.number}" if cur.known else "Load next tool"
    block += [
        f"{commands.pause} ({load})",
        commands.absolute_mode,
        "",
    ]
    return block


def retract_block(file_index: int, file_name: str, safe_height: float) -> list[str]:
    """Single retract to the safe height, no pause and no homing."""
    return [
        f"(=== File {file_index + 1}: {_comment_safe(file_name)} - same tool ===)",
        _retract(safe_height),
        "",
    ]
