"""Per-file line pipeline: filter, track state, optimize.

Every line of a file goes through three pure steps:

    filter_line    ordered rule table, first match decides keep / drop
    update_state   advance the :class:`RunState` for a kept line
    optimize_line  rewrite the kept line (rapid substitution, feeds)

``RunState`` is an immutable value handed from call to call, so each rule
can be exercised on its own with a hand-built state.

Rule table (first match wins):

    1. blank lines and bare ``%`` markers          drop
    2. program end                                 keep only in the last file
    3. comment lines                               keep in the first file or
                                                   after a tool-change header
    4. homing, leading Z-only rapid retract        drop except in the first file
    5. G90 / G91 repeating the active mode         drop
    6. lightweight-header file (not last):
       tool select, setup, spindle other than start drop
    7. anything else                               keep
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional

from cnc_merge.gcode.lines import (
    DISTANCE_MODES,
    LINEAR,
    MOTION_CODES,
    RAPID,
    SPINDLE_START,
    SPINDLE_STOP,
    LineKind,
    ParsedLine,
    append_word,
    collapse_whitespace,
    format_number,
    remove_feed,
    set_feed,
    set_motion_word,
)

logger = logging.getLogger(__name__)

CUTTING_CODES = MOTION_CODES - {RAPID}


# ---------------------------------------------------------------------------
# State and context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunState:
    """Machine state tracked while one file streams through the pipeline.

    ``motion_mode`` / ``feed`` are what the source program commands;
    ``emitted_motion`` / ``emitted_feed`` are what the merged output has
    actually told the controller.  They diverge after a rewrite and are
    reconciled on the next line that relies on the modal value.
    ``start_z`` is the Z the latest motion line started from.
    """

    current_z: float | None = None
    start_z: float | None = None
    first_move_seen: bool = False
    spindle_on: bool = False
    distance_mode: str | None = None
    motion_mode: str | None = None
    emitted_motion: str | None = None
    feed: float | None = None
    emitted_feed: float | None = None

    @property
    def mode_already_set(self) -> bool:
        return self.distance_mode is not None


@dataclass(frozen=True)
class FileContext:
    """Where a file sits in the merge and what the run asks for.

    ``tool_change`` is True when the file is preceded by a full
    tool-change block.
    """

    index: int
    is_first: bool
    is_last: bool
    tool_change: bool
    safe_height: float
    fast: bool = False
    rapid_feedrate: float = 5000.0

    @property
    def lightweight(self) -> bool:
        """Preceded by a retract-only block."""
        return not self.is_first and not self.tool_change


@dataclass(frozen=True, slots=True)
class Decision:
    keep: bool
    reason: str


def initial_state(ctx: FileContext, spindle_on: bool = False) -> RunState:
    """Fresh state for a file.

    After an inter-file block the tool sits at the safe height and the
    controller is in rapid mode.  *spindle_on* carries the spindle across a
    lightweight boundary, where nothing stops it.
    """
    if ctx.is_first:
        return RunState(spindle_on=spindle_on)
    return RunState(
        current_z=ctx.safe_height,
        spindle_on=spindle_on,
        emitted_motion=RAPID,
    )


# ---------------------------------------------------------------------------
# Filter rules
# ---------------------------------------------------------------------------

Rule = Callable[[ParsedLine, FileContext, RunState], Optional[Decision]]


def _rule_blank_and_marker(line, ctx, state):
    if line.kind is LineKind.BLANK:
        return Decision(False, "blank")
    if line.kind is LineKind.MARKER:
        return Decision(False, "marker")
    return None


def _rule_program_end(line, ctx, state):
    if line.kind is LineKind.PROGRAM_END:
        return Decision(ctx.is_last, "program_end")
    return None


def _rule_comment(line, ctx, state):
    if line.kind is LineKind.COMMENT:
        return Decision(ctx.is_first or ctx.tool_change, "comment")
    return None


def _is_leading_retract(line: ParsedLine, state: RunState) -> bool:
    return (
        line.kind is LineKind.MOTION
        and line.motion_code == RAPID
        and line.is_z_only
        and not state.first_move_seen
    )


def _rule_homing_and_retract(line, ctx, state):
    if ctx.is_first:
        return None
    if line.kind is LineKind.HOMING:
        return Decision(False, "homing")
    if _is_leading_retract(line, state):
        return Decision(False, "retract")
    return None


def _rule_duplicate_mode(line, ctx, state):
    if line.kind is not LineKind.MODE:
        return None
    modes = [g for g in line.g_codes if g in DISTANCE_MODES]
    pure = len(modes) == len(line.g_codes) and not line.words and not line.m_codes
    if pure and state.distance_mode == modes[-1]:
        return Decision(False, "duplicate_mode")
    return Decision(True, "mode")


def _rule_lightweight_setup(line, ctx, state):
    if not ctx.lightweight or ctx.is_last:
        return None
    if line.kind is LineKind.TOOL_SELECT:
        return Decision(False, "tool_select")
    if line.kind is LineKind.SETUP:
        return Decision(False, "setup")
    if line.kind is LineKind.SPINDLE and not (set(line.m_codes) & SPINDLE_START):
        return Decision(False, "spindle")
    return None


RULES: tuple[Rule, ...] = (
    _rule_blank_and_marker,
    _rule_program_end,
    _rule_comment,
    _rule_homing_and_retract,
    _rule_duplicate_mode,
    _rule_lightweight_setup,
)


def filter_line(line: ParsedLine, ctx: FileContext, state: RunState) -> Decision:
    """Apply the rule table; the first rule that answers decides."""
    for rule in RULES:
        decision = rule(line, ctx, state)
        if decision is not None:
            return decision
    return Decision(True, "default")


# ---------------------------------------------------------------------------
# State tracking
# ---------------------------------------------------------------------------


def update_state(line: ParsedLine, state: RunState) -> RunState:
    """Advance *state* past a kept line."""
    changes: dict = {}

    modes = [g for g in line.g_codes if g in DISTANCE_MODES]
    distance_mode = modes[-1] if modes else state.distance_mode
    if modes:
        changes["distance_mode"] = distance_mode

    if line.kind is LineKind.HOMING:
        changes["current_z"] = None
    elif line.kind is LineKind.MOTION:
        changes["start_z"] = state.current_z
        motion = line.motion_code
        if motion is not None:
            changes["motion_mode"] = motion
        z = line.z
        if z is not None:
            if distance_mode == "G91":
                changes["current_z"] = (
                    state.current_z + z if state.current_z is not None else None
                )
            else:
                changes["current_z"] = z
        if line.has_axis_words:
            changes["first_move_seen"] = True

    if line.kind is LineKind.SPINDLE:
        if set(line.m_codes) & SPINDLE_START:
            changes["spindle_on"] = True
        elif SPINDLE_STOP in line.m_codes:
            changes["spindle_on"] = False

    if line.feed is not None:
        changes["feed"] = line.feed

    return replace(state, **changes) if changes else state


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------


def optimize_line(
    line: ParsedLine, ctx: FileContext, state: RunState
) -> tuple[str, RunState]:
    """Rewrite a kept line.  *state* must already include this line.

    - fast mode: a linear move that starts and ends at or above the safe
      height becomes a rapid with its ``F`` word removed
    - a rapid carrying ``F`` is normalised to the profile rapid feed rate
    - modal motion and feed are restored on the first line after a rewrite
      that would otherwise inherit the rewritten value
    """
    if line.kind is not LineKind.MOTION:
        if line.feed is not None:
            state = replace(state, emitted_feed=line.feed)
        return collapse_whitespace(line.raw), state

    text = line.raw
    programmed = state.motion_mode
    emitted = programmed
    emitted_feed = state.emitted_feed

    if (
        ctx.fast
        and programmed == LINEAR
        and state.start_z is not None
        and state.current_z is not None
        and min(state.start_z, state.current_z) >= ctx.safe_height
    ):
        text = remove_feed(set_motion_word(text, RAPID))
        emitted = RAPID
    else:
        if (
            line.motion_code is None
            and programmed is not None
            and state.emitted_motion != programmed
        ):
            text = set_motion_word(text, programmed)
        if programmed == RAPID and line.feed is not None:
            text = set_feed(text, ctx.rapid_feedrate)
            emitted_feed = ctx.rapid_feedrate
        elif line.feed is not None:
            emitted_feed = line.feed
        elif (
            programmed in CUTTING_CODES
            and state.feed is not None
            and emitted_feed != state.feed
        ):
            text = append_word(text, f"F{format_number(state.feed)}")
            emitted_feed = state.feed

    state = replace(
        state,
        emitted_motion=emitted if emitted is not None else state.emitted_motion,
        emitted_feed=emitted_feed,
    )
    return collapse_whitespace(text), state


# ---------------------------------------------------------------------------
# Per-file driver
# ---------------------------------------------------------------------------


def process_line(
    line: ParsedLine, ctx: FileContext, state: RunState
) -> tuple[str | None, RunState, Decision]:
    """Filter, track and optimize one line.  Dropped lines return ``None``."""
    decision = filter_line(line, ctx, state)
    if not decision.keep:
        return None, state, decision
    state = update_state(line, state)
    text, state = optimize_line(line, ctx, state)
    return text, state, decision


def process_file(
    lines: Iterable[ParsedLine],
    ctx: FileContext,
    state: RunState | None = None,
) -> tuple[list[str], RunState]:
    """Run a whole file through the pipeline.

    Parameters
    ----------
    lines : Iterable[ParsedLine]
        The file's parsed lines in order.
    ctx : FileContext
        Position of the file in the merge.
    state : RunState | None
        Starting state, default :func:`initial_state` for *ctx*.

    Returns
    -------
    tuple[list[str], RunState]
        Kept, rewritten lines and the state after the last line.
    """
    if state is None:
        state = initial_state(ctx)
    out: list[str] = []
    dropped: Counter[str] = Counter()
    for line in lines:
        text, state, decision = process_line(line, ctx, state)
        if text is None:
            dropped[decision.reason] += 1
        else:
            out.append(text)
    if dropped:
        logger.debug(
            "File %d: kept %d lines, dropped %s",
            ctx.index + 1,
            len(out),
            dict(sorted(dropped.items())),
        )
    return out, state
