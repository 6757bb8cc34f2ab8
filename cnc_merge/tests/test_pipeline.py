"""Tests for the per-file line pipeline.

Each filter rule is checked on its own with a hand-built ``RunState``,
then state tracking, then the optimizer through ``process_file``.
"""

from __future__ import annotations

import pytest

from cnc_merge.gcode.lines import parse_line, parse_lines
from cnc_merge.gcode.pipeline import (
    FileContext,
    RunState,
    filter_line,
    initial_state,
    optimize_line,
    process_file,
    update_state,
)


def _ctx(
    index: int = 1,
    *,
    is_first: bool = False,
    is_last: bool = False,
    tool_change: bool = False,
    fast: bool = False,
    safe_height: float = 15.0,
) -> FileContext:
    return FileContext(
        index=index,
        is_first=is_first,
        is_last=is_last,
        tool_change=tool_change,
        safe_height=safe_height,
        fast=fast,
    )


FIRST = _ctx(0, is_first=True)
MIDDLE = _ctx(1)
LAST = _ctx(2, is_last=True)
AFTER_TOOL_CHANGE = _ctx(1, tool_change=True)


def _keep(text: str, ctx: FileContext, state: RunState | None = None) -> bool:
    return filter_line(parse_line(text), ctx, state or RunState()).keep


# ---------------------------------------------------------------------------
# Filter rules
# ---------------------------------------------------------------------------


class TestBlankAndMarker:
    @pytest.mark.parametrize("ctx", [FIRST, MIDDLE, LAST])
    def test_dropped_everywhere(self, ctx: FileContext) -> None:
        assert not _keep("", ctx)
        assert not _keep("%", ctx)


class TestProgramEnd:
    def test_kept_only_in_last_file(self) -> None:
        assert _keep("M30", LAST)
        assert not _keep("M30", FIRST)
        assert not _keep("M2", MIDDLE)


class TestComments:
    def test_first_file_and_after_tool_change(self) -> None:
        assert _keep("(T1 - flat)", FIRST)
        assert _keep("(T2 - ball)", AFTER_TOOL_CHANGE)

    def test_dropped_after_retract_block(self) -> None:
        assert not _keep("(T1 - flat)", MIDDLE)
        assert not _keep("(T1 - flat)", LAST)


class TestHomingAndRetract:
    def test_homing(self) -> None:
        assert _keep("G28", FIRST)
        assert not _keep("G28", MIDDLE)
        assert not _keep("G91 G28 Z0", AFTER_TOOL_CHANGE)

    def test_leading_retract_dropped(self) -> None:
        assert not _keep("G0 Z15", MIDDLE, RunState())
        assert _keep("G0 Z15", FIRST, RunState())

    def test_mid_file_retract_kept(self) -> None:
        assert _keep("G0 Z15", MIDDLE, RunState(first_move_seen=True))

    def test_linear_z_move_kept(self) -> None:
        assert _keep("G1 Z-1 F300", MIDDLE, RunState())


class TestDuplicateMode:
    def test_repeated_mode_dropped(self) -> None:
        assert not _keep("G90", FIRST, RunState(distance_mode="G90"))

    def test_mode_change_kept(self) -> None:
        assert _keep("G91", FIRST, RunState(distance_mode="G90"))

    def test_first_mode_kept(self) -> None:
        assert _keep("G90", FIRST, RunState())

    def test_combined_line_kept(self) -> None:
        assert _keep("G90 G21", FIRST, RunState(distance_mode="G90"))


class TestLightweightSetup:
    @pytest.mark.parametrize("text", ["T2 M6", "G21", "G54", "M5"])
    def test_dropped_in_middle_file(self, text: str) -> None:
        assert not _keep(text, MIDDLE)

    def test_spindle_start_kept(self) -> None:
        assert _keep("M3 S12000", MIDDLE)

    @pytest.mark.parametrize("text", ["T2 M6", "G21", "M5"])
    def test_kept_in_last_file(self, text: str) -> None:
        assert _keep(text, LAST)

    @pytest.mark.parametrize("text", ["T2 M6", "G21", "M5"])
    def test_kept_after_tool_change(self, text: str) -> None:
        assert _keep(text, AFTER_TOOL_CHANGE)


def test_default_keep() -> None:
    assert _keep("G1 X10", MIDDLE)
    assert _keep("F500", MIDDLE)


# ---------------------------------------------------------------------------
# State tracking
# ---------------------------------------------------------------------------


class TestUpdateState:
    def test_absolute_z(self) -> None:
        assert update_state(parse_line("G0 Z5"), RunState()).current_z == 5.0

    def test_incremental_z(self) -> None:
        state = RunState(current_z=10.0, distance_mode="G91")
        assert update_state(parse_line("G1 Z-2"), state).current_z == 8.0

    def test_homing_forgets_z(self) -> None:
        assert update_state(parse_line("G28"), RunState(current_z=3.0)).current_z is None

    def test_spindle(self) -> None:
        on = update_state(parse_line("M3 S1000"), RunState())
        assert on.spindle_on
        assert not update_state(parse_line("M5"), on).spindle_on

    def test_motion_and_feed_modal(self) -> None:
        state = update_state(parse_line("G1 X1 F400"), RunState())
        state = update_state(parse_line("X2"), state)
        assert state.motion_mode == "G1"
        assert state.feed == 400.0
        assert state.first_move_seen

    def test_distance_mode(self) -> None:
        assert update_state(parse_line("G91"), RunState()).distance_mode == "G91"
        assert RunState(distance_mode="G90").mode_already_set


def test_initial_state_after_block() -> None:
    state = initial_state(MIDDLE, spindle_on=True)
    assert state.current_z == 15.0
    assert state.emitted_motion == "G0"
    assert state.spindle_on
    assert initial_state(FIRST).current_z is None


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------


def _run(lines: list[str], ctx: FileContext) -> list[str]:
    out, _ = process_file(parse_lines(lines), ctx)
    return out


class TestFastMode:
    def test_linear_above_safe_becomes_rapid(self) -> None:
        ctx = _ctx(0, is_first=True, fast=True)
        out = _run(["G0 Z15", "G1 X10 Y10 F800", "G1 Z-1 F200", "G1 X20 F800"], ctx)
        assert out == ["G0 Z15", "G0 X10 Y10", "G1 Z-1 F200", "G1 X20 F800"]

    def test_modal_motion_and_feed_restored(self) -> None:
        ctx = _ctx(0, is_first=True, fast=True)
        out = _run(["G0 Z15", "G1 Z20 F500", "X10 Y10", "G1 Z-1", "X20"], ctx)
        assert out == ["G0 Z15", "G0 Z20", "G0 X10 Y10", "G1 Z-1 F500", "X20"]

    def test_ramp_out_from_below_safe_height_untouched(self) -> None:
        ctx = _ctx(0, is_first=True, fast=True)
        out = _run(["G0 Z15", "G1 Z-2 F300", "G1 X10 Z20 F800"], ctx)
        assert out == ["G0 Z15", "G1 Z-2 F300", "G1 X10 Z20 F800"]

    def test_unknown_start_height_untouched(self) -> None:
        ctx = _ctx(0, is_first=True, fast=True)
        assert _run(["G1 Z20 F500"], ctx) == ["G1 Z20 F500"]

    def test_start_height_tracked(self) -> None:
        state = update_state(parse_line("G1 Z-2"), RunState(current_z=15.0))
        assert state.start_z == 15.0 and state.current_z == -2.0

    def test_off_keeps_linear(self) -> None:
        out = _run(["G0 Z15", "G1 X10 Y10 F800"], _ctx(0, is_first=True))
        assert out == ["G0 Z15", "G1 X10 Y10 F800"]

    def test_below_safe_height_untouched(self) -> None:
        ctx = _ctx(0, is_first=True, fast=True)
        out = _run(["G0 Z5", "G1 X10 F800"], ctx)
        assert out == ["G0 Z5", "G1 X10 F800"]


class TestRapidFeed:
    def test_rapid_feed_normalised(self) -> None:
        out = _run(["G0 X5 F9000"], _ctx(0, is_first=True))
        assert out == ["G0 X5 F5000"]


def test_whitespace_collapsed() -> None:
    line = parse_line("G1   X1    Y2")
    state = update_state(line, RunState())
    text, _ = optimize_line(line, FIRST, state)
    assert text == "G1 X1 Y2"


def test_process_file_returns_final_state() -> None:
    out, state = process_file(
        parse_lines(["%", "G0 Z15", "G0 X1 Y1", "M3 S9000", "G1 Z-1 F100", "%"]),
        MIDDLE,
    )
    assert out == ["G0 X1 Y1", "M3 S9000", "G1 Z-1 F100"]
    assert state.spindle_on
    assert state.current_z == -1.0
