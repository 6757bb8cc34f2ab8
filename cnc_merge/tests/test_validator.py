"""Tests for output validation: hard failures and collected warnings."""

from __future__ import annotations

import logging

import pytest

from cnc_merge.configs.loader import MachineProfile, MergeConfig
from cnc_merge.errors import OutputValidationError
from cnc_merge.gcode.validator import validate_output


@pytest.fixture()
def nomad(config: MergeConfig) -> MachineProfile:
    return config.get_profile("nomad3")


class TestHardFailures:
    @pytest.mark.parametrize("lines", [[], ["", "   "]])
    def test_empty(self, nomad: MachineProfile, lines: list[str]) -> None:
        with pytest.raises(OutputValidationError, match="empty"):
            validate_output(lines, nomad)

    def test_no_commands(self, nomad: MachineProfile) -> None:
        with pytest.raises(OutputValidationError, match="no G-code command"):
            validate_output(["%", "(only a comment)", "%"], nomad)


class TestWarnings:
    def test_clean(self, nomad: MachineProfile) -> None:
        report = validate_output(["%", "G0 X1", "G1 X2 F1000", "M30", "%"], nomad)
        assert report.clean
        assert report.command_lines == 3
        assert report.max_feedrate == 1000.0

    def test_unbalanced_parens(self, nomad: MachineProfile) -> None:
        report = validate_output(["%", "(open", "G0 X1", "%"], nomad)
        assert any("Unbalanced" in w for w in report.warnings)

    def test_missing_markers(self, nomad: MachineProfile) -> None:
        report = validate_output(["G0 X1", "M30"], nomad)
        assert len(report.warnings) == 2

    def test_feed_above_profile(
        self, nomad: MachineProfile, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            report = validate_output(["%", "G1 X1 F3000", "%"], nomad)
        assert not report.clean
        assert "exceeds nomad3 maximum F2500" in caplog.text
