"""Tests for filesystem collaborators: input checks, atomic writes, backups."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from cnc_merge.errors import AccessError
from cnc_merge.utils import fs


class TestReadGcode:
    def test_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "a.nc"
        path.write_bytes(b"%\r\nG0 X1\r\n%\r\n")
        assert fs.read_gcode_lines(path) == ["%", "G0 X1", "%"]

    def test_missing(self, tmp_path: Path) -> None:
        with pytest.raises(AccessError, match="not found") as exc:
            fs.read_gcode_lines(tmp_path / "missing.nc")
        assert exc.value.path == tmp_path / "missing.nc"

    def test_directory(self, tmp_path: Path) -> None:
        with pytest.raises(AccessError, match="not a regular file"):
            fs.read_gcode_lines(tmp_path)

    def test_whitespace_only(self, tmp_path: Path) -> None:
        path = tmp_path / "blank.nc"
        path.write_text(" \n\t\n")
        with pytest.raises(AccessError, match="empty"):
            fs.read_gcode_lines(path)


class TestWrite:
    def test_check_writable_creates_parent(self, tmp_path: Path) -> None:
        out = tmp_path / "out" / "merged.nc"
        assert fs.check_writable(out) == out
        assert out.parent.is_dir()

    def test_check_writable_rejects_directory(self, tmp_path: Path) -> None:
        with pytest.raises(AccessError, match="directory"):
            fs.check_writable(tmp_path)

    def test_atomic_write_text(self, tmp_path: Path) -> None:
        out = tmp_path / "merged.nc"
        fs.atomic_write_text(out, "%\nM30\n%")
        assert out.read_text() == "%\nM30\n%\n"
        assert not (tmp_path / "merged.nc.tmp").exists()

    def test_atomic_write_overwrites(self, tmp_path: Path) -> None:
        out = tmp_path / "merged.nc"
        out.write_text("old\n")
        fs.atomic_write_text(out, "new")
        assert out.read_text() == "new\n"


class TestBackup:
    def test_timestamped_copy(self, tmp_path: Path) -> None:
        out = tmp_path / "merged.nc"
        out.write_text("old\n")
        backup = fs.backup_file(out, now=datetime(2026, 3, 1, 9, 30, 5))
        assert backup == tmp_path / "merged.nc.20260301-093005.bak"
        assert backup.read_text() == "old\n"
        assert out.exists()

    def test_missing_source(self, tmp_path: Path) -> None:
        assert fs.backup_file(tmp_path / "none.nc") is None
