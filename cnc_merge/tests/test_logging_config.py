"""Tests for log formatting, context fields and handler replacement."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from cnc_merge.utils.logging_config import (
    MergeFormatter,
    log_context,
    pop_context,
    push_context,
    setup_logging,
)


def _record(msg: str = "Clamped") -> logging.LogRecord:
    return logging.LogRecord("cnc_merge.test", logging.WARNING, __file__, 1, msg, None, None)


class TestFormatter:
    def test_text_includes_context(self) -> None:
        pop_context()
        with log_context(file="part2.nc"):
            line = MergeFormatter().format(_record())
        assert "| WARNING  |" in line
        assert "file=part2.nc" in line
        assert line.endswith("| Clamped")

    def test_json(self) -> None:
        pop_context()
        with log_context(file="a.nc"):
            payload = json.loads(MergeFormatter(as_json=True).format(_record()))
        assert payload["lvl"] == "WARNING"
        assert payload["file"] == "a.nc"
        assert payload["msg"] == "Clamped"


class TestContext:
    def test_log_context_restores(self) -> None:
        pop_context()
        push_context(app="merge")
        with log_context(file="x.nc"):
            assert "file=x.nc" in MergeFormatter().format(_record())
        line = MergeFormatter().format(_record())
        assert "file=" not in line
        assert "app=merge" in line
        pop_context()

    def test_pop_named_keys(self) -> None:
        pop_context()
        push_context(app="merge", file="a.nc")
        pop_context(keys=["file"])
        line = MergeFormatter().format(_record())
        assert "app=merge" in line and "file=" not in line
        pop_context()


class TestSetup:
    def test_repeated_setup_replaces_own_handlers(self, tmp_path: Path) -> None:
        root = logging.getLogger()
        first = setup_logging("INFO")
        second = setup_logging("DEBUG", log_file=tmp_path / "merge.log")
        assert len(second) == 2
        assert not any(h in root.handlers for h in first)
        assert all(h in root.handlers for h in second)
        ours = [h for h in root.handlers if isinstance(h.formatter, MergeFormatter)]
        assert len(ours) == 2
        assert root.level == logging.DEBUG
        setup_logging("INFO")

    def test_json_log_file(self, tmp_path: Path) -> None:
        log = tmp_path / "logs" / "merge.jsonl"
        setup_logging("INFO", log_file=log, json_file=True)
        logging.getLogger("cnc_merge.test").info("hello")
        entry = json.loads(log.read_text().splitlines()[-1])
        assert entry["msg"] == "hello"
        setup_logging("INFO")
