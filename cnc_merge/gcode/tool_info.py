"""Tool identity extraction and per-file records.

CAM post-processors announce the tool in a comment near the top of the
program, for example::

    (T1 D=3.175 CR=0. - ZMIN=-3. - flat end mill)
    (Tool: 2 - 1/8" ball nose)
    (TOOL 3 DIA 6.35 downcut)

The first such comment wins.  Files without one fall back to the first
``T<n>`` command at the start of a line.  Extraction never fails; a file
with no tool information yields an empty :class:`ToolInfo`.

A :class:`FileRecord` reads its file once and computes its parsed lines,
tool information and metadata lazily, each at most once.
:class:`FileCatalog` memoises records by resolved path for the whole run.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Callable, Iterable

from cnc_merge.gcode.lines import LineKind, ParsedLine, parse_lines
from cnc_merge.utils import fs

logger = logging.getLogger(__name__)

_TOOL_COMMENT_RE = re.compile(
    r"^T(?:OOL)?\s*[#:=]?\s*(\d+)(?!\d)\s*[-:,=]?\s*(\S.*)$", re.IGNORECASE
)
_DIAMETER_RE = re.compile(
    r"\bD(?:IA(?:METER)?)?\s*[=:]?\s*(\d+(?:\.\d*)?|\.\d+)", re.IGNORECASE
)
_TOOL_SELECT_RE = re.compile(r"^T\s*(\d+)")


@dataclass(frozen=True, slots=True)
class ToolInfo:
    """Tool identity for one file.  Any field may be unknown."""

    number: int | None = None
    description: str | None = None
    diameter: float | None = None

    @property
    def known(self) -> bool:
        return self.number is not None

    def label(self) -> str:
        """Short human label, e.g. ``T2 - 1/8" ball nose``."""
        if self.number is None:
            return "unknown tool"
        if self.description:
            return f"T{self.number} - {self.description}"
        return f"T{self.number}"


def _from_comment(text: str) -> ToolInfo | None:
    m = _TOOL_COMMENT_RE.match(text.strip())
    if m is None:
        return None
    description = m.group(2).strip(" -:,")
    d = _DIAMETER_RE.search(description)
    return ToolInfo(
        number=int(m.group(1)),
        description=description or None,
        diameter=float(d.group(1)) if d else None,
    )


def extract_tool_info(parsed: Iterable[ParsedLine]) -> ToolInfo:
    """Return the tool announced by a file.

    Parameters
    ----------
    parsed : Iterable[ParsedLine]
        The file's lines in order.

    Returns
    -------
    ToolInfo
        First tool comment match, else first ``T<n>`` command at line
        start, else an empty ``ToolInfo``.
    """
    fallback: ToolInfo | None = None
    for line in parsed:
        if "(" in line.raw or ";" in line.raw:
            for body in re.findall(r"\(([^)]*)\)?|;(.*)$", line.raw):
                info = _from_comment(body[0] or body[1])
                if info is not None:
                    return info
        if fallback is None and line.kind is LineKind.TOOL_SELECT:
            m = _TOOL_SELECT_RE.match(line.code)
            if m is not None:
                fallback = ToolInfo(number=int(m.group(1)))
    return fallback if fallback is not None else ToolInfo()


# ---------------------------------------------------------------------------
# File records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileMetadata:
    """Aggregate counts over one file."""

    line_count: int
    motion_count: int
    spindle_count: int
    max_feedrate: float | None
    uses_x: bool
    uses_y: bool
    uses_z: bool


def compute_metadata(parsed: Iterable[ParsedLine]) -> FileMetadata:
    line_count = motion = spindle = 0
    max_feed: float | None = None
    axes: set[str] = set()
    for line in parsed:
        line_count += 1
        if line.kind is LineKind.MOTION:
            motion += 1
            axes.update(a for a in "XYZ" if a in line.words)
        elif line.kind is LineKind.SPINDLE:
            spindle += 1
        if line.feed is not None and (max_feed is None or line.feed > max_feed):
            max_feed = line.feed
    return FileMetadata(
        line_count=line_count,
        motion_count=motion,
        spindle_count=spindle,
        max_feedrate=max_feed,
        uses_x="X" in axes,
        uses_y="Y" in axes,
        uses_z="Z" in axes,
    )


class FileRecord:
    """One input program: raw lines plus lazily derived views.

    Parameters
    ----------
    path : Path
        Source path, used for naming and cache identity.
    lines : Iterable[str]
        File content, one entry per line, immutable for the run.
    """

    def __init__(self, path: str | Path, lines: Iterable[str]) -> None:
        self.path = Path(path)
        self.lines: tuple[str, ...] = tuple(lines)

    @property
    def name(self) -> str:
        return self.path.name

    @cached_property
    def parsed(self) -> tuple[ParsedLine, ...]:
        return tuple(parse_lines(list(self.lines)))

    @cached_property
    def tool_info(self) -> ToolInfo:
        info = extract_tool_info(self.parsed)
        logger.debug("%s: %s", self.name, info.label())
        return info

    @cached_property
    def metadata(self) -> FileMetadata:
        return compute_metadata(self.parsed)

    def __repr__(self) -> str:
        return f"FileRecord({str(self.path)!r}, {len(self.lines)} lines)"


class FileCatalog:
    """Memo table of :class:`FileRecord` keyed by resolved path.

    Parameters
    ----------
    reader : Callable[[Path], list[str]]
        Line reader, default :func:`cnc_merge.utils.fs.read_gcode_lines`.
        Raises :class:`cnc_merge.errors.AccessError` for bad inputs.
    """

    def __init__(self, reader: Callable[[Path], list[str]] = fs.read_gcode_lines) -> None:
        self._reader = reader
        self._records: dict[Path, FileRecord] = {}

    def get(self, path: str | Path) -> FileRecord:
        key = Path(path).resolve()
        record = self._records.get(key)
        if record is None:
            record = FileRecord(path, self._reader(Path(path)))
            self._records[key] = record
        return record

    def __len__(self) -> int:
        return len(self._records)
