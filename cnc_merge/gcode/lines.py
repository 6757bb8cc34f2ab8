"""Line classification -- every input line is parsed exactly once.

Each G-code line is reduced to a :class:`ParsedLine`: its comment-free code,
the words it carries, and one :class:`LineKind` out of a closed set.  The
filter rules, the optimizer, the heuristics and the validator all work on
``ParsedLine`` objects; only comment text is searched elsewhere.

Dialect notes:
    - Comments are ``( ... )`` or ``; ...`` to end of line.
    - ``%`` alone on a line is the program start/end marker.
    - Lines with axis words but no G-code continue the modal motion.
    - Codes are normalised (``G01`` -> ``G1``, ``M03`` -> ``M3``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

# ---------------------------------------------------------------------------
# Token tables
# ---------------------------------------------------------------------------

MOTION_CODES = frozenset({"G0", "G1", "G2", "G3"})
RAPID = "G0"
LINEAR = "G1"
HOMING_CODES = frozenset({"G28", "G30"})
DISTANCE_MODES = frozenset({"G90", "G91"})
SETUP_CODES = frozenset(
    {"G17", "G18", "G19", "G20", "G21", "G54", "G55", "G56", "G57", "G58", "G59"}
)
SPINDLE_START = frozenset({"M3", "M4"})
SPINDLE_STOP = "M5"
PAUSE_CODES = frozenset({"M0", "M1"})
PROGRAM_END_CODES = frozenset({"M2", "M30"})
TOOL_CHANGE_CODE = "M6"
AXIS_LETTERS = frozenset("XYZABCIJKR")
PROGRAM_MARKER = "%"

_COMMENT_RE = re.compile(r"(\([^)]*\)|\(.*$|;.*$)")
_WORD_RE = re.compile(r"([A-Za-z])\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+))")
_MOTION_WORD_RE = re.compile(r"(?<![A-Z])G\s*0*([0-3])(?![\d.])", re.IGNORECASE)
_FEED_WORD_RE = re.compile(
    r"(?<![A-Z])F\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)", re.IGNORECASE
)


class LineKind(Enum):
    """Closed set of line kinds, assigned once per line."""

    BLANK = "blank"
    MARKER = "marker"
    COMMENT = "comment"
    PROGRAM_END = "program_end"
    PAUSE = "pause"
    TOOL_SELECT = "tool_select"
    SPINDLE = "spindle"
    HOMING = "homing"
    MOTION = "motion"
    MODE = "mode"
    SETUP = "setup"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Parsed line
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedLine:
    """One classified G-code line.

    Parameters
    ----------
    raw : str
        Original text, trailing newline removed.
    kind : LineKind
        Classification used by every downstream rule.
    code : str
        Upper-cased text with comments removed.
    words : dict[str, float]
        First value of every non G/M word (``X``, ``Z``, ``F``, ``T``, ...).
    g_codes, m_codes : tuple[str, ...]
        Normalised G and M codes in line order.
    """

    raw: str
    kind: LineKind
    code: str = ""
    words: dict[str, float] = field(default_factory=dict)
    g_codes: tuple[str, ...] = ()
    m_codes: tuple[str, ...] = ()

    @property
    def z(self) -> float | None:
        return self.words.get("Z")

    @property
    def feed(self) -> float | None:
        return self.words.get("F")

    @property
    def motion_code(self) -> str | None:
        """Explicit motion G-code on this line, if any."""
        for g in self.g_codes:
            if g in MOTION_CODES:
                return g
        return None

    @property
    def has_axis_words(self) -> bool:
        return any(letter in AXIS_LETTERS for letter in self.words)

    @property
    def is_z_only(self) -> bool:
        """True when Z is the only axis word on the line."""
        axes = [letter for letter in self.words if letter in AXIS_LETTERS]
        return axes == ["Z"]

    @property
    def is_command(self) -> bool:
        """True for any line that carries executable words."""
        if self.kind in (LineKind.BLANK, LineKind.MARKER, LineKind.COMMENT):
            return False
        return bool(self.words or self.g_codes or self.m_codes)

    @property
    def comment_text(self) -> str:
        """Concatenated comment bodies, parentheses and ``;`` removed."""
        parts = [m.strip("();").strip() for m in _COMMENT_RE.findall(self.raw)]
        return " ".join(p for p in parts if p)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def format_number(value: float) -> str:
    """Shortest stable text for a G-code numeric parameter."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")


def _code(letter: str, value: str) -> str:
    return letter + format_number(float(value))


def strip_comments(text: str) -> str:
    return _COMMENT_RE.sub(" ", text).strip()


def _classify(
    stripped: str,
    code: str,
    words: dict[str, float],
    g_codes: tuple[str, ...],
    m_codes: tuple[str, ...],
) -> LineKind:
    if not stripped:
        return LineKind.BLANK
    if stripped == PROGRAM_MARKER:
        return LineKind.MARKER
    if not code:
        return LineKind.COMMENT

    m_set = set(m_codes)
    g_set = set(g_codes)
    if m_set & PROGRAM_END_CODES:
        return LineKind.PROGRAM_END
    if "T" in words or TOOL_CHANGE_CODE in m_set:
        return LineKind.TOOL_SELECT
    if m_set & PAUSE_CODES:
        return LineKind.PAUSE
    if m_set & (SPINDLE_START | {SPINDLE_STOP}):
        return LineKind.SPINDLE
    if g_set & HOMING_CODES:
        return LineKind.HOMING
    if g_set & MOTION_CODES:
        return LineKind.MOTION
    if not g_set and not m_set and any(letter in AXIS_LETTERS for letter in words):
        return LineKind.MOTION
    if g_set & DISTANCE_MODES:
        return LineKind.MODE
    if g_set & SETUP_CODES:
        return LineKind.SETUP
    return LineKind.OTHER


def parse_line(text: str) -> ParsedLine:
    """Classify one line of G-code.

    Never fails: anything unrecognised becomes :attr:`LineKind.OTHER`.
    """
    raw = text.rstrip("\r\n")
    stripped = raw.strip()
    code = strip_comments(stripped).upper()

    words: dict[str, float] = {}
    g_codes: list[str] = []
    m_codes: list[str] = []
    for letter, value in _WORD_RE.findall(code):
        letter = letter.upper()
        if letter == "G":
            g_codes.append(_code("G", value))
        elif letter == "M":
            m_codes.append(_code("M", value))
        elif letter == "N":
            continue
        else:
            words.setdefault(letter, float(value))

    g = tuple(g_codes)
    m = tuple(m_codes)
    return ParsedLine(
        raw=raw,
        kind=_classify(stripped, code, words, g, m),
        code=code,
        words=words,
        g_codes=g,
        m_codes=m,
    )


def parse_lines(lines: list[str]) -> list[ParsedLine]:
    return [parse_line(line) for line in lines]


# ---------------------------------------------------------------------------
# Rewriting (code segments only, comments are left untouched)
# ---------------------------------------------------------------------------


def _map_code(text: str, fn) -> str:
    parts = _COMMENT_RE.split(text)
    # re.split with one capture group alternates code, comment, code, ...
    return "".join(fn(p) if i % 2 == 0 else p for i, p in enumerate(parts))


def set_motion_word(text: str, code: str) -> str:
    """Replace the motion G-code of *text*, or prepend one if absent."""
    if _MOTION_WORD_RE.search(strip_comments(text)):
        return _map_code(text, lambda s: _MOTION_WORD_RE.sub(code, s, count=1))
    return f"{code} {text}"


def remove_feed(text: str) -> str:
    return _map_code(text, lambda s: _FEED_WORD_RE.sub("", s))


def set_feed(text: str, feed: float) -> str:
    return _map_code(
        text, lambda s: _FEED_WORD_RE.sub(f"F{format_number(feed)}", s)
    )


def append_word(text: str, word: str) -> str:
    """Add *word* at the end of the code, ahead of any trailing comment."""
    m = _COMMENT_RE.search(text)
    if m is None:
        return f"{text} {word}"
    return f"{text[:m.start()].rstrip()} {word} {text[m.start():]}"


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())
