"""Logging setup for the cnc-merge command.

Records carry contextual fields (``app``, ``file``) held in a
``contextvars.ContextVar``, so a warning raised deep inside the pipeline
still says which input program it came from::

    2026-10-17T13:45:12.345Z | WARNING  | app=merge file=part2.nc | Feed rate F12000 exceeds ...

The optional log file can be written as JSON lines instead::

    {"t": "2026-10-17T13:45:12.345+00:00", "lvl": "WARNING", "file": "part2.nc", "msg": "..."}

Usage:
    setup_logging("DEBUG", log_file="merge.log", context={"app": "merge"})
    with log_context(file="part2.nc"):
        ...
"""

import contextlib
import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

_fields: contextvars.ContextVar = contextvars.ContextVar("cnc_merge_log_fields", default={})

# Handlers owned by setup_logging; replaced on every call
_installed: List[logging.Handler] = []

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"


class MergeFormatter(logging.Formatter):
    """Text or JSON-lines formatter that appends the current context fields.

    Parameters
    ----------
    as_json : bool
        Emit one JSON object per record instead of a ``|``-separated line
    use_color : bool
        Color the level name; ignored when stderr is not a terminal
    utc : bool
        UTC timestamps (default) instead of local time
    """

    def __init__(self, as_json: bool = False, use_color: bool = False, utc: bool = True):
        super().__init__()
        self.as_json = as_json
        self.use_color = use_color and sys.stderr.isatty()
        self.utc = utc

    def _when(self, record: logging.LogRecord) -> datetime:
        if self.utc:
            return datetime.fromtimestamp(record.created, tz=timezone.utc)
        return datetime.fromtimestamp(record.created)

    def format(self, record: logging.LogRecord) -> str:
        when = self._when(record)
        fields = _fields.get()
        if self.as_json:
            payload: Dict[str, Any] = {
                "t": when.isoformat(),
                "lvl": record.levelname,
                "name": record.name,
                "pid": os.getpid(),
                **fields,
                "msg": record.getMessage(),
            }
            if record.exc_info:
                payload["exc"] = self.formatException(record.exc_info)
            return json.dumps(payload)

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"
        parts = [when.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z", level]
        if fields:
            parts.append(" ".join(f"{k}={v}" for k, v in fields.items()))
        parts.append(record.getMessage())
        text = " | ".join(parts)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    *,
    json_file: bool = False,
    color: bool = True,
    utc: bool = True,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Install a stderr handler and, optionally, a file handler on the root logger.

    Calling again replaces the handlers from the previous call and leaves
    any other root handlers alone.

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"
    log_file : str or Path, optional
        Also log here; parent directories are created
    json_file : bool
        Write the log file as JSON lines
    color : bool
        Color level names on a terminal
    utc : bool
        UTC timestamps, default True
    context : dict, optional
        Fields attached to every record, e.g. ``{"app": "merge"}``

    Returns
    -------
    list[logging.Handler]
        The handlers installed by this call
    """
    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    root.setLevel(getattr(logging, log_level.upper()))

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(MergeFormatter(use_color=color, utc=utc))
    _installed.append(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(MergeFormatter(as_json=json_file, utc=utc))
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)
    logging.captureWarnings(True)

    return list(_installed)


def push_context(**fields: Any) -> None:
    """Attach *fields* to every record logged from now on."""
    _fields.set({**_fields.get(), **fields})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Drop the named fields, or all of them when *keys* is None."""
    if keys is None:
        _fields.set({})
        return
    _fields.set({k: v for k, v in _fields.get().items() if k not in keys})


@contextlib.contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Scope *fields* to a ``with`` block."""
    push_context(**fields)
    try:
        yield
    finally:
        pop_context(keys=list(fields))


def install_excepthook() -> None:
    """Route uncaught exceptions (except Ctrl-C) through logging."""
    log = logging.getLogger(__name__)

    def _hook(exc_type, exc_value, tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, tb)
            return
        log.critical("Uncaught exception", exc_info=(exc_type, exc_value, tb))

    sys.excepthook = _hook
