"""Filesystem collaborators for a merge run.

The merge core never opens files itself.  Everything that touches disk
lives here:

    read_gcode_lines   input program -> list of lines, AccessError if unusable
    check_writable     output location check, run before any transformation
    atomic_write_text  <name>.tmp, fsync, rename; a controller streaming the
                       output never sees a half-written program
    backup_file        <name>.<YYYYmmdd-HHMMSS>.bak copy of an existing output
    load_yaml          profiles.yaml

Usage:
    from cnc_merge.utils import fs
    lines = fs.read_gcode_lines("part1.nc")
    fs.check_writable("out/merged.nc")
    fs.atomic_write_text("out/merged.nc", "\\n".join(lines))
"""

import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from cnc_merge.errors import AccessError


def ensure_dir(path: Union[str, Path]) -> Path:
    """``mkdir -p`` *path* and return it as a Path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_gcode_lines(path: Union[str, Path], encoding: str = "ascii") -> List[str]:
    """Read a G-code file into a list of lines (newlines stripped).

    Parameters
    ----------
    path : Union[str, Path]
        Input file path
    encoding : str
        Text encoding, default "ascii"; undecodable bytes are replaced

    Returns
    -------
    List[str]
        Lines in file order

    Raises
    ------
    AccessError
        If the file is missing, unreadable, or contains only whitespace
    """
    path = Path(path)
    if not path.exists():
        raise AccessError(path, "input file not found")
    if not path.is_file():
        raise AccessError(path, "input path is not a regular file")

    try:
        text = path.read_text(encoding=encoding, errors="replace")
    except OSError as e:
        raise AccessError(path, f"cannot read input file ({e})") from e

    if not text.strip():
        raise AccessError(path, "input file is empty")

    return text.splitlines()


def check_writable(path: Union[str, Path]) -> Path:
    """Verify the output location can be written.

    The parent directory is created if missing.

    Raises
    ------
    AccessError
        If the directory cannot be created, is not writable, or *path*
        names an existing directory
    """
    path = Path(path)
    if path.exists() and path.is_dir():
        raise AccessError(path, "output path is a directory")
    try:
        parent = ensure_dir(path.parent)
    except OSError as e:
        raise AccessError(path, f"cannot create output directory ({e})") from e
    if not os.access(parent, os.W_OK):
        raise AccessError(path, "output directory is not writable")
    if path.exists() and not os.access(path, os.W_OK):
        raise AccessError(path, "output file is not writable")
    return path


def atomic_write_bytes(path: Union[str, Path], data: bytes) -> None:
    """Replace *path* with *data* in one rename.

    The temporary ``<name>.tmp`` sits in the target directory so the rename
    never crosses filesystems.

    Raises
    ------
    AccessError
        If writing or renaming fails; the temporary file is removed
    """
    target = Path(path)
    ensure_dir(target.parent)
    staging = target.with_name(target.name + ".tmp")

    try:
        with open(staging, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(staging, target)
    except OSError as e:
        staging.unlink(missing_ok=True)
        raise AccessError(target, f"write failed ({e})") from e


def atomic_write_text(path: Union[str, Path], text: str, encoding: str = "ascii") -> None:
    """Write text atomically; a trailing newline is added if missing."""
    if text and not text.endswith("\n"):
        text += "\n"
    atomic_write_bytes(path, text.encode(encoding, errors="replace"))


def backup_file(path: Union[str, Path], now: Optional[datetime] = None) -> Optional[Path]:
    """Copy an existing file to ``<name>.<YYYYmmdd-HHMMSS>.bak``.

    Parameters
    ----------
    path : Union[str, Path]
        File to back up
    now : Optional[datetime]
        Timestamp to use, default current local time

    Returns
    -------
    Optional[Path]
        Backup path, or None if *path* does not exist
    """
    path = Path(path)
    if not path.exists():
        return None
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    backup = path.with_name(f"{path.name}.{stamp}.bak")
    shutil.copy2(path, backup)
    return backup


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Parse a YAML document with ``yaml.safe_load``.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist
    yaml.YAMLError
        If the document is malformed
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"YAML file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)
