"""Run options record for a merge.

The CLI collaborator fills a :class:`MergeOptions`; every other module only
reads it.  Validation uses pydantic so a bad value fails before any file is
touched, with the offending field named in the message.

Usage:
    from cnc_merge.configs.options import build_options
    opts = build_options(fast=True, machine_profile="shapeoko")
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from cnc_merge.configs.loader import ConfigError


class MergeOptions(BaseModel):
    """Options recognised by the merge pipeline."""

    model_config = {"frozen": True}

    verbose: bool = Field(False, description="Enable DEBUG logging")
    fast: bool = Field(False, description="Rewrite cutting moves above safe height as rapids")
    safe_height_override: Optional[float] = Field(
        None, description="Explicit safe Z; clamped to [1, 100]"
    )
    feedrate_threshold: Optional[float] = Field(
        None,
        gt=0.0,
        le=1.0,
        description="Feed drop ratio marking a travel -> cut transition; "
        "None uses profiles.yaml (0.75)",
    )
    dry_run: bool = Field(False, description="Run the pipeline but do not write the output")
    machine_profile: str = Field("generic", description="generic | shapeoko | xcarve | nomad3")
    output_dir: Optional[Path] = Field(None, description="Directory for the merged output")
    backup: bool = Field(True, description="Back up an existing output file before overwrite")
    log_file: Optional[Path] = Field(None, description="Additional log file")
    force_tool_change: bool = Field(
        False, description="Emit a full tool-change block at every file boundary"
    )
    summary: bool = Field(True, description="Write a plain-text summary next to the output")

    @field_validator("machine_profile")
    @classmethod
    def normalize_profile(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("machine_profile must not be empty")
        return v

    @field_validator("safe_height_override")
    @classmethod
    def finite_override(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v != v:
            raise ValueError("safe_height_override must be a number, got NaN")
        return v


def build_options(**kwargs: Any) -> MergeOptions:
    """Build a validated :class:`MergeOptions`.

    Raises
    ------
    ConfigError
        If any option fails validation.
    """
    try:
        return MergeOptions(**kwargs)
    except ValidationError as e:
        raise ConfigError(f"Invalid merge options: {e}") from e
