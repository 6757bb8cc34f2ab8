"""
CNC G-code merge package.

Combines CAM-generated G-code programs into one program for unattended
execution: strips post-processor boilerplate, infers a safe travel height,
speeds up non-cutting moves, and stitches file boundaries with tool-change
or retract blocks.

Subpackages:
    gcode: line classification, heuristics, pipeline, merge driver
    configs: machine profiles and run options
    utils: filesystem and logging helpers
    scripts: command-line entry point
"""

__version__ = "0.1.0"

__all__ = ["gcode", "configs", "utils", "scripts"]
