"""Filesystem and logging helpers shared by the merge entrypoint."""
