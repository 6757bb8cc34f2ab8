"""Error taxonomy for a merge run.

Access and validation errors abort the run before anything is written.
Safety anomalies are never raised; they are logged as warnings and the run
completes.  Configuration problems raise
:class:`cnc_merge.configs.loader.ConfigError`.
"""


class MergeError(Exception):
    """Base class for fatal merge failures."""

    pass


class AccessError(MergeError):
    """Input missing, unreadable or empty, or output location unwritable."""

    def __init__(self, path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class OutputValidationError(MergeError):
    """Assembled output is empty or contains no executable command."""

    pass
