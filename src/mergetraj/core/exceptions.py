"""
Exception types raised while configuring or running a trajectory merge.
"""


class MergeTrajError(Exception):
    """Base class for all mergetraj errors."""


class ConfigurationError(MergeTrajError, ValueError):
    """Invalid run configuration, detected before any trajectory I/O."""


class SortKeyError(ConfigurationError):
    """A filename did not yield a numeric sort token."""

    def __init__(self, filename: str, pattern: str, kind: str = 'regexp'):
        self.filename = filename
        self.pattern = pattern
        super().__init__(f"Bad conversion of '{filename}' using {kind} '{pattern}'")


class TrajectoryFormatError(MergeTrajError, ValueError):
    """A frame or file violates the output trajectory format."""


class FrameCountExceeded(TrajectoryFormatError):
    pass


class AtomCountMismatch(TrajectoryFormatError):
    pass


class UnexpectedPeriodicData(TrajectoryFormatError):
    pass


class MissingPeriodicData(TrajectoryFormatError):
    pass


class CorruptTrajectoryError(TrajectoryFormatError):
    pass
