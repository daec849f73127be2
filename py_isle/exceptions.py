"""
Error types raised by the generation pipeline.

Degenerate generation results (too few seed points, no surviving regions,
a settlement falling back to the centroid) are not errors; they are logged
and recorded on the returned data structures.
"""


class IsleError(Exception):
    """Base class for all py_isle errors."""


class ConfigurationError(IsleError, ValueError):
    """Invalid configuration, reported before any generation work starts."""


class StageOrderError(IsleError, RuntimeError):
    """A pipeline stage was invoked before its prerequisite stage."""


class RegionConsistencyError(IsleError, RuntimeError):
    """The region map and the region records disagree.

    This indicates a bug in partitioning or compaction rather than an
    unlucky random draw.
    """
