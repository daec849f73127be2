"""
py_isle - procedural island and county generation.

Synthesizes an island mask, partitions its land into regions and refines
them into counties with settlement sites, deterministically from a seed.
"""

from .exceptions import ConfigurationError, IsleError, RegionConsistencyError, StageOrderError
from .pipeline import (
    GenerationConfig,
    GenerationSession,
    Stage,
    create_session,
    generate_island,
    generate_map,
    partition_regions,
    refine_regions,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "IsleError",
    "RegionConsistencyError",
    "StageOrderError",
    "GenerationConfig",
    "GenerationSession",
    "Stage",
    "create_session",
    "generate_island",
    "generate_map",
    "partition_regions",
    "refine_regions",
]
