"""
Core map generation functionality.
"""

from .random import SeededRandom
from .noise import NoiseGenerator
from .island import Island, IslandGenerator, IslandOptions, BoundingBox, Blob
from .regions import (
    UNASSIGNED,
    County,
    Region,
    RegionOptions,
    RegionPartition,
    RegionPartitioner,
    SeedPoint,
)
from .refiner import RefinerOptions, RegionRefiner
from .names import CountyNameGenerator

__all__ = ['SeededRandom', 'NoiseGenerator',
           'Island', 'IslandGenerator', 'IslandOptions', 'BoundingBox', 'Blob',
           'UNASSIGNED', 'County', 'Region', 'RegionOptions', 'RegionPartition',
           'RegionPartitioner', 'SeedPoint',
           'RefinerOptions', 'RegionRefiner', 'CountyNameGenerator']
