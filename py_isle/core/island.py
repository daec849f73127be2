"""
Island mask synthesis.

Stages, always executed in this order:
1. Blob placement - one dominant ellipse plus secondary and peninsula blobs
2. Multi-blob accumulation - noise-perturbed elliptical falloff fields
3. Continental modulation - large-scale noise and a north-south ridge
4. Domain warping - noise-driven resampling of the influence raster
5. Binarization
6. Small-island removal
7. Small-hole filling
8. Coastal detail - noise-driven flips along the coastline
9. Metrics

All sizes scale with the grid edge length, so shapes are resolution
independent. Rasters are indexed ``[y, x]``.
"""

import math
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ConfigurationError
from .components import fill_small_holes, remove_small_islands
from .noise import NoiseGenerator
from .random import SeededRandom

logger = structlog.get_logger()

REFERENCE_SIZE = 1024
REFERENCE_ELONGATION = 2.0
REFERENCE_SIZE_FRACTION = 0.35


class IslandOptions(BaseModel):
    """Island shape parameters."""

    model_config = ConfigDict(extra="forbid")

    elongation: float = Field(
        default=REFERENCE_ELONGATION, gt=0, description="Height/width bias of the main blob"
    )
    size_fraction: float = Field(
        default=REFERENCE_SIZE_FRACTION,
        gt=0,
        lt=1,
        description="Target share of the map covered by land",
    )
    coastline_noise: float = Field(
        default=0.40, ge=0, lt=1, description="Amplitude of blob edge noise"
    )
    noise_octaves: int = Field(
        default=4, ge=1, description="Octaves of continental-scale noise"
    )

    blob_edge_octaves: int = Field(default=3, ge=1, description="Octaves of blob edge noise")
    blob_blend: float = Field(default=0.8, gt=0, description="Blob accumulation weight")
    land_threshold: float = Field(default=0.05, description="Influence above which a cell is land")
    min_island_size: int = Field(default=100, ge=0, description="Absolute island size floor")
    max_hole_size: int = Field(default=50, ge=0, description="Enclosed lakes below this are filled")
    warp_strength: float = Field(default=50.0, ge=0, description="Domain warp magnitude in pixels")
    warp_scale: float = Field(default=0.005, gt=0, description="Domain warp noise frequency")


class BoundingBox(NamedTuple):
    """Inclusive axis-aligned bounds of a set of cells."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    def contains(self, x: int, y: int) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    @classmethod
    def of(cls, cells: np.ndarray) -> Optional["BoundingBox"]:
        """Bounds of the True cells of a boolean raster, None if there are none."""
        ys, xs = np.nonzero(cells)
        if len(xs) == 0:
            return None
        return cls(int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max()))


@dataclass
class Blob:
    """Elliptical, optionally rotated influence field."""

    x: float
    y: float
    radius_x: float
    radius_y: float
    strength: float
    rotation: Optional[float] = None


@dataclass
class Island:
    """Island rasters and metrics.

    ``influence`` is the float32 intermediate raster; ``mask`` is the final
    uint8 land mask (1 = land, 0 = water).
    """

    size: int
    influence: np.ndarray
    mask: np.ndarray
    blobs: List[Blob] = field(default_factory=list)
    land_pixels: int = 0
    bounds: Optional[BoundingBox] = None
    coverage: float = 0.0
    effective_width: int = 0
    effective_height: int = 0
    effective_elongation: float = 0.0

    def update_metrics(self) -> None:
        """Recompute land count, bounds and derived shape metrics from the mask."""
        land = self.mask == 1
        self.land_pixels = int(np.count_nonzero(land))
        self.bounds = BoundingBox.of(land)
        self.coverage = self.land_pixels / (self.size * self.size)

        if self.bounds is None:
            self.effective_width = 0
            self.effective_height = 0
            self.effective_elongation = 0.0
            return

        self.effective_width = self.bounds.width
        self.effective_height = self.bounds.height
        if self.effective_width > 0:
            self.effective_elongation = self.effective_height / self.effective_width
        else:
            self.effective_elongation = 0.0

    def is_land(self, x: int, y: int) -> bool:
        return 0 <= x < self.size and 0 <= y < self.size and self.mask[y, x] == 1


class IslandGenerator:
    """
    Builds an ``Island`` from layered noise and geometric blobs.

    The noise permutation table is drawn from ``random`` on construction,
    before any blob is placed.
    """

    def __init__(self, options: IslandOptions, size: int, random: SeededRandom):
        if size <= 0:
            raise ConfigurationError(f"Map size must be positive, got {size}")

        self.options = options
        self.size = size
        self.center = size / 2
        self.random = random
        self.noise = NoiseGenerator(random)

        # Pixel coordinates shared by every full-grid pass
        self._ys, self._xs = np.mgrid[0:size, 0:size].astype(np.float64)

    def generate(self) -> Island:
        """Run every synthesis stage and return the finished island."""
        size = self.size
        island = Island(
            size=size,
            influence=np.zeros((size, size), dtype=np.float32),
            mask=np.zeros((size, size), dtype=np.uint8),
        )

        island.blobs = self.generate_blob_centers()
        logger.info("Generated blobs", count=len(island.blobs))

        self.generate_multi_blob_shape(island)
        self._log_influence(island, "blob accumulation")

        self.add_continental_features(island)
        self._log_influence(island, "continental features")

        self.apply_domain_warping(island)
        self._log_influence(island, "domain warping")

        self.finalize_mask(island)
        self.add_coastal_detail(island)
        island.update_metrics()

        logger.info(
            "Island generated",
            land_pixels=island.land_pixels,
            coverage=round(island.coverage, 4),
            elongation=round(island.effective_elongation, 3),
        )
        return island

    def generate_blob_centers(self) -> List[Blob]:
        """Place the main blob, 2-3 secondary blobs and 1-2 peninsulas."""
        rand = self.random
        scale = self.size / REFERENCE_SIZE
        radius_scale = math.sqrt(self.options.size_fraction / REFERENCE_SIZE_FRACTION)
        stretch = math.sqrt(self.options.elongation / REFERENCE_ELONGATION)

        blobs = [
            Blob(
                x=self.center + rand.range(-50, 50) * scale,
                y=self.center + rand.range(-100, 100) * scale,
                radius_x=rand.range(200, 280) * scale * radius_scale / stretch,
                radius_y=rand.range(350, 450) * scale * radius_scale * stretch,
                strength=1.0,
            )
        ]

        for _ in range(rand.int_range(2, 3)):
            angle = rand.range(0, math.pi * 2)
            distance = rand.range(80, 180) * scale
            blobs.append(
                Blob(
                    x=self.center + math.cos(angle) * distance,
                    y=self.center + math.sin(angle) * distance,
                    radius_x=rand.range(100, 160) * scale * radius_scale,
                    radius_y=rand.range(140, 200) * scale * radius_scale,
                    strength=rand.range(0.7, 0.9),
                )
            )

        for _ in range(rand.int_range(1, 2)):
            angle = rand.range(0, math.pi * 2)
            distance = rand.range(180, 280) * scale
            blobs.append(
                Blob(
                    x=self.center + math.cos(angle) * distance,
                    y=self.center + math.sin(angle) * distance,
                    radius_x=rand.range(50, 90) * scale * radius_scale,
                    radius_y=rand.range(120, 200) * scale * radius_scale,
                    strength=rand.range(0.5, 0.7),
                    rotation=angle,
                )
            )

        return blobs

    def calculate_blob_influence(self, blob: Blob) -> np.ndarray:
        """Noise-perturbed elliptical falloff of one blob over the whole grid."""
        dx = self._xs - blob.x
        dy = self._ys - blob.y

        if blob.rotation is not None:
            cos = math.cos(-blob.rotation)
            sin = math.sin(-blob.rotation)
            dx, dy = dx * cos - dy * sin, dx * sin + dy * cos

        dist_x = dx / blob.radius_x
        dist_y = dy / blob.radius_y
        distance = np.sqrt(dist_x * dist_x + dist_y * dist_y)

        # Edge noise depends only on the direction from the blob centre
        angle = np.arctan2(dy, dx)
        noise_value = self.noise.octave_noise2d(
            blob.x * 0.01 + np.cos(angle) * 3,
            blob.y * 0.01 + np.sin(angle) * 3,
            self.options.blob_edge_octaves,
            0.5,
            0.5,
        )

        threshold = 1.0 + noise_value * self.options.coastline_noise
        return np.maximum(0, (threshold - distance) / threshold)

    def generate_multi_blob_shape(self, island: Island) -> None:
        value = np.zeros((self.size, self.size), dtype=np.float64)
        for blob in island.blobs:
            value += self.calculate_blob_influence(blob) * blob.strength * self.options.blob_blend

        island.influence = np.minimum(1.0, value).astype(np.float32)

    def add_continental_features(self, island: Island) -> None:
        """Reweight influenced cells with continental noise and a ridge bias."""
        current = island.influence.astype(np.float64)
        land = current > 0.1
        xs = self._xs[land]
        ys = self._ys[land]

        continental_noise = self.noise.octave_noise2d(
            xs * 0.003, ys * 0.003, self.options.noise_octaves, 0.6, 1.0
        )

        # Ridge running north-south
        ridge_x = self.center + np.sin(ys * 0.01) * 50
        ridge_distance = np.abs(xs - ridge_x) / 100
        ridge_influence = np.exp(-ridge_distance * ridge_distance) * 0.2

        current[land] = current[land] * 0.8 + continental_noise * 0.1 + ridge_influence * 0.1
        island.influence = current.astype(np.float32)

    def apply_domain_warping(self, island: Island) -> None:
        """Resample the influence raster through a noise displacement field."""
        size = self.size
        source = island.influence.astype(np.float64)
        warped = island.influence.copy()
        scale = self.options.warp_scale
        strength = self.options.warp_strength

        noise_x = self.noise.octave_noise2d(self._xs * scale, self._ys * scale, 2, 0.5, 1.0)
        noise_y = self.noise.octave_noise2d(
            self._xs * scale + 100, self._ys * scale + 100, 2, 0.5, 1.0
        )

        warped_x = self._xs + noise_x * strength
        warped_y = self._ys + noise_y * strength

        inside = (
            (warped_x >= 0) & (warped_x < size - 1) & (warped_y >= 0) & (warped_y < size - 1)
        )
        wx = warped_x[inside]
        wy = warped_y[inside]

        x0 = np.floor(wx).astype(np.int64)
        x1 = np.ceil(wx).astype(np.int64)
        y0 = np.floor(wy).astype(np.int64)
        y1 = np.ceil(wy).astype(np.int64)
        fx = wx - x0
        fy = wy - y0

        v0 = source[y0, x0] * (1 - fx) + source[y0, x1] * fx
        v1 = source[y1, x0] * (1 - fx) + source[y1, x1] * fx
        warped[inside] = v0 * (1 - fy) + v1 * fy

        island.influence = warped

    def finalize_mask(self, island: Island) -> None:
        """Threshold the influence raster and clean up islets and lakes."""
        values = island.influence.astype(np.float64)

        histogram = np.bincount(
            np.minimum(9, np.floor(values * 10)).astype(np.int64).ravel().clip(0), minlength=10
        )
        logger.debug(
            "Influence distribution",
            buckets=[round(int(c) / values.size, 4) for c in histogram[:10]],
            above_threshold=int(np.count_nonzero(values > self.options.land_threshold)),
        )

        mask = (values > self.options.land_threshold).astype(np.uint8)
        remove_small_islands(mask, self.options.min_island_size)
        fill_small_holes(mask, self.options.max_hole_size)

        island.mask = mask
        island.update_metrics()
        logger.debug("Mask finalized", land_pixels=island.land_pixels)

    def add_coastal_detail(self, island: Island) -> None:
        """
        Flip cells along the coastline using small-scale noise.

        Water cells grow into land only next to existing land and land cells
        erode only next to existing water. Every decision reads the mask as
        it was before this stage.
        """
        size = self.size
        mask = island.mask
        interior = np.zeros((size, size), dtype=bool)
        interior[1:-1, 1:-1] = True

        near_coast = interior & self._differs_within(mask, 2)
        has_land = self._neighbor_equals(mask, 1)
        has_water = self._neighbor_equals(mask, 0)

        xs = self._xs[near_coast]
        ys = self._ys[near_coast]
        small_noise = self.noise.octave_noise2d(xs * 0.05, ys * 0.05, 2, 0.5, 1.0)
        medium_noise = self.noise.octave_noise2d(xs * 0.02, ys * 0.02, 2, 0.5, 1.0)

        current = mask[near_coast]
        grow = (small_noise > 0.4) & (current == 0) & has_land[near_coast]
        erode = (medium_noise < -0.3) & (current == 1) & has_water[near_coast]

        updated = current.copy()
        updated[grow] = 1
        updated[erode] = 0

        detailed = mask.copy()
        detailed[near_coast] = updated
        island.mask = detailed

        logger.debug("Coastal detail applied", grown=int(grow.sum()), eroded=int(erode.sum()))

    @staticmethod
    def _differs_within(mask: np.ndarray, radius: int) -> np.ndarray:
        """True where an in-bounds cell within ``radius`` differs from the centre."""
        size = mask.shape[0]
        padded = np.full((size + 2 * radius, size + 2 * radius), -1, dtype=np.int8)
        padded[radius:-radius, radius:-radius] = mask
        result = np.zeros(mask.shape, dtype=bool)

        for dy in range(-radius, radius + 1):
            for dx in range(-radius, radius + 1):
                if dx == 0 and dy == 0:
                    continue
                window = padded[radius + dy : radius + dy + size, radius + dx : radius + dx + size]
                result |= (window != -1) & (window != mask)
        return result

    @staticmethod
    def _neighbor_equals(mask: np.ndarray, value: int) -> np.ndarray:
        """True where any in-bounds 8-neighbour equals ``value``."""
        size = mask.shape[0]
        padded = np.full((size + 2, size + 2), -1, dtype=np.int8)
        padded[1:-1, 1:-1] = mask
        result = np.zeros(mask.shape, dtype=bool)

        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                if dx == 0 and dy == 0:
                    continue
                result |= padded[1 + dy : 1 + dy + size, 1 + dx : 1 + dx + size] == value
        return result

    def _log_influence(self, island: Island, stage: str) -> None:
        values = island.influence
        nonzero = int(np.count_nonzero(values > 0))
        logger.debug(
            "Influence raster",
            stage=stage,
            min=round(float(values.min()), 3),
            max=round(float(values.max()), 3),
            mean=round(float(values.mean()), 3),
            non_zero=nonzero,
            coverage=round(nonzero / values.size, 4),
        )
