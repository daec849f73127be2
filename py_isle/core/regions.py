"""
Voronoi-style partitioning of the island into regions.

Process:
1. generate_seed_points() - stratified sampling with a rejection-sampling
   fallback, then Lloyd's relaxation
2. create_voronoi_regions() - every land cell joins its nearest seed point
3. remove_edge_regions() - drop regions touching the outer grid ring
4. remove_small_regions() - drop regions below the size floor
5. calculate_region_properties() - bounds, centroids and neighbour sets

Region ids are dense and 0-based; they are renumbered whenever regions are
removed, so a raw id is only meaningful within one generation session.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Tuple

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field
from scipy import ndimage

from ..exceptions import ConfigurationError, RegionConsistencyError
from .island import BoundingBox, Island
from .random import SeededRandom

logger = structlog.get_logger()

UNASSIGNED = -1

# Offsets covering each unordered 8-neighbour pair exactly once
_HALF_NEIGHBORHOOD = ((1, 0), (0, 1), (1, 1), (-1, 1))


class RegionOptions(BaseModel):
    """Region partitioning parameters."""

    model_config = ConfigDict(extra="forbid")

    target_regions: int = Field(default=7, gt=0, description="Target number of regions")
    size_buffer: float = Field(
        default=1.5, ge=1, description="Seed points placed per target region"
    )
    min_region_size: int = Field(default=1000, ge=1, description="Minimum cells per region")
    seed_jitter: float = Field(
        default=0.5, ge=0, le=1, description="Random offset within the stratified stride"
    )
    stratified_limit: int = Field(
        default=20, ge=0, description="Largest point count placed by stratified sampling"
    )
    relaxation_iterations: int = Field(default=2, ge=0, description="Lloyd's relaxation rounds")
    relaxation_step: float = Field(
        default=0.5, ge=0, le=1, description="Fraction of the way moved toward the centroid"
    )


@dataclass(frozen=True)
class SeedPoint:
    """Anchor of one Voronoi region."""

    x: int
    y: int
    id: int

    def moved(self, x: int, y: int) -> "SeedPoint":
        """Relocated copy keeping the same identity."""
        return replace(self, x=x, y=y)


@dataclass
class County:
    """Game-facing descriptor attached to a region after refinement."""

    id: int
    name: str
    town_center: Optional[Tuple[int, int]] = None
    site_fallback: bool = False


@dataclass
class Region:
    """A contiguous territory of land cells."""

    id: int
    seed_point: SeedPoint
    pixels: int = 0
    bounds: Optional[BoundingBox] = None
    centroid: Optional[Tuple[int, int]] = None
    neighbors: List[int] = field(default_factory=list)
    county: Optional[County] = None


@dataclass
class RegionPartition:
    """Region map raster plus the region records it refers to."""

    size: int
    seed_points: List[SeedPoint]
    region_map: np.ndarray
    regions: List[Region] = field(default_factory=list)
    requested_points: int = 0
    removed_edge_regions: int = 0
    removed_small_regions: int = 0
    removed_refined_regions: int = 0

    @property
    def region_count(self) -> int:
        return len(self.regions)

    @property
    def seed_shortfall(self) -> int:
        """Seed points requested but never placed."""
        return max(0, self.requested_points - len(self.seed_points))

    def pixel_counts(self) -> np.ndarray:
        """Cells per region id, read from the region map."""
        assigned = self.region_map[self.region_map != UNASSIGNED]
        return np.bincount(assigned, minlength=len(self.regions))

    def remove_regions(self, region_ids: Iterable[int]) -> int:
        """Unassign the cells of ``region_ids``, drop their records and compact ids."""
        doomed = sorted(set(int(r) for r in region_ids))
        if not doomed:
            return 0

        self.region_map[np.isin(self.region_map, doomed)] = UNASSIGNED
        doomed_set = set(doomed)
        self.regions = [r for r in self.regions if r.id not in doomed_set]
        self.compact()
        return len(doomed)

    def compact(self) -> None:
        """Renumber regions to ``[0, count)`` preserving their relative order."""
        if not self.regions:
            self.region_map.fill(UNASSIGNED)
            return

        max_id = max(int(self.region_map.max()), max(r.id for r in self.regions))
        lookup = np.full(max_id + 2, UNASSIGNED, dtype=np.int32)
        for new_id, region in enumerate(self.regions):
            lookup[region.id + 1] = new_id
            region.id = new_id

        self.region_map = lookup[self.region_map + 1]

    def remove_small_regions(self, min_size: int) -> int:
        """Drop every region with fewer than ``min_size`` cells in the map."""
        pixels = self.pixel_counts()
        for region in self.regions:
            region.pixels = int(pixels[region.id])

        return self.remove_regions(r.id for r in self.regions if r.pixels < min_size)

    def update_properties(self) -> None:
        """Recompute pixel counts, bounds, centroids and neighbour sets from the map."""
        count = self.region_count
        region_map = self.region_map

        pixels, centroid_x, centroid_y = region_centroids(region_map, count)
        slices = ndimage.find_objects(region_map + 1, max_label=count) if count else []
        neighbors = region_adjacency(region_map, count)

        for region in self.regions:
            rid = region.id
            region.pixels = int(pixels[rid])
            region.neighbors = neighbors[rid]
            bounds = slices[rid]
            if region.pixels == 0 or bounds is None:
                region.bounds = None
                region.centroid = None
                continue
            y_slice, x_slice = bounds
            region.bounds = BoundingBox(x_slice.start, y_slice.start, x_slice.stop - 1, y_slice.stop - 1)
            region.centroid = (int(centroid_x[rid]), int(centroid_y[rid]))

        logger.debug(
            "Region properties",
            regions=[
                {"id": r.id, "pixels": r.pixels, "neighbors": len(r.neighbors), "centroid": r.centroid}
                for r in self.regions
            ],
        )

    def validate(self, mask: np.ndarray) -> None:
        """
        Check the data-model invariants against the land mask.

        Raises:
            RegionConsistencyError: water cells carry a region, ids are not
                contiguous, or map ids and region records disagree
        """
        if self.region_map.shape != mask.shape:
            raise RegionConsistencyError(
                f"Region map shape {self.region_map.shape} != mask shape {mask.shape}"
            )

        if np.any(self.region_map[mask == 0] != UNASSIGNED):
            raise RegionConsistencyError("Water cells assigned to a region")

        for index, region in enumerate(self.regions):
            if region.id != index:
                raise RegionConsistencyError(f"Region at position {index} has id {region.id}")

        present = np.unique(self.region_map[self.region_map != UNASSIGNED])
        expected = np.arange(len(self.regions))
        if not np.array_equal(present, expected):
            missing = sorted(set(expected.tolist()) - set(present.tolist()))
            orphans = sorted(set(present.tolist()) - set(expected.tolist()))
            raise RegionConsistencyError(
                f"Region map and records disagree (no cells: {missing}, no record: {orphans})"
            )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def assign_nearest(mask: np.ndarray, points: List[SeedPoint]) -> np.ndarray:
    """
    Assign every land cell the id of its nearest seed point.

    Uses squared Euclidean distance with an exhaustive scan; on ties the
    earlier point in ``points`` wins. Water cells are left unassigned.
    """
    region_map = np.full(mask.shape, UNASSIGNED, dtype=np.int32)
    ys, xs = np.nonzero(mask == 1)
    if len(xs) == 0 or not points:
        return region_map

    xs = xs.astype(np.int64)
    ys = ys.astype(np.int64)
    best_dist = np.full(len(xs), np.iinfo(np.int64).max, dtype=np.int64)
    best_id = np.full(len(xs), UNASSIGNED, dtype=np.int32)

    for point in points:
        dist = (xs - point.x) ** 2 + (ys - point.y) ** 2
        closer = dist < best_dist
        best_dist[closer] = dist[closer]
        best_id[closer] = point.id

    region_map[ys, xs] = best_id
    return region_map


def region_centroids(region_map: np.ndarray, count: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Pixel counts and half-up rounded mean positions per region id.

    Returns:
        Tuple of (pixels, centroid_x, centroid_y); centroids of empty
        regions are -1.
    """
    ys, xs = np.nonzero(region_map != UNASSIGNED)
    ids = region_map[ys, xs]
    pixels = np.bincount(ids, minlength=count)[:count]
    sum_x = np.bincount(ids, weights=xs, minlength=count)[:count]
    sum_y = np.bincount(ids, weights=ys, minlength=count)[:count]

    centroid_x = np.full(count, -1, dtype=np.int64)
    centroid_y = np.full(count, -1, dtype=np.int64)
    filled = pixels > 0
    centroid_x[filled] = np.floor(sum_x[filled] / pixels[filled] + 0.5).astype(np.int64)
    centroid_y[filled] = np.floor(sum_y[filled] / pixels[filled] + 0.5).astype(np.int64)
    return pixels, centroid_x, centroid_y


def region_adjacency(region_map: np.ndarray, count: int) -> List[List[int]]:
    """Sorted ids of regions 8-adjacent to each region; unassigned cells never count."""
    neighbors: List[set] = [set() for _ in range(count)]
    height, width = region_map.shape

    for dx, dy in _HALF_NEIGHBORHOOD:
        a = region_map[0 : height - dy, max(0, -dx) : width - max(0, dx)]
        b = region_map[dy:height, max(0, dx) : width - max(0, -dx)]
        touching = (a != b) & (a != UNASSIGNED) & (b != UNASSIGNED)
        if not touching.any():
            continue
        pairs = np.unique(np.stack([a[touching], b[touching]], axis=1), axis=0)
        for first, second in pairs.tolist():
            neighbors[first].add(second)
            neighbors[second].add(first)

    return [sorted(n) for n in neighbors]


class RegionPartitioner:
    """Partitions an island's land mask into regions."""

    def __init__(self, options: RegionOptions, island: Island, random: SeededRandom):
        if island.mask.shape != (island.size, island.size):
            raise ConfigurationError(
                f"Land mask shape {island.mask.shape} does not match grid size {island.size}"
            )

        self.options = options
        self.island = island
        self.random = random
        self.size = island.size

    def generate(self) -> RegionPartition:
        """Place seeds, partition, filter and compute region geometry."""
        options = self.options
        points_needed = math.ceil(options.target_regions * options.size_buffer)
        logger.info(
            "Generating regions",
            land_area=self.island.land_pixels,
            target_regions=options.target_regions,
            points_needed=points_needed,
        )

        seed_points = self.generate_seed_points(points_needed)
        partition = self.create_voronoi_regions(seed_points)
        partition.requested_points = points_needed

        self.remove_edge_regions(partition)
        self.remove_small_regions(partition)
        self.calculate_region_properties(partition)
        partition.validate(self.island.mask)

        if not partition.regions:
            logger.warning("No regions survived filtering", seed_points=len(seed_points))
        logger.info("Regions generated", region_count=partition.region_count)
        return partition

    def generate_seed_points(self, count: int) -> List[SeedPoint]:
        """
        Place up to ``count`` seed points on land.

        Stratified sampling runs first for small counts; any shortfall is
        filled by rejection sampling with a relaxed spacing, bounded at
        ``50 * count`` attempts.
        """
        ys, xs = np.nonzero(self.island.mask == 1)
        land_pixels = list(zip(xs.tolist(), ys.tolist()))
        if not land_pixels:
            logger.warning("No land to place seed points on", requested=count)
            return []

        land_area = self.island.land_pixels
        points: List[SeedPoint] = []

        if count <= self.options.stratified_limit:
            self.random.shuffle(land_pixels)
            stride = len(land_pixels) // count
            min_dist = math.sqrt(land_area / count) * 0.5

            i = 0
            while i < count and i * stride < len(land_pixels):
                jitter = math.floor(self.random.range(0, stride * self.options.seed_jitter))
                index = min(i * stride + jitter, len(land_pixels) - 1)
                x, y = land_pixels[index]
                if not self._too_close(x, y, points, min_dist):
                    points.append(SeedPoint(x, y, len(points)))
                i += 1

        attempts = 0
        max_attempts = count * 50
        min_dist = math.sqrt(land_area / count) * 0.4

        while len(points) < count and attempts < max_attempts:
            attempts += 1
            x, y = land_pixels[int(self.random.uniform() * len(land_pixels))]
            if not self._too_close(x, y, points, min_dist):
                points.append(SeedPoint(x, y, len(points)))

        if len(points) < count:
            logger.warning("Placed fewer seed points than requested", placed=len(points), requested=count)

        if len(points) >= count * 0.8:
            points = self.relax_seed_points(points, self.options.relaxation_iterations)

        logger.info("Placed seed points", placed=len(points), attempts=attempts)
        return points

    @staticmethod
    def _too_close(x: int, y: int, points: List[SeedPoint], min_dist: float) -> bool:
        for other in points:
            if math.sqrt((x - other.x) ** 2 + (y - other.y) ** 2) < min_dist:
                return True
        return False

    def relax_seed_points(self, points: List[SeedPoint], iterations: int) -> List[SeedPoint]:
        """
        Lloyd's relaxation: move each point part of the way toward the
        centroid of its trial region, keeping moves that land on land.
        """
        step = self.options.relaxation_step
        for _ in range(iterations):
            trial = assign_nearest(self.island.mask, points)
            pixels, centroid_x, centroid_y = region_centroids(trial, len(points))

            relaxed = []
            for point in points:
                if pixels[point.id] == 0:
                    relaxed.append(point)
                    continue
                new_x = round_half_up(point.x + (int(centroid_x[point.id]) - point.x) * step)
                new_y = round_half_up(point.y + (int(centroid_y[point.id]) - point.y) * step)
                if self.island.is_land(new_x, new_y):
                    relaxed.append(point.moved(new_x, new_y))
                else:
                    relaxed.append(point)
            points = relaxed

        logger.debug("Relaxed seed points", iterations=iterations)
        return points

    def create_voronoi_regions(self, seed_points: List[SeedPoint]) -> RegionPartition:
        """One region per seed point, holding its nearest land cells."""
        return RegionPartition(
            size=self.size,
            seed_points=list(seed_points),
            region_map=assign_nearest(self.island.mask, seed_points),
            regions=[Region(id=point.id, seed_point=point) for point in seed_points],
        )

    def remove_edge_regions(self, partition: RegionPartition) -> None:
        """Drop every region with a cell on the outermost grid ring."""
        region_map = partition.region_map
        ring = np.concatenate(
            [region_map[0, :], region_map[-1, :], region_map[:, 0], region_map[:, -1]]
        )
        edge_ids = np.unique(ring[ring != UNASSIGNED]).tolist()

        partition.removed_edge_regions = partition.remove_regions(edge_ids)
        logger.info("Removed edge regions", removed=partition.removed_edge_regions)

    def remove_small_regions(self, partition: RegionPartition) -> None:
        """Drop every region smaller than ``min_region_size`` cells."""
        partition.removed_small_regions = partition.remove_small_regions(
            self.options.min_region_size
        )
        logger.info("Removed small regions", removed=partition.removed_small_regions)

    def calculate_region_properties(self, partition: RegionPartition) -> None:
        """Recompute pixel counts, bounds, centroids and neighbour sets."""
        partition.update_properties()
